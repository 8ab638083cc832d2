"""Pydantic schemas"""
from huvr_export.schemas.export import (
    FieldMapping,
    ExportRequest,
    SheetConfiguration,
    MultiSheetExportRequest,
)
from huvr_export.schemas.media import ImageDownloadRequest, MultipleImagesRequest
from huvr_export.schemas.template import TemplateCreate, TemplateUpdate, TemplateResponse, TemplateSummary

__all__ = [
    "FieldMapping",
    "ExportRequest",
    "SheetConfiguration",
    "MultiSheetExportRequest",
    "ImageDownloadRequest",
    "MultipleImagesRequest",
    "TemplateCreate",
    "TemplateUpdate",
    "TemplateResponse",
    "TemplateSummary",
]
