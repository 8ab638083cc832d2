from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional
from datetime import datetime
from uuid import UUID
from huvr_export.models.template import ExportTemplateType
from huvr_export.schemas.export import ExportRequest, MultiSheetExportRequest


class TemplateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    template_type: ExportTemplateType
    single_sheet_config: Optional[ExportRequest] = None
    multi_sheet_config: Optional[MultiSheetExportRequest] = None

    @model_validator(mode="after")
    def check_config_matches_type(self):
        if self.template_type == ExportTemplateType.SINGLE_SHEET and self.single_sheet_config is None:
            raise ValueError("single_sheet_config is required for a single_sheet template")
        if self.template_type == ExportTemplateType.MULTI_SHEET and self.multi_sheet_config is None:
            raise ValueError("multi_sheet_config is required for a multi_sheet template")
        return self


class TemplateUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    single_sheet_config: Optional[ExportRequest] = None
    multi_sheet_config: Optional[MultiSheetExportRequest] = None


class TemplateResponse(BaseModel):
    id: UUID
    name: str
    description: str
    template_type: ExportTemplateType
    single_sheet_config: Optional[ExportRequest] = None
    multi_sheet_config: Optional[MultiSheetExportRequest] = None
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TemplateSummary(BaseModel):
    id: UUID
    name: str
    description: str
    template_type: ExportTemplateType
    created_by: str
    created_at: datetime
    updated_at: datetime

    # Summary information
    entity_types: str
    field_count: int
    sheet_count: int
