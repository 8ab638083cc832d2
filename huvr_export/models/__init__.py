from huvr_export.models.template import ExportTemplate, ExportTemplateType

__all__ = [
    "ExportTemplate",
    "ExportTemplateType",
]
