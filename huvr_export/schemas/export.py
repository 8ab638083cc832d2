"""Schemas for export requests (single- and multi-sheet) and catalog responses."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional


class FieldMapping(BaseModel):
    """Maps one API field path (direct, nested, or "<EntityType>.<field>") onto an output column."""
    api_field: str = Field("", alias="apiField")
    excel_column: str = Field("", alias="excelColumn")
    is_selected: bool = Field(True, alias="isSelected")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def column_name(self) -> str:
        """Configured column header, falling back to the field path when blank."""
        return self.excel_column if self.excel_column and self.excel_column.strip() else self.api_field


class ExportRequest(BaseModel):
    entity_type: str = Field(..., min_length=1, alias="entityType")
    mappings: List[FieldMapping] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class SheetConfiguration(BaseModel):
    sheet_name: str = Field("", alias="sheetName")
    entity_type: str = Field(..., min_length=1, alias="entityType")
    mappings: List[FieldMapping] = Field(default_factory=list)
    start_row: int = Field(1, alias="startRow")
    filter_by_parent_id: Optional[str] = Field(None, alias="filterByParentId")
    filter_by_parent_type: Optional[str] = Field(None, alias="filterByParentType")

    model_config = ConfigDict(populate_by_name=True)


class MultiSheetExportRequest(BaseModel):
    sheets: List[SheetConfiguration] = Field(default_factory=list)
    link_related_data: bool = Field(True, alias="linkRelatedData")

    model_config = ConfigDict(populate_by_name=True)


class AvailableFieldResponse(BaseModel):
    field_path: str
    display_name: str
    entity_type: str
    is_related: bool = False
    related_entity: Optional[str] = None
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RelationshipResponse(BaseModel):
    target_entity: str
    source_key: str
    target_key: str
    description: str
    is_collection: bool = False

    model_config = ConfigDict(from_attributes=True)


class ProjectSnapshotsRequest(BaseModel):
    project_ids: List[str] = Field(..., min_length=1)
    include_asset: bool = True
    max_concurrency: Optional[int] = Field(None, ge=1, le=20)


class DefectsSummaryResponse(BaseModel):
    total_defects: int
    by_severity: Dict[str, int]
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    defects: List[Dict[str, Any]] = []
