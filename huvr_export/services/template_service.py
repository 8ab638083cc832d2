"""
Service for saved export templates.

Templates keep a single- or multi-sheet export configuration so it can be
re-run later. Configurations are stored as JSON using the request aliases.
"""
from datetime import datetime
from typing import List, Optional
import logging
import uuid

from sqlalchemy import or_
from sqlalchemy.orm import Session

from huvr_export.models.template import ExportTemplate, ExportTemplateType
from huvr_export.schemas.export import ExportRequest, MultiSheetExportRequest
from huvr_export.schemas.template import TemplateCreate, TemplateSummary, TemplateUpdate

logger = logging.getLogger(__name__)


def _dump(config) -> Optional[dict]:
    return config.model_dump(by_alias=True) if config is not None else None


def _as_uuid(template_id) -> Optional[uuid.UUID]:
    if isinstance(template_id, uuid.UUID):
        return template_id
    try:
        return uuid.UUID(str(template_id))
    except ValueError:
        return None


class TemplateService:
    def __init__(self, db: Session):
        self.db = db

    def list_templates(self) -> List[ExportTemplate]:
        """All templates, most recently updated first."""
        return self.db.query(ExportTemplate).order_by(ExportTemplate.updated_at.desc()).all()

    def list_summaries(self) -> List[TemplateSummary]:
        return [self.summarize(t) for t in self.list_templates()]

    def get(self, template_id) -> Optional[ExportTemplate]:
        template_uuid = _as_uuid(template_id)
        if template_uuid is None:
            return None
        return self.db.query(ExportTemplate).filter(ExportTemplate.id == template_uuid).first()

    def create(self, request: TemplateCreate, user_id: str) -> ExportTemplate:
        now = datetime.utcnow()
        template = ExportTemplate(
            name=request.name,
            description=request.description,
            template_type=request.template_type,
            single_sheet_config=_dump(request.single_sheet_config),
            multi_sheet_config=_dump(request.multi_sheet_config),
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(template)
        self.db.commit()
        self.db.refresh(template)
        logger.info(f"Created export template {template.id} ({template.name})")
        return template

    def update(self, template_id, request: TemplateUpdate) -> Optional[ExportTemplate]:
        """Name and description always change; configs only when supplied. None if missing."""
        template = self.get(template_id)
        if template is None:
            return None
        template.name = request.name
        template.description = request.description
        if request.single_sheet_config is not None:
            template.single_sheet_config = _dump(request.single_sheet_config)
        if request.multi_sheet_config is not None:
            template.multi_sheet_config = _dump(request.multi_sheet_config)
        template.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(template)
        return template

    def delete(self, template_id) -> bool:
        template = self.get(template_id)
        if template is None:
            return False
        self.db.delete(template)
        self.db.commit()
        logger.info(f"Deleted export template {template_id}")
        return True

    def search(self, term: str) -> List[ExportTemplate]:
        """Case-insensitive match on name or description."""
        pattern = f"%{term}%"
        return (
            self.db.query(ExportTemplate)
            .filter(or_(ExportTemplate.name.ilike(pattern), ExportTemplate.description.ilike(pattern)))
            .order_by(ExportTemplate.updated_at.desc())
            .all()
        )

    def by_type(self, template_type: ExportTemplateType) -> List[ExportTemplate]:
        return (
            self.db.query(ExportTemplate)
            .filter(ExportTemplate.template_type == template_type)
            .order_by(ExportTemplate.updated_at.desc())
            .all()
        )

    def duplicate(self, template_id, user_id: str) -> ExportTemplate:
        original = self.get(template_id)
        if original is None:
            raise ValueError(f"Template with ID {template_id} not found")
        now = datetime.utcnow()
        copy = ExportTemplate(
            name=f"{original.name} (Copy)",
            description=original.description,
            template_type=original.template_type,
            single_sheet_config=original.single_sheet_config,
            multi_sheet_config=original.multi_sheet_config,
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(copy)
        self.db.commit()
        self.db.refresh(copy)
        return copy

    @staticmethod
    def single_sheet_request(template: ExportTemplate) -> Optional[ExportRequest]:
        if template.single_sheet_config is None:
            return None
        return ExportRequest.model_validate(template.single_sheet_config)

    @staticmethod
    def multi_sheet_request(template: ExportTemplate) -> Optional[MultiSheetExportRequest]:
        if template.multi_sheet_config is None:
            return None
        return MultiSheetExportRequest.model_validate(template.multi_sheet_config)

    def summarize(self, template: ExportTemplate) -> TemplateSummary:
        entity_types = "Unknown"
        field_count = 0
        sheet_count = 1
        if template.template_type == ExportTemplateType.SINGLE_SHEET:
            single = self.single_sheet_request(template)
            if single is not None:
                entity_types = single.entity_type
                field_count = sum(1 for m in single.mappings if m.is_selected)
        else:
            multi = self.multi_sheet_request(template)
            if multi is not None:
                # distinct, in sheet order
                entity_types = ", ".join(dict.fromkeys(s.entity_type for s in multi.sheets))
                field_count = sum(1 for s in multi.sheets for m in s.mappings if m.is_selected)
                sheet_count = len(multi.sheets)
        return TemplateSummary(
            id=template.id,
            name=template.name,
            description=template.description,
            template_type=template.template_type,
            created_by=template.created_by,
            created_at=template.created_at,
            updated_at=template.updated_at,
            entity_types=entity_types,
            field_count=field_count,
            sheet_count=sheet_count,
        )
