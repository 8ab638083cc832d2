import uuid
import enum
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text, Enum as SQLEnum, JSON, Uuid
from huvr_export.db.session import Base


class ExportTemplateType(str, enum.Enum):
    SINGLE_SHEET = "single_sheet"
    MULTI_SHEET = "multi_sheet"


class ExportTemplate(Base):
    __tablename__ = "export_templates"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    template_type = Column(SQLEnum(ExportTemplateType), nullable=False)

    # ExportRequest / MultiSheetExportRequest as JSON (camelCase aliases)
    single_sheet_config = Column(JSON, nullable=True)
    multi_sheet_config = Column(JSON, nullable=True)

    created_by = Column(String, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<ExportTemplate {self.name} ({self.template_type})>"
