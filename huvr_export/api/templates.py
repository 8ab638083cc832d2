from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import List, Optional

from huvr_export.db.huvr import require_huvr
from huvr_export.db.session import get_db
from huvr_export.api.exports import export_multi, export_single
from huvr_export.models.template import ExportTemplateType
from huvr_export.schemas.template import TemplateCreate, TemplateResponse, TemplateSummary, TemplateUpdate
from huvr_export.services.huvr_client import HuvrApiClient
from huvr_export.services.template_service import TemplateService

router = APIRouter()


def get_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    return x_user_id or "anonymous"


@router.get("", response_model=List[TemplateSummary])
def list_templates(
    search: Optional[str] = None,
    template_type: Optional[ExportTemplateType] = None,
    db: Session = Depends(get_db),
):
    """List template summaries, optionally filtered by search term or type"""
    service = TemplateService(db)
    if search:
        templates = service.search(search)
    elif template_type:
        templates = service.by_type(template_type)
    else:
        templates = service.list_templates()
    return [service.summarize(t) for t in templates]


@router.post("", response_model=TemplateResponse, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
def create_template(
    request: TemplateCreate,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    """Save a new export template"""
    return TemplateService(db).create(request, user_id)


@router.get("/{template_id}", response_model=TemplateResponse, response_model_by_alias=False)
def get_template(template_id: str, db: Session = Depends(get_db)):
    template = TemplateService(db).get(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.put("/{template_id}", response_model=TemplateResponse, response_model_by_alias=False)
def update_template(template_id: str, request: TemplateUpdate, db: Session = Depends(get_db)):
    template = TemplateService(db).update(template_id, request)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")
    return template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: str, db: Session = Depends(get_db)):
    if not TemplateService(db).delete(template_id):
        raise HTTPException(status_code=404, detail="Template not found")


@router.post("/{template_id}/duplicate", response_model=TemplateResponse, response_model_by_alias=False, status_code=status.HTTP_201_CREATED)
def duplicate_template(
    template_id: str,
    user_id: str = Depends(get_user_id),
    db: Session = Depends(get_db),
):
    try:
        return TemplateService(db).duplicate(template_id, user_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/{template_id}/export")
def export_template(
    template_id: str,
    db: Session = Depends(get_db),
    client: HuvrApiClient = Depends(require_huvr),
):
    """Run the export a template describes"""
    service = TemplateService(db)
    template = service.get(template_id)
    if not template:
        raise HTTPException(status_code=404, detail="Template not found")

    if template.template_type == ExportTemplateType.SINGLE_SHEET:
        request = service.single_sheet_request(template)
        if request is None:
            raise HTTPException(status_code=400, detail="Template has no single-sheet configuration")
        return export_single(client, request)

    request = service.multi_sheet_request(template)
    if request is None:
        raise HTTPException(status_code=400, detail="Template has no multi-sheet configuration")
    return export_multi(client, request)
