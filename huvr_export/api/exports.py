"""
Spreadsheet export endpoints (single-sheet and multi-sheet).
"""
from datetime import datetime
from typing import Callable
import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from huvr_export.db.huvr import require_huvr
from huvr_export.schemas.export import ExportRequest, MultiSheetExportRequest
from huvr_export.services.export_planner import (
    EmptyExportError,
    ExportPlanner,
    UnknownEntityTypeError,
    Workbook,
)
from huvr_export.services.huvr_client import HuvrApiClient, HuvrApiError
from huvr_export.services.workbook_writer import XLSX_MEDIA_TYPE, write_workbook

logger = logging.getLogger(__name__)

router = APIRouter()


def run_export(plan: Callable[[], Workbook], filename_stem: str) -> Response:
    """Plan, serialise and return the workbook as an .xlsx attachment; map planner errors to HTTP."""
    try:
        workbook = plan()
    except UnknownEntityTypeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EmptyExportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except HuvrApiError as e:
        logger.error(f"Export failed fetching from HUVR: {e}")
        raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")

    filename = f"{filename_stem}_{datetime.now():%Y%m%d_%H%M%S}.xlsx"
    return Response(
        content=write_workbook(workbook),
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def export_single(client: HuvrApiClient, request: ExportRequest) -> Response:
    planner = ExportPlanner(client)
    return run_export(lambda: Workbook(sheets=[planner.plan_single_sheet(request)]), request.entity_type)


def export_multi(client: HuvrApiClient, request: MultiSheetExportRequest) -> Response:
    if not request.sheets:
        raise HTTPException(status_code=400, detail="At least one sheet is required")
    planner = ExportPlanner(client)
    return run_export(lambda: planner.plan_multi_sheet(request), "MultiSheetExport")


@router.post("/exports/single")
def export_single_sheet(request: ExportRequest, client: HuvrApiClient = Depends(require_huvr)):
    """Export one entity type to a single worksheet."""
    return export_single(client, request)


@router.post("/exports/multi-sheet")
def export_multi_sheet(request: MultiSheetExportRequest, client: HuvrApiClient = Depends(require_huvr)):
    """Export several sheets; related data is fetched once and shared when linkRelatedData is set."""
    return export_multi(client, request)
