"""
Snapshot endpoints: a root record gathered together with its dependent collections.
"""
from dataclasses import asdict
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from huvr_export.config import settings
from huvr_export.db.huvr import require_huvr
from huvr_export.schemas.export import DefectsSummaryResponse, ProjectSnapshotsRequest
from huvr_export.services.aggregator import SnapshotGatherError
from huvr_export.services.data_gatherer import DataGatherer
from huvr_export.services.huvr_client import HuvrApiClient, HuvrApiError, HuvrNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def get_gatherer(client: HuvrApiClient = Depends(require_huvr)) -> DataGatherer:
    return DataGatherer(client, max_concurrency=settings.GATHER_MAX_CONCURRENCY)


def _raise_for_fetch(e: HuvrApiError, what: str):
    if isinstance(e, HuvrNotFoundError):
        raise HTTPException(status_code=404, detail=f"{what} not found")
    raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")


@router.get("/projects/{project_id}/snapshot")
def get_project_snapshot(
    project_id: str,
    include_asset: bool = True,
    gatherer: DataGatherer = Depends(get_gatherer),
):
    """Project with its asset, media, checklists, defects and measurements."""
    try:
        return asdict(gatherer.gather_project(project_id, include_asset=include_asset))
    except HuvrApiError as e:
        _raise_for_fetch(e, "Project")


@router.post("/projects/snapshots")
def get_project_snapshots(request: ProjectSnapshotsRequest, gatherer: DataGatherer = Depends(get_gatherer)):
    """Snapshots for several projects, in request order."""
    try:
        snapshots = gatherer.gather_projects(
            request.project_ids,
            include_asset=request.include_asset,
            max_concurrency=request.max_concurrency,
        )
    except SnapshotGatherError as e:
        raise HTTPException(
            status_code=502,
            detail={
                "message": str(e),
                "failures": {root_id: str(exc) for root_id, exc in e.failures},
            },
        )
    return [asdict(s) for s in snapshots]


@router.get("/tasks/{task_id}/snapshot")
def get_task_snapshot(task_id: str, gatherer: DataGatherer = Depends(get_gatherer)):
    """Task with its project, asset, findings, library items, measurements and media."""
    try:
        return asdict(gatherer.gather_task(task_id))
    except HuvrApiError as e:
        _raise_for_fetch(e, "Task")


@router.get("/assets/{asset_id}/snapshot")
def get_asset_snapshot(asset_id: str, gatherer: DataGatherer = Depends(get_gatherer)):
    """Asset with every project that uses it, each gathered as a project snapshot."""
    try:
        return asdict(gatherer.gather_asset(asset_id))
    except HuvrApiError as e:
        _raise_for_fetch(e, "Asset")
    except SnapshotGatherError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.get("/defects/summary", response_model=DefectsSummaryResponse)
def get_defects_summary(
    project_id: Optional[str] = None,
    asset_id: Optional[str] = None,
    severity: Optional[str] = None,
    status: Optional[str] = None,
    include_defects: bool = Query(False),
    gatherer: DataGatherer = Depends(get_gatherer),
):
    """Defect counts by severity, status and type."""
    filters = {"project_id": project_id, "asset_id": asset_id, "severity": severity, "status": status}
    try:
        summary = gatherer.summarize_defects({k: v for k, v in filters.items() if v is not None})
    except HuvrApiError as e:
        raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")
    result = asdict(summary)
    if not include_defects:
        result["defects"] = []
    return result


@router.get("/workspaces/summary")
def get_workspace_summary(gatherer: DataGatherer = Depends(get_gatherer)):
    """Workspaces with total and active user counts and project and asset totals."""
    try:
        return asdict(gatherer.summarize_workspace())
    except HuvrApiError as e:
        raise HTTPException(status_code=502, detail=f"HUVR API error: {e}")
