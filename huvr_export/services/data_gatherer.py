"""
Snapshot assemblers for HUVR projects, tasks and assets.

A snapshot is a root record plus its dependent collections. The root fetch
is mandatory; parent records that may legitimately be missing (a project's
asset, a task's project, library items) are optional and come back as None
or an empty list, with the part name listed in ``unresolved``.
"""
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional
import logging
import threading

from huvr_export.services.aggregator import BoundedAggregator, FetchContext, DEFAULT_MAX_CONCURRENCY
from huvr_export.services.field_resolver import get_nested_value, key_string
from huvr_export.services.huvr_client import EntityFetchPort, Record
from huvr_export.services.relationship_catalog import (
    ASSET,
    CHECKLIST,
    DEFECT,
    INSPECTION_MEDIA,
    LIBRARY_MEDIA,
    MEASUREMENT,
    PROJECT,
    TASK,
    USER,
    WORKSPACE,
)

logger = logging.getLogger(__name__)


@dataclass
class ProjectSnapshot:
    project: Record
    asset: Optional[Record] = None
    media: List[Record] = field(default_factory=list)
    checklists: List[Record] = field(default_factory=list)
    defects: List[Record] = field(default_factory=list)
    measurements: List[Record] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)


@dataclass
class TaskSnapshot:
    """A task with its project's assets, findings, library items, CMLs and media."""
    task: Record
    project: Optional[Record] = None
    asset: Optional[Record] = None
    findings: List[Record] = field(default_factory=list)
    library_items: List[Record] = field(default_factory=list)
    measurements: List[Record] = field(default_factory=list)
    inspection_media: List[Record] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)


@dataclass
class AssetSnapshot:
    asset: Record
    projects: List[Record] = field(default_factory=list)
    project_snapshots: List[ProjectSnapshot] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)


@dataclass
class DefectsSummary:
    total_defects: int = 0
    by_severity: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)
    defects: List[Record] = field(default_factory=list)


@dataclass
class WorkspaceSummary:
    workspaces: List[Record] = field(default_factory=list)
    total_users: int = 0
    total_projects: int = 0
    total_assets: int = 0
    active_users: int = 0


def _project_children(ctx: FetchContext, project_id: str) -> Dict[str, List[Record]]:
    by_project = {"project_id": project_id}
    return {
        "media": ctx.fetch_all(INSPECTION_MEDIA, by_project),
        "checklists": ctx.fetch_all(CHECKLIST, by_project),
        "defects": ctx.fetch_all(DEFECT, by_project),
        "measurements": ctx.fetch_all(MEASUREMENT, by_project),
    }


def project_assembler(include_asset: bool = True):
    """Assembler for ``ProjectSnapshot``; the asset is skipped when ``include_asset`` is False."""

    def assemble(ctx: FetchContext, project_id: str) -> ProjectSnapshot:
        snapshot = ProjectSnapshot(project=ctx.fetch_one(PROJECT, project_id))
        asset_id = key_string(snapshot.project.get("AssetId"))
        if include_asset and asset_id:
            snapshot.asset = ctx.fetch_optional_one(snapshot, "asset", ASSET, asset_id)
        children = _project_children(ctx, project_id)
        snapshot.media = children["media"]
        snapshot.checklists = children["checklists"]
        snapshot.defects = children["defects"]
        snapshot.measurements = children["measurements"]
        return snapshot

    return assemble


def _library_id(project: Record) -> Optional[str]:
    return key_string(project.get("LibraryId")) or key_string(get_nested_value(project, "Library.Id"))


def task_assembler(ctx: FetchContext, task_id: str) -> TaskSnapshot:
    snapshot = TaskSnapshot(task=ctx.fetch_one(TASK, task_id))
    project_id = key_string(snapshot.task.get("ProjectId")) or key_string(get_nested_value(snapshot.task, "Project.Id"))
    if not project_id:
        return snapshot
    snapshot.project = ctx.fetch_optional_one(snapshot, "project", PROJECT, project_id)
    if snapshot.project is None:
        return snapshot

    asset_id = key_string(snapshot.project.get("AssetId"))
    if asset_id:
        snapshot.asset = ctx.fetch_optional_one(snapshot, "asset", ASSET, asset_id)
    library_id = _library_id(snapshot.project)
    if library_id:
        snapshot.library_items = ctx.fetch_optional_all(
            snapshot, "library_items", LIBRARY_MEDIA, {"library_id": library_id}
        )
    children = _project_children(ctx, project_id)
    snapshot.findings = children["defects"]
    snapshot.measurements = children["measurements"]
    snapshot.inspection_media = children["media"]
    return snapshot


class DataGatherer:
    """Gathers project, task and asset snapshots from the HUVR API."""

    def __init__(self, port: EntityFetchPort, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        self.port = port
        self.aggregator = BoundedAggregator(port, max_concurrency)

    def gather_project(
        self,
        project_id: str,
        include_asset: bool = True,
        cancel_event: Optional[threading.Event] = None,
    ) -> ProjectSnapshot:
        return self.aggregator.gather_snapshot(project_id, project_assembler(include_asset), cancel_event)

    def gather_projects(
        self,
        project_ids: List[str],
        include_asset: bool = True,
        max_concurrency: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ProjectSnapshot]:
        return self.aggregator.gather_many(
            project_ids, project_assembler(include_asset), max_concurrency, cancel_event
        )

    def gather_projects_by_filter(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        include_asset: bool = True,
        max_projects: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[ProjectSnapshot]:
        return self.aggregator.gather_by_filter(
            PROJECT,
            filters,
            project_assembler(include_asset),
            max_root_count=max_projects,
            cancel_event=cancel_event,
        )

    def gather_task(self, task_id: str, cancel_event: Optional[threading.Event] = None) -> TaskSnapshot:
        return self.aggregator.gather_snapshot(task_id, task_assembler, cancel_event)

    def gather_tasks(
        self,
        task_ids: List[str],
        max_concurrency: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[TaskSnapshot]:
        return self.aggregator.gather_many(task_ids, task_assembler, max_concurrency, cancel_event)

    def gather_asset(self, asset_id: str, cancel_event: Optional[threading.Event] = None) -> AssetSnapshot:
        """The asset, its projects, and a full snapshot of each project (asset not re-fetched)."""
        ctx = FetchContext(self.port, cancel_event)
        snapshot = AssetSnapshot(asset=ctx.fetch_one(ASSET, asset_id))
        snapshot.projects = ctx.fetch_all(PROJECT, {"asset_search": asset_id})
        project_ids = [str(p["Id"]) for p in snapshot.projects if p.get("Id") is not None]
        snapshot.project_snapshots = self.gather_projects(
            project_ids, include_asset=False, cancel_event=cancel_event
        )
        return snapshot

    def summarize_defects(self, filters: Optional[Mapping[str, Any]] = None) -> DefectsSummary:
        defects = self.port.fetch_all(DEFECT, filters)

        def count_by(key: str) -> Dict[str, int]:
            return dict(Counter(str(d.get(key) or "Unknown") for d in defects))

        logger.info(f"Summarized {len(defects)} defects")
        return DefectsSummary(
            total_defects=len(defects),
            by_severity=count_by("Severity"),
            by_status=count_by("Status"),
            by_type=count_by("DefectType"),
            defects=defects,
        )

    def summarize_workspace(self, cancel_event: Optional[threading.Event] = None) -> WorkspaceSummary:
        """Workspaces plus user, project and asset totals; users count as active when ``IsActive`` is truthy."""
        ctx = FetchContext(self.port, cancel_event)
        workspaces = ctx.fetch_all(WORKSPACE)
        users = ctx.fetch_all(USER)
        total_projects = len(ctx.fetch_all(PROJECT))
        total_assets = len(ctx.fetch_all(ASSET))
        logger.info(f"Summarized {len(workspaces)} workspaces and {len(users)} users")
        return WorkspaceSummary(
            workspaces=workspaces,
            total_users=len(users),
            total_projects=total_projects,
            total_assets=total_assets,
            active_users=sum(1 for u in users if u.get("IsActive")),
        )
