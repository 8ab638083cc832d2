"""
Export Planner

Turns sheet configurations into rows of resolved, stringified cell values.

For each export the planner works out every entity type it needs (sheet
roots plus the related types named by qualified field mappings), fetches
each type once through the entity fetch port, builds one read-only
``FieldResolver`` over the results and resolves every selected mapping per
record. The resulting ``Workbook`` is handed to the workbook writer.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional
import logging
import threading

from huvr_export.schemas.export import ExportRequest, FieldMapping, MultiSheetExportRequest, SheetConfiguration
from huvr_export.services.field_resolver import (
    FieldResolver,
    Record,
    format_cell,
    get_nested_value,
    get_required_related_entities,
    key_string,
)
from huvr_export.services.huvr_client import EntityFetchPort, raise_if_cancelled
from huvr_export.services.relationship_catalog import (
    RelationshipCatalog,
    default_catalog,
    normalize_entity_type,
)

logger = logging.getLogger(__name__)


class ExportError(Exception):
    """An export could not be produced."""


class EmptyExportError(ExportError):
    """The export has no rows to write."""


class UnknownEntityTypeError(ExportError):
    """A sheet names an entity type with no canonical name."""


@dataclass
class Sheet:
    name: str
    entity_type: str
    headers: List[str]
    rows: List[List[str]] = field(default_factory=list)
    start_row: int = 1


@dataclass
class Workbook:
    sheets: List[Sheet] = field(default_factory=list)


def _selected(mappings: Iterable[FieldMapping]) -> List[FieldMapping]:
    return [m for m in mappings if m.is_selected]


class ExportPlanner:
    def __init__(
        self,
        port: EntityFetchPort,
        catalog: RelationshipCatalog = default_catalog,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.port = port
        self.catalog = catalog
        self.cancel_event = cancel_event

    def _canonical(self, entity_type: str) -> str:
        canonical = normalize_entity_type(entity_type)
        if canonical is None:
            raise UnknownEntityTypeError(f"Unknown entity type: {entity_type}")
        return canonical

    def _fetch_collections(self, entity_types: Iterable[str]) -> Dict[str, List[Record]]:
        """Fetch each distinct type once, in first-seen order."""
        collections: Dict[str, List[Record]] = {}
        for entity_type in entity_types:
            if entity_type in collections:
                continue
            raise_if_cancelled(self.cancel_event)
            collections[entity_type] = self.port.fetch_all(entity_type, cancel_event=self.cancel_event)
            logger.info(f"Fetched {len(collections[entity_type])} {entity_type} records for export")
        return collections

    def _required_types(self, entity_type: str, mappings: Iterable[FieldMapping]) -> List[str]:
        related = get_required_related_entities(entity_type, mappings, self.catalog)
        return [entity_type] + sorted(related - {entity_type})

    def _build_rows(
        self,
        entity_type: str,
        records: Iterable[Record],
        mappings: List[FieldMapping],
        resolver: FieldResolver,
    ) -> List[List[str]]:
        return [
            [format_cell(resolver.resolve(record, m.api_field, entity_type)) for m in mappings]
            for record in records
        ]

    def filter_by_parent(
        self,
        entity_type: str,
        records: Iterable[Record],
        parent_type: str,
        parent_id: str,
    ) -> List[Record]:
        """
        Keep records whose foreign key to ``parent_type`` equals ``parent_id``.

        A parent type with no configured relationship matches nothing.
        """
        relationship = self.catalog.relationship_to(entity_type, parent_type)
        if relationship is None:
            logger.warning(f"No relationship from {entity_type} to {parent_type}; parent filter matches nothing")
            return []
        wanted = key_string(parent_id)
        return [r for r in records if key_string(get_nested_value(r, relationship.source_key)) == wanted]

    def _plan_sheet(self, config: SheetConfiguration, resolver: FieldResolver) -> Optional[Sheet]:
        entity_type = self._canonical(config.entity_type)
        records = resolver.records(entity_type)
        if config.filter_by_parent_id and config.filter_by_parent_type:
            records = self.filter_by_parent(
                entity_type, records, config.filter_by_parent_type, config.filter_by_parent_id
            )
        if not records:
            logger.info(f"Sheet {config.sheet_name or entity_type!r} has no rows; skipping")
            return None
        mappings = _selected(config.mappings)
        return Sheet(
            name=config.sheet_name or entity_type,
            entity_type=entity_type,
            headers=[m.column_name for m in mappings],
            rows=self._build_rows(entity_type, records, mappings, resolver),
            start_row=max(1, config.start_row),
        )

    def plan_single_sheet(self, request: ExportRequest) -> Sheet:
        """Fetch one entity type (plus any joined types) and resolve every selected mapping per record."""
        entity_type = self._canonical(request.entity_type)
        mappings = _selected(request.mappings)
        collections = self._fetch_collections(self._required_types(entity_type, mappings))
        records = collections[entity_type]
        if not records:
            raise EmptyExportError("No data available")
        resolver = FieldResolver.build_cache(collections, self.catalog)
        return Sheet(
            name=entity_type,
            entity_type=entity_type,
            headers=[m.column_name for m in mappings],
            rows=self._build_rows(entity_type, records, mappings, resolver),
        )

    def plan_multi_sheet(self, request: MultiSheetExportRequest) -> Workbook:
        """
        Plan every sheet; sheets left empty after parent filtering are skipped.

        With ``link_related_data`` every required type across all sheets is
        fetched exactly once and one resolver is shared. Without it each
        sheet is planned on its own fetches.
        """
        workbook = Workbook()
        if request.link_related_data:
            needed: List[str] = []
            for config in request.sheets:
                entity_type = self._canonical(config.entity_type)
                needed.extend(self._required_types(entity_type, _selected(config.mappings)))
            resolver = FieldResolver.build_cache(self._fetch_collections(needed), self.catalog)
            for config in request.sheets:
                sheet = self._plan_sheet(config, resolver)
                if sheet is not None:
                    workbook.sheets.append(sheet)
        else:
            for config in request.sheets:
                entity_type = self._canonical(config.entity_type)
                types = self._required_types(entity_type, _selected(config.mappings))
                resolver = FieldResolver.build_cache(self._fetch_collections(types), self.catalog)
                sheet = self._plan_sheet(config, resolver)
                if sheet is not None:
                    workbook.sheets.append(sheet)

        if not workbook.sheets:
            raise EmptyExportError("No data for any sheet")
        logger.info(f"Planned workbook with {len(workbook.sheets)} sheet(s)")
        return workbook
