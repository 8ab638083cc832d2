"""
Field Resolver

Resolves field paths against fetched HUVR records. A path is either a
nested lookup on the record itself ("Name", "Parent.Name", "Tags[0]") or a
one-hop join qualified with a related entity type ("Asset.Name"), followed
through the relationship catalog and an in-memory entity cache.

Resolution never raises for missing data: an absent field, an unconfigured
relationship or an unmatched foreign key all resolve to None, which exports
render as an empty cell.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple
import json
import logging
import re

from huvr_export.services.relationship_catalog import (
    RelationshipCatalog,
    default_catalog,
    normalize_entity_type,
)

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]

_MISSING = object()
_INDEXED_SEGMENT = re.compile(r"^([^\[\]]*)((?:\[\d+\])*)$")
_INDEX = re.compile(r"\[(\d+)\]")


def _parse_path(path: str) -> Optional[List[Any]]:
    """
    Split a dot path into steps: str keys and int list indexes.

    "Defects[0].Title" -> ["Defects", 0, "Title"]. Returns None for a
    malformed path.
    """
    steps: List[Any] = []
    for segment in path.split("."):
        match = _INDEXED_SEGMENT.match(segment.strip())
        if not match:
            return None
        name, indexes = match.groups()
        if name:
            steps.append(int(name) if name.isdigit() else name)
        elif not indexes:
            return None
        steps.extend(int(i) for i in _INDEX.findall(indexes))
    return steps


def _lookup_key(mapping: Mapping[str, Any], key: str) -> Any:
    if key in mapping:
        return mapping[key]
    # API JSON and configured paths may differ in case ("parent.name" vs "Parent")
    lowered = key.lower()
    for candidate, value in mapping.items():
        if isinstance(candidate, str) and candidate.lower() == lowered:
            return value
    return _MISSING


def get_nested_value(record: Any, path: Optional[str]) -> Any:
    """
    Walk ``path`` into nested mappings and lists.

    Returns None when any step is absent, of the wrong type, or the path is
    empty or malformed.
    """
    if not path or record is None:
        return None
    steps = _parse_path(path)
    if steps is None:
        return None
    current: Any = record
    for step in steps:
        if isinstance(current, Mapping):
            current = _lookup_key(current, str(step))
        elif isinstance(current, (list, tuple)) and isinstance(step, int):
            current = current[step] if step < len(current) else _MISSING
        else:
            return None
        if current is _MISSING:
            return None
    return current


def key_string(value: Any) -> Optional[str]:
    """Stringified key used for foreign-key comparison; None when there is no key."""
    if value is None:
        return None
    if isinstance(value, bool):
        text = "True" if value else "False"
    elif isinstance(value, float) and value.is_integer():
        text = str(int(value))
    else:
        text = str(value)
    return text or None


def format_cell(value: Any) -> str:
    """Render a resolved value as spreadsheet cell text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (Mapping, list, tuple)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


def split_qualified_path(
    field_path: str,
    catalog: RelationshipCatalog = default_catalog,
) -> Optional[Tuple[str, str]]:
    """
    Return (canonical related type, remaining path) when the first segment
    names an entity type; None for an unqualified path.
    """
    if not field_path or "." not in field_path:
        return None
    head, rest = field_path.split(".", 1)
    related = normalize_entity_type(head)
    if related is None or not rest:
        return None
    return related, rest


class FieldResolver:
    """
    Read-only resolver over an entity cache built for one export.

    Records are indexed by every field that a declared relationship targets,
    so a join is a dictionary lookup. The first record seen for a key wins.
    """

    def __init__(
        self,
        entity_collections: Mapping[str, Iterable[Record]],
        catalog: RelationshipCatalog = default_catalog,
    ):
        self.catalog = catalog
        self._cache: Dict[str, Tuple[Record, ...]] = {}
        self._index: Dict[str, Dict[str, Dict[str, Record]]] = {}
        for entity_type, records in entity_collections.items():
            canonical = normalize_entity_type(entity_type) or entity_type
            self._cache[canonical] = tuple(records)
            self._index[canonical] = self._build_index(canonical, self._cache[canonical])

    @classmethod
    def build_cache(
        cls,
        entity_collections: Mapping[str, Iterable[Record]],
        catalog: RelationshipCatalog = default_catalog,
    ) -> "FieldResolver":
        return cls(entity_collections, catalog)

    def _build_index(self, entity_type: str, records: Tuple[Record, ...]) -> Dict[str, Dict[str, Record]]:
        index: Dict[str, Dict[str, Record]] = {}
        for key_field in self.catalog.key_fields(entity_type):
            by_value: Dict[str, Record] = {}
            for record in records:
                value = key_string(get_nested_value(record, key_field))
                if value is not None and value not in by_value:
                    by_value[value] = record
            index[key_field] = by_value
        return index

    @property
    def entity_types(self) -> List[str]:
        return list(self._cache)

    def records(self, entity_type: str) -> List[Record]:
        canonical = normalize_entity_type(entity_type) or entity_type
        return list(self._cache.get(canonical, ()))

    def find(self, entity_type: str, key_field: str, value: Any) -> Optional[Record]:
        """First cached record of ``entity_type`` whose ``key_field`` stringifies to ``value``."""
        canonical = normalize_entity_type(entity_type) or entity_type
        wanted = key_string(value)
        if wanted is None or canonical not in self._cache:
            return None
        by_value = self._index[canonical].get(key_field)
        if by_value is not None:
            return by_value.get(wanted)
        # Key not declared by any relationship: fall back to a scan
        for record in self._cache[canonical]:
            if key_string(get_nested_value(record, key_field)) == wanted:
                return record
        return None

    def find_related(self, record: Record, owner_entity_type: str, related_type: str) -> Optional[Record]:
        """Follow the configured single-valued relationship from ``record`` to ``related_type``."""
        relationship = self.catalog.relationship_to(owner_entity_type, related_type)
        if relationship is None or relationship.is_collection:
            return None
        foreign_key = get_nested_value(record, relationship.source_key)
        if key_string(foreign_key) is None:
            return None
        return self.find(relationship.target_entity, relationship.target_key, foreign_key)

    def resolve(self, record: Record, field_path: str, owner_entity_type: str) -> Any:
        """
        Resolve ``field_path`` on ``record`` of type ``owner_entity_type``.

        Only one relationship hop is followed; the remainder of a qualified
        path is looked up directly on the related record.
        """
        if not field_path:
            return None
        qualified = split_qualified_path(field_path, self.catalog)
        if qualified is None:
            return get_nested_value(record, field_path)
        related_type, rest = qualified
        related = self.find_related(record, owner_entity_type, related_type)
        if related is None:
            return None
        return get_nested_value(related, rest)


def _selected_paths(mappings: Iterable[Any]) -> Iterable[str]:
    for mapping in mappings:
        if getattr(mapping, "is_selected", True) and getattr(mapping, "api_field", ""):
            yield mapping.api_field


def get_required_related_entities(
    source_entity_type: str,
    mappings: Iterable[Any],
    catalog: RelationshipCatalog = default_catalog,
) -> Set[str]:
    """
    Related entity types that selected mappings join to.

    Prefixes with no configured relationship from ``source_entity_type`` are
    dropped rather than failing the export.
    """
    related: Set[str] = set()
    for path in _selected_paths(mappings):
        qualified = split_qualified_path(path, catalog)
        if qualified is None:
            continue
        relationship = catalog.relationship_to(source_entity_type, qualified[0])
        if relationship is not None and not relationship.is_collection:
            related.add(relationship.target_entity)
        else:
            logger.debug(f"Ignoring unconfigured join {path!r} on {source_entity_type}")
    return related


def get_required_related_entities_for_sheets(
    sheets: Iterable[Any],
    catalog: RelationshipCatalog = default_catalog,
) -> Dict[str, Set[str]]:
    """Per sheet entity type, the related types its mappings need. Sheets sharing a type are merged."""
    result: Dict[str, Set[str]] = {}
    for sheet in sheets:
        entity_type = normalize_entity_type(sheet.entity_type) or sheet.entity_type
        needed = get_required_related_entities(entity_type, sheet.mappings, catalog)
        result.setdefault(entity_type, set()).update(needed)
    return result
