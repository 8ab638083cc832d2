"""
Relationship Catalog

Static table of one-hop foreign-key relationships between HUVR entity types,
plus the entity type name normalization applied before every lookup.

A relationship says: to go from a record of the owning type to the target
type, read ``source_key`` on the source record and find target record(s)
whose ``target_key`` equals that value. Collection relationships (one-to-many)
are only used to build nested snapshot collections; field paths may only join
across single-valued relationships.
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelationshipDefinition:
    target_entity: str
    source_key: str
    target_key: str
    description: str
    is_collection: bool = False


@dataclass(frozen=True)
class AvailableField:
    """A field offered for mapping, either direct or through one relationship hop."""
    field_path: str
    display_name: str
    entity_type: str
    is_related: bool = False
    related_entity: Optional[str] = None
    description: Optional[str] = None


# Canonical entity type names
ASSET = "Asset"
PROJECT = "Project"
DEFECT = "Defect"
DEFECT_OVERLAY = "DefectOverlay"
CHECKLIST = "Checklist"
MEASUREMENT = "Measurement"
INSPECTION_MEDIA = "InspectionMedia"
LIBRARY = "Library"
LIBRARY_MEDIA = "LibraryMedia"
USER = "User"
WORKSPACE = "Workspace"
TASK = "Task"

ENTITY_TYPES: Tuple[str, ...] = (
    ASSET, PROJECT, DEFECT, DEFECT_OVERLAY, CHECKLIST, MEASUREMENT,
    INSPECTION_MEDIA, LIBRARY, LIBRARY_MEDIA, USER, WORKSPACE, TASK,
)

# Surface names used by the front end and URLs -> canonical name.
# Keys are compared after lowercasing and dropping "-", "_" and spaces.
_ENTITY_ALIASES: Dict[str, str] = {
    "asset": ASSET, "assets": ASSET,
    "project": PROJECT, "projects": PROJECT, "workorder": PROJECT, "workorders": PROJECT,
    "defect": DEFECT, "defects": DEFECT, "finding": DEFECT, "findings": DEFECT,
    "defectoverlay": DEFECT_OVERLAY, "defectoverlays": DEFECT_OVERLAY,
    "checklist": CHECKLIST, "checklists": CHECKLIST,
    "measurement": MEASUREMENT, "measurements": MEASUREMENT, "cml": MEASUREMENT, "cmls": MEASUREMENT,
    "inspectionmedia": INSPECTION_MEDIA, "media": INSPECTION_MEDIA,
    "library": LIBRARY, "libraries": LIBRARY,
    "librarymedia": LIBRARY_MEDIA, "libraryitem": LIBRARY_MEDIA, "libraryitems": LIBRARY_MEDIA,
    "user": USER, "users": USER,
    "workspace": WORKSPACE, "workspaces": WORKSPACE,
    "task": TASK, "tasks": TASK,
}


def normalize_entity_type(name: Optional[str]) -> Optional[str]:
    """Map a surface entity name ("assets", "inspection-media", "Asset") to its canonical key."""
    if not name:
        return None
    key = name.strip().lower().replace("-", "").replace("_", "").replace(" ", "")
    return _ENTITY_ALIASES.get(key)


def _rel(target: str, source_key: str, target_key: str, description: str, is_collection: bool = False):
    return RelationshipDefinition(target, source_key, target_key, description, is_collection)


DEFAULT_RELATIONSHIPS: Dict[str, List[RelationshipDefinition]] = {
    PROJECT: [
        _rel(ASSET, "AssetId", "Id", "Parent asset information"),
        _rel(DEFECT, "Id", "ProjectId", "Related defects", is_collection=True),
        _rel(CHECKLIST, "Id", "ProjectId", "Related checklists", is_collection=True),
        _rel(MEASUREMENT, "Id", "ProjectId", "Related measurements", is_collection=True),
        _rel(INSPECTION_MEDIA, "Id", "ProjectId", "Related inspection media", is_collection=True),
        _rel(TASK, "Id", "ProjectId", "Tasks in this project", is_collection=True),
    ],
    ASSET: [
        _rel(PROJECT, "Id", "AssetId", "Projects using this asset", is_collection=True),
        _rel(LIBRARY, "LibraryId", "Id", "Associated library"),
        _rel(DEFECT, "Id", "AssetId", "Related defects", is_collection=True),
        _rel(MEASUREMENT, "Id", "AssetId", "Related measurements", is_collection=True),
    ],
    DEFECT: [
        _rel(PROJECT, "ProjectId", "Id", "Parent project"),
        _rel(ASSET, "AssetId", "Id", "Related asset"),
        _rel(USER, "IdentifiedBy", "Id", "User who identified the defect"),
        _rel(DEFECT_OVERLAY, "Id", "DefectId", "Defect overlays", is_collection=True),
    ],
    DEFECT_OVERLAY: [
        _rel(DEFECT, "DefectId", "Id", "Parent defect"),
        _rel(INSPECTION_MEDIA, "MediaId", "Id", "Associated media"),
        _rel(USER, "CreatedBy", "Id", "User who created the overlay"),
    ],
    CHECKLIST: [
        _rel(PROJECT, "ProjectId", "Id", "Parent project"),
    ],
    MEASUREMENT: [
        _rel(PROJECT, "ProjectId", "Id", "Parent project"),
        _rel(ASSET, "AssetId", "Id", "Related asset"),
    ],
    INSPECTION_MEDIA: [
        _rel(PROJECT, "ProjectId", "Id", "Parent project"),
    ],
    LIBRARY: [
        _rel(ASSET, "Id", "LibraryId", "Assets using this library", is_collection=True),
        _rel(LIBRARY_MEDIA, "Id", "LibraryId", "Library media items", is_collection=True),
    ],
    LIBRARY_MEDIA: [
        _rel(LIBRARY, "LibraryId", "Id", "Parent library"),
    ],
    USER: [
        _rel(DEFECT, "Id", "IdentifiedBy", "Defects identified by this user", is_collection=True),
        _rel(DEFECT_OVERLAY, "Id", "CreatedBy", "Overlays created by this user", is_collection=True),
        _rel(TASK, "Id", "AssignedTo", "Tasks assigned to this user", is_collection=True),
    ],
    TASK: [
        _rel(PROJECT, "ProjectId", "Id", "Parent project"),
        _rel(USER, "AssignedTo", "Id", "Assigned user"),
    ],
}

# Direct fields offered per entity type for field mapping
DIRECT_FIELDS: Dict[str, List[str]] = {
    ASSET: ["Id", "Name", "Description", "AssetType", "Location", "Status", "CreatedAt", "UpdatedAt", "ExternalId"],
    PROJECT: ["Id", "Name", "Description", "AssetId", "ProjectTypeId", "Status", "StartDate", "EndDate", "CreatedAt", "UpdatedAt"],
    DEFECT: ["Id", "ProjectId", "AssetId", "Title", "Description", "Severity", "Status", "DefectType", "Location", "IdentifiedBy", "IdentifiedAt"],
    MEASUREMENT: ["Id", "ProjectId", "AssetId", "MeasurementType", "Value", "Unit", "Location", "MeasuredBy", "MeasuredAt"],
    INSPECTION_MEDIA: ["Id", "ProjectId", "FileName", "FileType", "FileSize", "Status", "DownloadUrl", "ThumbnailUrl", "UploadedAt"],
    CHECKLIST: ["Id", "ProjectId", "Name", "TemplateId", "Status", "CompletedBy", "CompletedAt"],
    USER: ["Id", "Email", "FirstName", "LastName", "Role"],
    WORKSPACE: ["Id", "Name", "Description"],
    LIBRARY: ["Id", "Name", "Description", "LibraryType"],
    LIBRARY_MEDIA: ["Id", "LibraryId", "FileName", "FileType", "FileSize"],
    DEFECT_OVERLAY: ["Id", "DefectId", "MediaId", "CreatedBy", "CreatedAt"],
    TASK: ["Id", "Title", "Description", "Status", "Priority", "AssignedTo", "ProjectId", "DueDate", "CompletedDate"],
}


class RelationshipCatalog:
    """
    Immutable lookup over relationship definitions.

    Construct once at startup (``default_catalog``) and pass it to whatever
    needs it. Entity type arguments are normalized before lookup, and target
    comparison is case-insensitive.
    """

    def __init__(
        self,
        relationships: Mapping[str, Iterable[RelationshipDefinition]],
        direct_fields: Optional[Mapping[str, Iterable[str]]] = None,
    ):
        self._relationships = MappingProxyType(
            {entity: tuple(defs) for entity, defs in relationships.items()}
        )
        self._direct_fields = MappingProxyType(
            {entity: tuple(fields) for entity, fields in (direct_fields or {}).items()}
        )

    @staticmethod
    def _canonical(entity_type: Optional[str]) -> Optional[str]:
        return normalize_entity_type(entity_type) or entity_type

    def relationships_of(self, entity_type: str) -> List[RelationshipDefinition]:
        """All relationships declared for an entity type; empty when the type is unknown."""
        return list(self._relationships.get(self._canonical(entity_type), ()))

    def relationship_to(self, source_type: str, target_type: str) -> Optional[RelationshipDefinition]:
        """First relationship from source to target, or None."""
        target = self._canonical(target_type)
        if not target:
            return None
        target = target.lower()
        for rel in self.relationships_of(source_type):
            if rel.target_entity.lower() == target:
                return rel
        return None

    def has_relationship(self, source_type: str, target_type: str) -> bool:
        return self.relationship_to(source_type, target_type) is not None

    def direct_fields(self, entity_type: str) -> List[str]:
        return list(self._direct_fields.get(self._canonical(entity_type), ()))

    def key_fields(self, entity_type: str) -> List[str]:
        """
        Every field on ``entity_type`` that some declared relationship targets.

        Always includes ``Id``. Used to index cached records so joins are
        O(1) lookups instead of scans.
        """
        canonical = self._canonical(entity_type)
        keys = ["Id"]
        for defs in self._relationships.values():
            for rel in defs:
                if rel.target_entity == canonical and rel.target_key not in keys:
                    keys.append(rel.target_key)
        return keys

    def available_fields(self, entity_type: str) -> List[AvailableField]:
        """Direct fields plus ``<Target>.<field>`` for every single-valued relationship."""
        canonical = self._canonical(entity_type)
        fields = [
            AvailableField(field_path=f, display_name=f, entity_type=canonical)
            for f in self.direct_fields(canonical)
        ]
        for rel in self.relationships_of(canonical):
            if rel.is_collection:
                continue
            for f in self.direct_fields(rel.target_entity):
                path = f"{rel.target_entity}.{f}"
                fields.append(AvailableField(
                    field_path=path,
                    display_name=path,
                    entity_type=canonical,
                    is_related=True,
                    related_entity=rel.target_entity,
                    description=rel.description,
                ))
        return fields


default_catalog = RelationshipCatalog(DEFAULT_RELATIONSHIPS, DIRECT_FIELDS)
