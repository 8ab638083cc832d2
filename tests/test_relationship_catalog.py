import pytest

from huvr_export.services.relationship_catalog import (
    RelationshipCatalog,
    RelationshipDefinition,
    default_catalog,
    normalize_entity_type,
)


class TestNormalizeEntityType:
    @pytest.mark.parametrize("name, expected", [
        ("Asset", "Asset"),
        ("assets", "Asset"),
        ("inspection-media", "InspectionMedia"),
        ("Inspection_Media", "InspectionMedia"),
        ("work orders", "Project"),
        ("findings", "Defect"),
        ("CMLs", "Measurement"),
        ("library-items", "LibraryMedia"),
    ])
    def test_known_names(self, name, expected):
        assert normalize_entity_type(name) == expected

    @pytest.mark.parametrize("name", ["", None, "Widget", "Asset.Name"])
    def test_unknown_names(self, name):
        assert normalize_entity_type(name) is None


class TestRelationshipLookup:
    def test_relationship_to_is_case_insensitive(self):
        rel = default_catalog.relationship_to("project", "ASSET")
        assert rel is not None
        assert rel.target_entity == "Asset"
        assert rel.source_key == "AssetId"
        assert rel.target_key == "Id"
        assert rel.is_collection is False

    def test_unconfigured_pair_has_no_relationship(self):
        assert default_catalog.relationship_to("Checklist", "Asset") is None
        assert not default_catalog.has_relationship("Checklist", "Asset")

    def test_unknown_source_has_no_relationships(self):
        assert default_catalog.relationships_of("Widget") == []

    def test_collection_relationships_are_flagged(self):
        rel = default_catalog.relationship_to("Project", "Defect")
        assert rel.is_collection
        assert rel.source_key == "Id"
        assert rel.target_key == "ProjectId"

    def test_first_matching_definition_wins(self):
        catalog = RelationshipCatalog({
            "Defect": [
                RelationshipDefinition("User", "IdentifiedBy", "Id", "identified by"),
                RelationshipDefinition("User", "ClosedBy", "Id", "closed by"),
            ],
        })
        assert catalog.relationship_to("Defect", "User").source_key == "IdentifiedBy"

    def test_returned_list_does_not_alter_catalog(self):
        rels = default_catalog.relationships_of("Project")
        rels.clear()
        assert default_catalog.relationships_of("Project")


class TestKeyFields:
    def test_project_is_indexed_by_id_and_asset_id(self):
        assert default_catalog.key_fields("Project") == ["Id", "AssetId"]

    def test_defect_key_fields_include_foreign_keys_targeted_by_parents(self):
        keys = default_catalog.key_fields("Defect")
        assert keys[0] == "Id"
        assert {"ProjectId", "AssetId", "IdentifiedBy"} <= set(keys)


class TestAvailableFields:
    def test_direct_and_related_fields(self):
        fields = default_catalog.available_fields("Project")
        paths = [f.field_path for f in fields]
        assert "Name" in paths
        assert "Asset.Name" in paths
        related = next(f for f in fields if f.field_path == "Asset.Name")
        assert related.is_related
        assert related.related_entity == "Asset"
        assert related.description == "Parent asset information"

    def test_collection_targets_are_not_offered(self):
        paths = [f.field_path for f in default_catalog.available_fields("Project")]
        assert not any(p.startswith("Defect.") for p in paths)

    def test_unknown_type_has_no_fields(self):
        assert default_catalog.available_fields("Widget") == []
