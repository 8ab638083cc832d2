from datetime import datetime

import pytest

from huvr_export.schemas.export import FieldMapping, SheetConfiguration
from huvr_export.services.field_resolver import (
    FieldResolver,
    format_cell,
    get_nested_value,
    get_required_related_entities,
    get_required_related_entities_for_sheets,
    key_string,
    split_qualified_path,
)


def mapping(path, selected=True):
    return FieldMapping(api_field=path, excel_column=path, is_selected=selected)


@pytest.fixture
def resolver(data):
    return FieldResolver.build_cache(data)


def project(data, project_id):
    return next(p for p in data["Project"] if p["Id"] == project_id)


class TestGetNestedValue:
    def test_nested_lookup(self, data):
        assert get_nested_value(project(data, "P1"), "Parent.Name") == "Pump"

    def test_keys_fall_back_to_case_insensitive_match(self, data):
        assert get_nested_value(project(data, "P1"), "parent.name") == "Pump"

    def test_list_indexes(self, data):
        p1 = project(data, "P1")
        assert get_nested_value(p1, "Tags[0]") == "ut"
        assert get_nested_value(p1, "Tags.1") == "visual"
        assert get_nested_value(p1, "Tags[5]") is None

    @pytest.mark.parametrize("path", ["", None, "Missing", "Name.Length", "Tags..0", "Tags[x]"])
    def test_absent_or_malformed_paths_resolve_to_none(self, data, path):
        assert get_nested_value(project(data, "P1"), path) is None

    def test_none_record(self):
        assert get_nested_value(None, "Name") is None


class TestKeyString:
    @pytest.mark.parametrize("value, expected", [
        (None, None),
        ("", None),
        ("A1", "A1"),
        (42, "42"),
        (42.0, "42"),
        (True, "True"),
    ])
    def test_values(self, value, expected):
        assert key_string(value) == expected


class TestFormatCell:
    @pytest.mark.parametrize("value, expected", [
        (None, ""),
        (False, "False"),
        (12.5, "12.5"),
        ("Pump", "Pump"),
        (["a", "b"], '["a","b"]'),
        ({"Id": "L1"}, '{"Id":"L1"}'),
        (datetime(2024, 3, 1, 9, 30), "2024-03-01T09:30:00"),
    ])
    def test_values(self, value, expected):
        assert format_cell(value) == expected


class TestSplitQualifiedPath:
    def test_entity_prefix(self):
        assert split_qualified_path("Asset.Name") == ("Asset", "Name")
        assert split_qualified_path("assets.Location.City") == ("Asset", "Location.City")

    def test_non_entity_prefix_is_unqualified(self):
        assert split_qualified_path("Parent.Name") is None
        assert split_qualified_path("Name") is None
        assert split_qualified_path("Asset.") is None


class TestResolve:
    def test_joins_through_configured_relationship(self, resolver, data):
        assert resolver.resolve(project(data, "P1"), "Asset.Name", "Project") == "Pump"

    def test_unmatched_foreign_key_resolves_to_none(self, resolver, data):
        assert resolver.resolve(project(data, "P2"), "Asset.Name", "Project") is None

    @pytest.mark.parametrize("path", ["Name", "Parent.Name", "Tags[1]", "Missing"])
    def test_unqualified_path_matches_nested_lookup(self, resolver, data, path):
        record = project(data, "P1")
        assert resolver.resolve(record, path, "Project") == get_nested_value(record, path)

    def test_unconfigured_relationship_resolves_to_none(self, resolver, data):
        # "Library" is an entity type with no relationship from Project
        assert resolver.resolve(project(data, "P1"), "Library.Name", "Project") is None
        assert resolver.resolve(project(data, "P1"), "User.Email", "Project") is None

    def test_collection_relationship_resolves_to_none(self, resolver, data):
        assert resolver.resolve(project(data, "P1"), "Defect.Title", "Project") is None

    def test_only_one_hop_is_followed(self, resolver, data):
        defect = data["Defect"][0]
        assert resolver.resolve(defect, "Project.Name", "Defect") == "Q1 Inspection"
        assert resolver.resolve(defect, "Project.Parent.Name", "Defect") == "Pump"
        assert resolver.resolve(defect, "Project.Asset.Name", "Defect") is None

    def test_missing_foreign_key_resolves_to_none(self, resolver, data):
        defect = data["Defect"][2]
        assert resolver.resolve(defect, "User.Email", "Defect") is None

    def test_related_type_not_cached(self, data):
        resolver = FieldResolver.build_cache({"Project": data["Project"]})
        assert resolver.resolve(project(data, "P1"), "Asset.Name", "Project") is None

    def test_first_record_wins_on_duplicate_keys(self):
        resolver = FieldResolver.build_cache({
            "Asset": [{"Id": "A1", "Name": "First"}, {"Id": "A1", "Name": "Second"}],
            "Project": [{"Id": "P1", "AssetId": "A1"}],
        })
        assert resolver.resolve({"Id": "P1", "AssetId": "A1"}, "Asset.Name", "Project") == "First"

    def test_numeric_and_string_keys_compare_equal(self):
        resolver = FieldResolver.build_cache({"Asset": [{"Id": "7", "Name": "Tank"}]})
        assert resolver.resolve({"AssetId": 7}, "Asset.Name", "Project") == "Tank"

    def test_find_by_undeclared_key_scans(self, resolver):
        assert resolver.find("Asset", "Name", "Valve")["Id"] == "A2"

    def test_records_accept_surface_names(self, resolver):
        assert [r["Id"] for r in resolver.records("projects")] == ["P1", "P2", "P3"]
        assert resolver.records("Widget") == []


class TestRequiredRelatedEntities:
    def test_collects_configured_prefixes(self):
        mappings = [mapping("Title"), mapping("Project.Name"), mapping("User.Email"), mapping("Asset.Name")]
        assert get_required_related_entities("Defect", mappings) == {"Project", "User", "Asset"}

    def test_ignores_unconfigured_and_unselected(self):
        mappings = [
            mapping("Name"),
            mapping("Parent.Name"),
            mapping("User.Email"),
            mapping("Defect.Title"),
            mapping("Asset.Name", selected=False),
        ]
        assert get_required_related_entities("Project", mappings) == set()

    def test_per_sheet_sets_merge_for_shared_types(self):
        sheets = [
            SheetConfiguration(entity_type="Defect", mappings=[mapping("Project.Name")]),
            SheetConfiguration(entity_type="defects", mappings=[mapping("User.Email")]),
            SheetConfiguration(entity_type="Project", mappings=[mapping("Name")]),
        ]
        assert get_required_related_entities_for_sheets(sheets) == {
            "Defect": {"Project", "User"},
            "Project": set(),
        }
