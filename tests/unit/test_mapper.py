"""
Unit tests for export identifiers and the export mapper.
"""

import pytest

from catalog_sync.core.models import (
    GLOBAL_SCOPE,
    AssetRecord,
    AssetType,
    LifecycleState,
    NaturalKey,
    PropagationState,
)
from catalog_sync.export import ExportMapper, ExportSettings, export_identifier
from catalog_sync.export.mapper import capitalize_role, to_epoch_millis_at_midnight


def record(asset_type, asset_id, scope_id="site-1", name=None, fields=None, parents=None, **kwargs):
    return AssetRecord(
        asset_type=asset_type,
        asset_id=asset_id,
        scope_id=scope_id,
        name=name or asset_id,
        fields=fields or {},
        parents=parents or {},
        **kwargs,
    )


class TestExportIdentifier:
    """Tests for export_identifier."""

    def test_global_types_use_id_and_name(self):
        server = NaturalKey(AssetType.SERVER, "server-456", GLOBAL_SCOPE)
        site = NaturalKey(AssetType.SITE, "site-123", GLOBAL_SCOPE)
        assert export_identifier(server, "Tableau Prod") == "server-456 > Tableau Prod"
        assert export_identifier(site, "Finance") == "site-123 > Finance"

    def test_scoped_types_prefixed_with_site(self):
        key = NaturalKey(AssetType.PROJECT, "project-789", "site-123")
        assert export_identifier(key, "Sales") == "site-123 > project-789 > Sales"

    def test_report_attribute_includes_worksheet(self):
        key = NaturalKey(AssetType.REPORT_ATTRIBUTE, "ra-1", "site-1", "ws-123")
        assert export_identifier(key, "Amount") == "site-1 > ws-123 > ra-1 > Amount"

    def test_rename_changes_identifier(self):
        before = record(AssetType.PROJECT, "P1", name="Sales")
        after = record(AssetType.PROJECT, "P1", name="Sales EMEA")
        assert export_identifier(before.natural_key, before.name) != export_identifier(after.natural_key, after.name)


class TestHelpers:
    """Tests for value conversion helpers."""

    @pytest.mark.parametrize("value, expected", [
        ("2024-01-15T10:30:00Z", "1705276800000"),
        ("2024-01-15", "1705276800000"),
        ("2024-01-15T23:30:00-02:00", "1705363200000"),
        ("", None),
        (None, None),
        ("not a date", None),
    ])
    def test_epoch_millis_at_midnight(self, value, expected):
        assert to_epoch_millis_at_midnight(value) == expected

    @pytest.mark.parametrize("role, expected", [
        ("MEASURE", "Measure"),
        ("dimension", "Dimension"),
        ("m", "M"),
        (None, None),
    ])
    def test_capitalize_role(self, role, expected):
        assert capitalize_role(role) == expected


class TestExportMapper:
    """Tests for ExportMapper.map."""

    def test_server_attributes(self):
        server = record(
            AssetType.SERVER, "tableau.example.com", GLOBAL_SCOPE,
            fields={"url": "https://tableau.example.com", "version": "2023.1.0"},
        )
        mapped = ExportMapper().map(server)

        assert mapped.identifier == "tableau.example.com > tableau.example.com"
        assert mapped.type_name == "Tableau Server"
        assert mapped.domain == "Tableau Servers"
        assert mapped.community == "Tableau Technology"
        assert mapped.attributes == {
            "Description": "Tableau Server: tableau.example.com",
            "URL": "https://tableau.example.com",
            "Version": "2023.1.0",
        }
        assert mapped.relations == []

    def test_workbook_attributes(self):
        workbook = record(AssetType.WORKBOOK, "wb1", name="Revenue", fields={
            "description": "Quarterly revenue",
            "owner": "bob",
            "created_at": "2024-01-15T08:00:00Z",
            "updated_at": "",
        })
        mapped = ExportMapper().map(workbook)

        assert mapped.display_name == "Revenue"
        assert mapped.attributes == {
            "Description": "Quarterly revenue",
            "Owner in Source": "bob",
            "Document creation date": "1705276800000",
        }

    def test_data_source_attributes(self):
        data_source = record(AssetType.DATA_SOURCE, "ds1", fields={
            "source_type": "published",
            "is_published": True,
            "is_certified": False,
            "connection_type": "postgres",
            "table_name": "public.orders",
        })
        attributes = ExportMapper().map(data_source).attributes

        assert attributes["Source Type"] == "PUBLISHED"
        assert attributes["Is Published"] == "true"
        assert attributes["Is Certified"] == "false"
        assert attributes["Site ID"] == "site-1"
        assert "Description" not in attributes

    def test_report_attribute_attributes(self):
        field = record(AssetType.REPORT_ATTRIBUTE, "f1", name="Amount", worksheet_id="ws1", fields={
            "field_role": "MEASURE",
            "data_type": "REAL",
            "calculation_logic": "SUM([Amount])",
        })
        mapped = ExportMapper().map(field)

        assert mapped.identifier == "site-1 > ws1 > f1 > Amount"
        assert mapped.attributes == {
            "Technical Data Type": "REAL",
            "Role in Report": "Measure",
            "Calculation Rule": "SUM([Amount])",
        }

    def test_relations_to_loaded_parents(self):
        site = record(AssetType.SITE, "site-1", GLOBAL_SCOPE, name="Finance")
        parent = record(AssetType.PROJECT, "p1", name="Sales")
        child = record(AssetType.PROJECT, "p2", parents={"site": "site-1", "parent_project": "p1"})

        mapped = ExportMapper().map(child, {"site": site, "parent_project": parent})

        assert [(r.relation_type, r.identifier, r.domain) for r in mapped.relations] == [
            ("00000000-0000-0000-0000-120000000001:SOURCE", "site-1 > p1 > Sales", "Tableau Projects"),
            ("0195fc55-b49f-7711-9ce6-d87a1f60b36a:SOURCE", "site-1 > Finance", "Tableau Sites"),
        ]

    def test_missing_parent_skipped(self):
        workbook = record(AssetType.WORKBOOK, "wb1", parents={"project": "p1"})
        assert ExportMapper().map(workbook, {"project": None}).relations == []

    def test_relation_to_propagated_deletion_omitted(self):
        project = record(
            AssetType.PROJECT, "p1",
            lifecycle_state=LifecycleState.DELETED,
            propagation_state=PropagationState.SYNCED,
        )
        workbook = record(AssetType.WORKBOOK, "wb1", parents={"project": "p1"})
        assert ExportMapper().map(workbook, {"project": project}).relations == []

    def test_relation_to_pending_deletion_kept(self):
        project = record(
            AssetType.PROJECT, "p1",
            lifecycle_state=LifecycleState.DELETED,
            propagation_state=PropagationState.PENDING_DELETE,
        )
        workbook = record(AssetType.WORKBOOK, "wb1", parents={"project": "p1"})
        assert len(ExportMapper().map(workbook, {"project": project}).relations) == 1

    def test_relation_to_pending_deletion_uses_exported_name(self):
        project = record(
            AssetType.PROJECT, "p1", name="Sales EMEA",
            lifecycle_state=LifecycleState.DELETED,
            propagation_state=PropagationState.PENDING_DELETE,
            exported_name="Sales",
        )
        workbook = record(AssetType.WORKBOOK, "wb1", parents={"project": "p1"})
        (relation,) = ExportMapper().map(workbook, {"project": project}).relations
        assert relation.identifier == "site-1 > p1 > Sales"

    def test_relation_to_renamed_parent_uses_current_name(self):
        project = record(AssetType.PROJECT, "p1", name="Sales EMEA", exported_name="Sales")
        workbook = record(AssetType.WORKBOOK, "wb1", parents={"project": "p1"})
        (relation,) = ExportMapper().map(workbook, {"project": project}).relations
        assert relation.identifier == "site-1 > p1 > Sales EMEA"

    def test_locate(self):
        worksheet = record(AssetType.WORKSHEET, "ws1", name="Overview")
        assert ExportMapper().locate(worksheet) == (
            "site-1 > ws1 > Overview", "Tableau Worksheets", "Tableau Technology"
        )

    def test_locate_under_previous_name(self):
        worksheet = record(AssetType.WORKSHEET, "ws1", name="Overview", exported_name="Summary")
        identifier, _, _ = ExportMapper().locate(worksheet, worksheet.exported_name)
        assert identifier == "site-1 > ws1 > Summary"


class TestExportSettings:
    """Tests for ExportSettings.from_dict."""

    def test_overrides(self):
        settings = ExportSettings.from_dict({
            "community": "BI",
            "domains": {"workbook": "Reports"},
            "relation_types": {"data_source_workbook": None},
        })
        mapper = ExportMapper(settings)
        data_source = record(AssetType.DATA_SOURCE, "ds", parents={"workbook": "wb"})
        workbook = record(AssetType.WORKBOOK, "wb")

        assert mapper.map(workbook).domain == "Reports"
        assert mapper.map(workbook).community == "BI"
        assert mapper.map(data_source, {"workbook": workbook}).relations == []

    def test_unknown_relation_rejected(self):
        with pytest.raises(ValueError):
            ExportSettings.from_dict({"relation_types": {"workbook_owner": "x:SOURCE"}})

    def test_unknown_domain_type_rejected(self):
        with pytest.raises(ValueError):
            ExportSettings.from_dict({"domains": {"dashboard": "Dashboards"}})
