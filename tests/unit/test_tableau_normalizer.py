"""
Unit tests for Tableau payload normalization.
"""

import pytest

from catalog_sync.connectors.tableau import normalizer
from catalog_sync.core.exceptions import RecordMappingError
from catalog_sync.core.models import AssetType


SERVER_URL = "https://tableau.example.com"


class TestServerAndSite:
    """Tests for server and site normalization."""

    def test_server(self):
        info = {"serverInfo": {
            "productVersion": {"value": "2023.1.0", "build": "20231.23.0301"},
            "restApiVersion": "3.19",
        }}
        record = normalizer.normalize_server(info, SERVER_URL + "/")

        assert record.asset_type == AssetType.SERVER
        assert record.asset_id == "tableau.example.com"
        assert record.fields == {
            "url": SERVER_URL,
            "version": "2023.1.0",
            "build": "20231.23.0301",
            "rest_api_version": "3.19",
        }

    def test_server_id_keeps_port(self):
        assert normalizer.server_id_from_url("https://tableau.local:8443") == "tableau.local:8443"

    def test_site(self):
        record = normalizer.normalize_site(
            {"id": "site-1", "name": "Finance", "contentUrl": "finance", "state": "Active"}, SERVER_URL
        )

        assert record.asset_id == "site-1"
        assert record.name == "Finance"
        assert record.fields["url"] == f"{SERVER_URL}/#/site/finance"
        assert record.parents == {"server": "tableau.example.com"}

    def test_default_site_url(self):
        record = normalizer.normalize_site({"id": "d", "name": "Default", "contentUrl": ""}, SERVER_URL)
        assert record.fields["url"] == SERVER_URL


class TestContent:
    """Tests for project, workbook, worksheet and data source nodes."""

    def test_project_with_parent(self):
        node = {
            "id": "gql-1", "luid": "p2", "name": "Child", "description": "  ",
            "owner": {"username": "alice"},
            "parentProject": {"luid": "p1", "name": "Sales"},
        }
        record = normalizer.normalize_project(node, "site-1")

        assert record.asset_id == "p2"
        assert record.parents == {"site": "site-1", "parent_project": "p1"}
        assert record.fields == {"description": None, "owner": "alice", "parent_project_name": "Sales"}

    def test_top_level_project(self):
        record = normalizer.normalize_project({"luid": "p1", "name": "Sales", "parentProject": None}, "site-1")
        assert record.parents == {"site": "site-1"}

    def test_workbook(self):
        node = {
            "luid": "wb1", "name": "Revenue", "projectLuid": "p1", "projectName": "Sales",
            "uri": "sites/1/workbooks/wb1", "owner": {"name": "Bob"},
            "createdAt": "2024-01-15T08:00:00Z", "updatedAt": None,
        }
        record = normalizer.normalize_workbook(node, "site-1")

        assert record.parents == {"site": "site-1", "project": "p1"}
        assert record.fields["owner"] == "Bob"
        assert record.fields["content_url"] == "sites/1/workbooks/wb1"
        assert record.fields["updated_at"] is None

    def test_worksheet_falls_back_to_workbook_id(self):
        node = {"id": "ws1", "name": "Overview", "workbook": {"id": "gql-wb", "luid": None, "name": "Revenue"}}
        record = normalizer.normalize_worksheet(node, "site-1")

        assert record.parents == {"site": "site-1", "workbook": "gql-wb"}

    def test_missing_id_raises(self):
        with pytest.raises(RecordMappingError):
            normalizer.normalize_worksheet({"name": "no id"}, "site-1")

    def test_published_datasource(self):
        node = {
            "id": "ds1", "luid": "ds-luid", "name": "Orders", "isCertified": True,
            "upstreamTables": [
                {"name": "orders", "fullName": "public.orders", "schema": "public",
                 "database": {"name": "shop", "connectionType": "postgres", "hostName": "db1"}},
                {"name": "customers", "fullName": "public.customers"},
            ],
        }
        record = normalizer.normalize_published_datasource(node, "site-1")

        assert record.parents == {"site": "site-1"}
        assert record.fields["source_type"] == "published"
        assert record.fields["is_published"] is True
        assert record.fields["is_certified"] is True
        assert record.fields["upstream_tables"] == "public.customers, public.orders"
        assert record.fields["table_name"] == "public.orders"
        assert record.fields["connection_type"] == "postgres"
        assert record.fields["server_name"] == "db1"

    def test_embedded_datasource(self):
        node = {
            "id": "ds-emb", "name": "Orders (embedded)",
            "workbook": {"luid": "wb1"},
            "upstreamDatasources": [{"id": "ds1"}],
            "upstreamTables": [],
        }
        record = normalizer.normalize_embedded_datasource(node, "site-1")

        assert record.parents == {"site": "site-1", "workbook": "wb1"}
        assert record.fields["references_published"] is True
        assert record.fields["upstream_tables"] is None

    def test_custom_sql_table(self):
        node = {
            "id": "abc", "name": "Custom SQL Query", "query": "SELECT 1",
            "database": {"name": "shop", "connectionType": "sqlserver"},
        }
        record = normalizer.normalize_custom_sql_table(node, "site-1")

        assert record.asset_id == "custom-sql-abc"
        assert record.fields["source_type"] == "custom_sql"
        assert record.fields["query"] == "SELECT 1"
        assert record.fields["connection_type"] == "sqlserver"


class TestSheetFields:
    """Tests for normalize_sheet_fields."""

    SHEET = {
        "id": "ws1",
        "name": "Overview",
        "sheetFieldInstances": [
            {"id": "f1", "name": "Amount", "role": "MEASURE", "datasource": {"id": "ds-emb", "name": "Orders"}},
            {"id": "f2", "name": "Margin", "role": "MEASURE", "datasource": {"id": "ds-emb", "name": "Orders"}},
        ],
        "upstreamFields": [
            {
                "__typename": "ColumnField", "name": "Amount", "dataType": "REAL",
                "upstreamColumns": [
                    {"name": "amount", "table": {"fullName": "public.orders"}},
                    {"name": "amount", "table": {"name": "refunds"}},
                ],
            },
            {"__typename": "CalculatedField", "name": "Margin", "dataType": "REAL",
             "formula": "[Amount] - [Cost]"},
        ],
    }

    def test_fields_matched_by_name(self):
        plain, calc = normalizer.normalize_sheet_fields(self.SHEET, "site-1")

        assert plain.asset_type == AssetType.REPORT_ATTRIBUTE
        assert plain.worksheet_id == "ws1"
        assert plain.parents == {"site": "site-1", "worksheet": "ws1", "data_source": "ds-emb"}
        assert plain.fields["is_calculated"] is False
        assert plain.fields["calculation_logic"] is None
        assert plain.fields["lineage"] == "public.orders.amount, refunds.amount"

        assert calc.fields["is_calculated"] is True
        assert calc.fields["calculation_logic"] == "[Amount] - [Cost]"
        assert calc.fields["data_type"] == "REAL"

    def test_unmatched_instance_has_empty_metadata(self):
        sheet = {"id": "ws1", "sheetFieldInstances": [{"id": "f3", "name": "Unknown"}]}
        (record,) = normalizer.normalize_sheet_fields(sheet, "site-1")

        assert record.fields["data_type"] is None
        assert record.fields["is_calculated"] is False
        assert record.parents == {"site": "site-1", "worksheet": "ws1"}

    def test_sheet_without_id_raises(self):
        sheet = {"sheetFieldInstances": [{"id": "f3", "name": "Unknown"}]}
        with pytest.raises(RecordMappingError):
            normalizer.normalize_sheet_fields(sheet, "site-1")
