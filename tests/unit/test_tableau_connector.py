"""
Unit tests for the Tableau connector (HTTP mocked).
"""

from unittest.mock import Mock

import pytest

from catalog_sync.connectors.tableau import TableauConnector
from catalog_sync.connectors.tableau.tableau_connector import AUTH_HEADER
from catalog_sync.core.exceptions import ConfigError, SourceFetchError
from catalog_sync.core.models import AssetType
from catalog_sync.utils.retry import RetryConfig


SERVER_URL = "https://tableau.example.com"
API = f"{SERVER_URL}/api/3.19"


def response(status_code=200, json_body=None, text=""):
    mock = Mock()
    mock.status_code = status_code
    mock.headers = {}
    mock.text = text
    mock.json.return_value = json_body if json_body is not None else {}
    return mock


def signin(site_id, content_url="", token="token"):
    return response(200, {"credentials": {
        "token": token,
        "site": {"id": site_id, "contentUrl": content_url},
        "user": {"id": "user-1"},
    }})


def sites_page(sites, total):
    return response(200, {"sites": {"site": sites}, "pagination": {"totalAvailable": str(total)}})


def graphql_page(connection, nodes, end_cursor=None, errors=None, data=True):
    body = {}
    if data:
        body["data"] = {connection: {
            "nodes": nodes,
            "pageInfo": {"hasNextPage": end_cursor is not None, "endCursor": end_cursor},
        }}
    if errors:
        body["errors"] = errors
    return response(200, body)


SITES = [
    {"id": "default-id", "name": "Default", "contentUrl": ""},
    {"id": "site-1", "name": "Finance", "contentUrl": "finance"},
]


@pytest.fixture
def connector():
    connector = TableauConnector(
        server_url=SERVER_URL + "/",
        pat_name="sync",
        pat_secret="secret",
        page_size=2,
        rest_retry=RetryConfig(max_attempts=1),
        graphql_retry=RetryConfig(max_attempts=1),
        sleep=Mock(),
    )
    connector.rest.session = Mock()
    connector.graphql.session = Mock()
    return connector


def signed_in(connector):
    """Queue the REST responses needed to open a session on site-1."""
    connector.rest.session.request.side_effect = [
        signin("default-id"),
        sites_page(SITES, 2),
        signin("site-1", "finance", token="site-token"),
    ]


class TestConfiguration:
    """Tests for constructor validation."""

    def test_requires_server_url(self):
        with pytest.raises(ConfigError):
            TableauConnector(server_url="", pat_name="a", pat_secret="b")

    def test_requires_credentials(self):
        with pytest.raises(ConfigError):
            TableauConnector(server_url=SERVER_URL, pat_name="a")

    def test_password_credentials_accepted(self):
        connector = TableauConnector(server_url=SERVER_URL, username="u", password="p")
        assert connector.get_name() == "tableau"
        connector.close()


class TestAuthentication:
    """Tests for sign-in and per-site sessions."""

    def test_sign_in_with_pat(self, connector):
        connector.rest.session.request.return_value = signin("site-1", "finance")

        session = connector.sign_in("finance")

        assert session.token == "token"
        assert session.site_id == "site-1"
        assert session.user_id == "user-1"
        method, url = connector.rest.session.request.call_args[0]
        assert (method, url) == ("POST", f"{API}/auth/signin")
        assert connector.rest.session.request.call_args[1]["json"] == {"credentials": {
            "personalAccessTokenName": "sync",
            "personalAccessTokenSecret": "secret",
            "site": {"contentUrl": "finance"},
        }}

    def test_sign_in_failure(self, connector):
        connector.rest.session.request.return_value = response(401, text="bad token")

        with pytest.raises(SourceFetchError) as exc_info:
            connector.sign_in()
        assert exc_info.value.status_code == 401

    def test_malformed_sign_in_response(self, connector):
        connector.rest.session.request.return_value = response(200, {"credentials": {}})

        with pytest.raises(SourceFetchError):
            connector.sign_in()

    def test_session_cached_per_site(self, connector):
        signed_in(connector)

        first = connector.session_for("site-1")
        second = connector.session_for("site-1")

        assert first is second
        assert first.token == "site-token"
        assert connector.rest.session.request.call_count == 3

    def test_unknown_site(self, connector):
        connector.rest.session.request.side_effect = [signin("default-id"), sites_page(SITES, 2)]

        with pytest.raises(SourceFetchError):
            connector.session_for("site-9")

    def test_close_signs_out(self, connector):
        signed_in(connector)
        connector.session_for("site-1")
        connector.rest.session.request.side_effect = None
        connector.rest.session.request.return_value = response(204)

        connector.close()

        signouts = [c for c in connector.rest.session.request.call_args_list
                    if c[0][1] == f"{API}/auth/signout"]
        assert len(signouts) == 2


class TestFetch:
    """Tests for fetch."""

    def test_fetch_server(self, connector):
        connector.rest.session.request.return_value = response(200, {"serverInfo": {
            "productVersion": {"value": "2023.1.0", "build": "b"}, "restApiVersion": "3.19",
        }})

        (record,) = connector.fetch(AssetType.SERVER, "global")

        assert record.asset_id == "tableau.example.com"
        assert record.fields["version"] == "2023.1.0"

    def test_fetch_sites_paginates(self, connector):
        connector.rest.session.request.side_effect = [
            signin("default-id"),
            sites_page(SITES, 3),
            sites_page([{"id": "site-2", "name": "Ops", "contentUrl": "ops"}], 3),
        ]

        records = connector.fetch(AssetType.SITE, "global")

        assert [r.asset_id for r in records] == ["default-id", "site-1", "site-2"]
        page_params = [c[1]["params"] for c in connector.rest.session.request.call_args_list[1:]]
        assert page_params == [{"pageSize": 2, "pageNumber": 1}, {"pageSize": 2, "pageNumber": 2}]
        assert connector.rest.session.request.call_args[1]["headers"] == {AUTH_HEADER: "token"}

    def test_fetch_projects_follows_cursor(self, connector):
        signed_in(connector)
        connector.graphql.session.request.side_effect = [
            graphql_page("projectsConnection", [{"luid": "p1", "name": "Sales"}], end_cursor="c1"),
            graphql_page("projectsConnection", [{"luid": "p2", "name": "Child", "parentProject": {"luid": "p1"}}]),
        ]

        records = connector.fetch(AssetType.PROJECT, "site-1")

        assert [r.asset_id for r in records] == ["p1", "p2"]
        calls = connector.graphql.session.request.call_args_list
        assert calls[0][0] == ("POST", f"{SERVER_URL}/api/metadata/graphql")
        assert calls[0][1]["headers"] == {AUTH_HEADER: "site-token"}
        assert calls[0][1]["json"]["variables"] == {"first": 2, "after": None}
        assert calls[1][1]["json"]["variables"] == {"first": 2, "after": "c1"}

    def test_malformed_nodes_skipped(self, connector):
        signed_in(connector)
        connector.graphql.session.request.return_value = graphql_page(
            "sheetsConnection", [{"id": "ws1", "name": "Overview"}, {"name": "no id"}]
        )

        records = connector.fetch(AssetType.WORKSHEET, "site-1")

        assert [r.asset_id for r in records] == ["ws1"]
        assert len(connector.skipped_records()) == 1

    def test_skipped_records_reset_per_fetch(self, connector):
        signed_in(connector)
        connector.graphql.session.request.side_effect = [
            graphql_page("sheetsConnection", [{"name": "no id"}]),
            graphql_page("sheetsConnection", [{"id": "ws1", "name": "Overview"}]),
        ]

        connector.fetch(AssetType.WORKSHEET, "site-1")
        assert len(connector.skipped_records()) == 1

        connector.fetch(AssetType.WORKSHEET, "site-1")
        assert connector.skipped_records() == []

    def test_data_sources_combine_three_queries(self, connector):
        signed_in(connector)
        connector.graphql.session.request.side_effect = [
            graphql_page("publishedDatasourcesConnection", [{"id": "ds-pub", "name": "Orders"}]),
            graphql_page("embeddedDatasourcesConnection", [{"id": "ds-emb", "workbook": {"luid": "wb1"}}]),
            graphql_page("customSQLTablesConnection", [{"id": "q1", "query": "SELECT 1"}]),
        ]

        records = connector.fetch(AssetType.DATA_SOURCE, "site-1")

        assert [r.asset_id for r in records] == ["ds-pub", "ds-emb", "custom-sql-q1"]

    def test_report_attributes(self, connector):
        signed_in(connector)
        connector.graphql.session.request.return_value = graphql_page("sheetsConnection", [{
            "id": "ws1",
            "sheetFieldInstances": [{"id": "f1", "name": "Amount", "role": "MEASURE"}],
            "upstreamFields": [],
        }])

        (record,) = connector.fetch(AssetType.REPORT_ATTRIBUTE, "site-1")

        assert record.worksheet_id == "ws1"

    def test_graphql_errors_without_data_raise(self, connector):
        signed_in(connector)
        connector.graphql.session.request.return_value = graphql_page(
            "workbooksConnection", [], errors=[{"message": "Permission denied"}], data=False
        )

        with pytest.raises(SourceFetchError, match="Permission denied"):
            connector.fetch(AssetType.WORKBOOK, "site-1")

    def test_graphql_errors_with_data_tolerated(self, connector):
        signed_in(connector)
        connector.graphql.session.request.return_value = graphql_page(
            "workbooksConnection", [{"luid": "wb1", "name": "Revenue"}],
            errors=[{"message": "Some nodes hidden"}],
        )

        records = connector.fetch(AssetType.WORKBOOK, "site-1")

        assert [r.asset_id for r in records] == ["wb1"]

    def test_next_page_without_cursor_raises(self, connector):
        signed_in(connector)
        page = graphql_page("workbooksConnection", [])
        page.json.return_value["data"]["workbooksConnection"]["pageInfo"] = {"hasNextPage": True}
        connector.graphql.session.request.return_value = page

        with pytest.raises(SourceFetchError):
            connector.fetch(AssetType.WORKBOOK, "site-1")


class TestSessionRefresh:
    """Tests for signing in again when a token is rejected."""

    def test_rejected_token_signs_in_again(self, connector):
        connector.rest.session.request.side_effect = [
            signin("default-id"),
            sites_page(SITES, 2),
            signin("site-1", "finance", token="site-token"),
            signin("site-1", "finance", token="fresh-token"),
        ]
        connector.graphql.session.request.side_effect = [
            response(401, text="token expired"),
            graphql_page("workbooksConnection", [{"luid": "wb1", "name": "Revenue"}]),
        ]

        records = connector.fetch(AssetType.WORKBOOK, "site-1")

        assert [r.asset_id for r in records] == ["wb1"]
        headers = [c[1]["headers"] for c in connector.graphql.session.request.call_args_list]
        assert headers == [{AUTH_HEADER: "site-token"}, {AUTH_HEADER: "fresh-token"}]
        assert connector.session_for("site-1").token == "fresh-token"
        assert connector.rest.session.request.call_count == 4

    def test_refresh_mid_pagination_keeps_cursor(self, connector):
        connector.rest.session.request.side_effect = [
            signin("default-id"),
            sites_page(SITES, 2),
            signin("site-1", "finance", token="site-token"),
            signin("site-1", "finance", token="fresh-token"),
        ]
        connector.graphql.session.request.side_effect = [
            graphql_page("projectsConnection", [{"luid": "p1", "name": "Sales"}], end_cursor="c1"),
            response(401, text="token expired"),
            graphql_page("projectsConnection", [{"luid": "p2", "name": "Ops"}]),
        ]

        records = connector.fetch(AssetType.PROJECT, "site-1")

        assert [r.asset_id for r in records] == ["p1", "p2"]
        calls = connector.graphql.session.request.call_args_list
        assert [c[1]["json"]["variables"]["after"] for c in calls] == [None, "c1", "c1"]

    def test_second_rejection_raises(self, connector):
        connector.rest.session.request.side_effect = [
            signin("default-id"),
            sites_page(SITES, 2),
            signin("site-1", "finance", token="site-token"),
            signin("site-1", "finance", token="fresh-token"),
        ]
        connector.graphql.session.request.return_value = response(401, text="not allowed")

        with pytest.raises(SourceFetchError) as exc_info:
            connector.fetch(AssetType.WORKBOOK, "site-1")

        assert exc_info.value.status_code == 401
        assert connector.graphql.session.request.call_count == 2

    def test_other_errors_do_not_sign_in_again(self, connector):
        signed_in(connector)
        connector.graphql.session.request.return_value = response(403, text="forbidden")

        with pytest.raises(SourceFetchError) as exc_info:
            connector.fetch(AssetType.WORKBOOK, "site-1")

        assert exc_info.value.status_code == 403
        assert connector.rest.session.request.call_count == 3
