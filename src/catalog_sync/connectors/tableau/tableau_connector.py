"""
Tableau source adapter.

Server and site listings come from the REST API; everything below a site
comes from the Metadata API (GraphQL), authenticated per site.

See: https://help.tableau.com/current/api/rest_api/en-us/REST/rest_api.htm
     https://help.tableau.com/current/api/metadata_api/en-us/index.html
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..http_client import HttpClient
from ...core.connector import SourceConnector
from ...core.exceptions import ConfigError, RecordMappingError, SourceFetchError
from ...core.models import AssetType, NormalizedRecord
from ...utils.retry import RetryConfig
from . import normalizer
from .queries import (
    CUSTOM_SQL_TABLES_QUERY,
    EMBEDDED_DATASOURCES_QUERY,
    PROJECTS_QUERY,
    PUBLISHED_DATASOURCES_QUERY,
    SHEET_FIELDS_QUERY,
    SHEETS_QUERY,
    WORKBOOKS_QUERY,
)


logger = logging.getLogger(__name__)

AUTH_HEADER = "X-Tableau-Auth"
DEFAULT_API_VERSION = "3.19"
DEFAULT_SITE = "__default__"


@dataclass(frozen=True)
class TableauSession:
    """Credentials token for one signed-in site."""
    token: str
    site_id: str
    content_url: str
    user_id: Optional[str] = None


class TableauConnector(SourceConnector):
    """
    Fetches complete asset listings from Tableau Server or Tableau Cloud.

    Signs in with a personal access token when one is configured, otherwise
    with username and password. One session is kept per site.
    A Metadata API request rejected with HTTP 401 signs in to the site again
    and is retried once with the new token.
    """

    def __init__(
        self,
        server_url: str,
        pat_name: Optional[str] = None,
        pat_secret: Optional[str] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        api_version: str = DEFAULT_API_VERSION,
        default_site: str = "",
        page_size: int = 100,
        timeout: int = 30,
        verify_ssl: bool = True,
        rest_retry: Optional[RetryConfig] = None,
        graphql_retry: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the connector.

        Args:
            server_url: Base URL, e.g. 'https://tableau.example.com'
            pat_name: Personal access token name
            pat_secret: Personal access token secret
            username: Username (when no PAT is configured)
            password: Password (when no PAT is configured)
            api_version: REST API version used in request paths
            default_site: contentUrl of the site used for server-level calls
            page_size: Page size for REST and GraphQL pagination
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
            rest_retry: Retry settings for REST calls
            graphql_retry: Retry settings for Metadata API calls
            sleep: Sleep function used between retries
        """
        if not server_url:
            raise ConfigError("Tableau server_url is required")
        if not (pat_name and pat_secret) and not (username and password):
            raise ConfigError(
                "Tableau credentials are required: set pat_name/pat_secret or username/password"
            )

        self.server_url = server_url.rstrip("/")
        self.pat_name = pat_name
        self.pat_secret = pat_secret
        self.username = username
        self.password = password
        self.api_version = api_version
        self.default_site = default_site
        self.page_size = page_size

        self.rest = HttpClient(
            name="tableau_rest",
            error_class=SourceFetchError,
            timeout=timeout,
            retry_config=rest_retry or RetryConfig(max_attempts=3, initial_delay_ms=2000),
            sleep=sleep,
        )
        self.graphql = HttpClient(
            name="tableau_graphql",
            error_class=SourceFetchError,
            timeout=timeout,
            retry_config=graphql_retry or RetryConfig(
                max_attempts=5, initial_delay_ms=2000, max_delay_ms=10000
            ),
            sleep=sleep,
        )
        for client in (self.rest, self.graphql):
            client.session.verify = verify_ssl

        self._sessions: Dict[str, TableauSession] = {}
        self._content_urls: Dict[str, str] = {}
        self._skipped: List[str] = []

    def get_name(self) -> str:
        return "tableau"

    @property
    def api_base(self) -> str:
        return f"{self.server_url}/api/{self.api_version}"

    # ------------------------------------------------------------------
    # Authentication

    def _credentials(self, content_url: str) -> Dict[str, Any]:
        if self.pat_name and self.pat_secret:
            credentials = {
                "personalAccessTokenName": self.pat_name,
                "personalAccessTokenSecret": self.pat_secret,
            }
        else:
            credentials = {"name": self.username, "password": self.password}
        credentials["site"] = {"contentUrl": content_url}
        return {"credentials": credentials}

    def sign_in(self, content_url: str = "") -> TableauSession:
        """
        Sign in to one site.

        Args:
            content_url: Site contentUrl ('' for the default site)

        Returns:
            TableauSession for the site

        Raises:
            SourceFetchError: If authentication fails
        """
        response = self.rest.request(
            "POST",
            f"{self.api_base}/auth/signin",
            json=self._credentials(content_url),
        )
        try:
            body = response.json()["credentials"]
            session = TableauSession(
                token=body["token"],
                site_id=body["site"]["id"],
                content_url=body["site"].get("contentUrl", content_url),
                user_id=(body.get("user") or {}).get("id"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise SourceFetchError(f"Unexpected Tableau sign-in response: {e}")

        logger.info(f"Signed in to Tableau site '{content_url or 'default'}' ({session.site_id})")
        self._content_urls[session.site_id] = session.content_url
        return session

    def sign_out(self, session: TableauSession) -> None:
        try:
            self.rest.request(
                "POST",
                f"{self.api_base}/auth/signout",
                headers={AUTH_HEADER: session.token},
            )
        except SourceFetchError as e:
            logger.warning(f"Sign-out from site {session.site_id} failed: {e}")

    def _default_session(self) -> TableauSession:
        if DEFAULT_SITE not in self._sessions:
            self._sessions[DEFAULT_SITE] = self.sign_in(self.default_site)
        return self._sessions[DEFAULT_SITE]

    def session_for(self, site_id: str) -> TableauSession:
        """
        Return a session for a site, signing in on first use.

        Raises:
            SourceFetchError: If the site is unknown or sign-in fails
        """
        if site_id in self._sessions:
            return self._sessions[site_id]

        if site_id not in self._content_urls:
            # Learn contentUrls from the site listing
            self._list_sites()
        if site_id not in self._content_urls:
            raise SourceFetchError(f"Unknown Tableau site: {site_id}", asset_type="site")

        session = self.sign_in(self._content_urls[site_id])
        if session.site_id != site_id:
            raise SourceFetchError(
                f"Signed in to site {session.site_id}, expected {site_id}", asset_type="site"
            )
        self._sessions[site_id] = session
        return session

    # ------------------------------------------------------------------
    # Fetching

    def fetch(self, asset_type: AssetType, scope: str) -> List[NormalizedRecord]:
        """
        Fetch every asset of a type in a site.

        Args:
            asset_type: Type of asset to fetch
            scope: Site id (ignored for servers and sites)

        Returns:
            Normalized records; nodes that cannot be normalized are logged and skipped
        """
        asset_type = AssetType(asset_type)
        logger.info(f"Fetching {asset_type.value} assets from Tableau (scope={scope})")
        self._skipped = []

        if asset_type == AssetType.SERVER:
            return [normalizer.normalize_server(self._server_info(), self.server_url)]

        if asset_type == AssetType.SITE:
            return self._normalize_each(
                self._list_sites(), lambda site: normalizer.normalize_site(site, self.server_url)
            )

        if asset_type == AssetType.PROJECT:
            return self._normalize_each(
                self._query_all(scope, PROJECTS_QUERY, "projectsConnection"),
                lambda node: normalizer.normalize_project(node, scope),
            )

        if asset_type == AssetType.WORKBOOK:
            return self._normalize_each(
                self._query_all(scope, WORKBOOKS_QUERY, "workbooksConnection"),
                lambda node: normalizer.normalize_workbook(node, scope),
            )

        if asset_type == AssetType.WORKSHEET:
            return self._normalize_each(
                self._query_all(scope, SHEETS_QUERY, "sheetsConnection"),
                lambda node: normalizer.normalize_worksheet(node, scope),
            )

        if asset_type == AssetType.DATA_SOURCE:
            records = self._normalize_each(
                self._query_all(scope, PUBLISHED_DATASOURCES_QUERY, "publishedDatasourcesConnection"),
                lambda node: normalizer.normalize_published_datasource(node, scope),
            )
            records += self._normalize_each(
                self._query_all(scope, EMBEDDED_DATASOURCES_QUERY, "embeddedDatasourcesConnection"),
                lambda node: normalizer.normalize_embedded_datasource(node, scope),
            )
            records += self._normalize_each(
                self._query_all(scope, CUSTOM_SQL_TABLES_QUERY, "customSQLTablesConnection"),
                lambda node: normalizer.normalize_custom_sql_table(node, scope),
            )
            return records

        if asset_type == AssetType.REPORT_ATTRIBUTE:
            records: List[NormalizedRecord] = []
            for sheet in self._query_all(scope, SHEET_FIELDS_QUERY, "sheetsConnection"):
                try:
                    records.extend(normalizer.normalize_sheet_fields(sheet, scope))
                except RecordMappingError as e:
                    logger.warning(f"Skipping fields of sheet {sheet.get('id')}: {e}")
                    self._skipped.append(f"sheet {sheet.get('id')}: {e}")
            return records

        raise SourceFetchError(f"Unsupported asset type: {asset_type.value}")

    def _normalize_each(
        self,
        nodes: Iterator[Dict[str, Any]],
        convert: Callable[[Dict[str, Any]], NormalizedRecord],
    ) -> List[NormalizedRecord]:
        records = []
        for node in nodes:
            try:
                records.append(convert(node))
            except RecordMappingError as e:
                logger.warning(f"Skipping malformed node {node.get('id')}: {e}")
                self._skipped.append(f"{node.get('id')}: {e}")
        return records

    def skipped_records(self) -> List[str]:
        return list(self._skipped)

    def _server_info(self) -> Dict[str, Any]:
        response = self.rest.request("GET", f"{self.api_base}/serverinfo")
        try:
            return response.json()
        except ValueError as e:
            raise SourceFetchError(f"Invalid serverinfo response: {e}", asset_type="server")

    def _list_sites(self) -> List[Dict[str, Any]]:
        """Page through the REST site listing."""
        session = self._default_session()
        sites: List[Dict[str, Any]] = []
        page_number = 1

        while True:
            response = self.rest.request(
                "GET",
                f"{self.api_base}/sites",
                headers={AUTH_HEADER: session.token},
                params={"pageSize": self.page_size, "pageNumber": page_number},
            )
            try:
                body = response.json()
                page = body.get("sites", {}).get("site", [])
                total = int(body.get("pagination", {}).get("totalAvailable", len(page)))
            except (ValueError, AttributeError) as e:
                raise SourceFetchError(f"Invalid site listing response: {e}", asset_type="site")

            sites.extend(page)
            if not page or len(sites) >= total:
                break
            page_number += 1

        for site in sites:
            if site.get("id"):
                self._content_urls[site["id"]] = site.get("contentUrl") or ""

        logger.info(f"Listed {len(sites)} Tableau sites")
        return sites

    def _post_graphql(self, site_id: str, payload: Dict[str, Any]):
        """
        Send one Metadata API request for a site.

        An expired or revoked token is answered with HTTP 401; the cached
        session is dropped and the request is sent once more after a fresh
        sign-in.
        """
        url = f"{self.server_url}/api/metadata/graphql"
        session = self.session_for(site_id)
        try:
            return self.graphql.request("POST", url, headers={AUTH_HEADER: session.token}, json=payload)
        except SourceFetchError as e:
            if e.status_code != 401:
                raise
            logger.info(f"Tableau token for site {site_id} was rejected, signing in again")
            self._sessions.pop(site_id, None)

        session = self.session_for(site_id)
        return self.graphql.request("POST", url, headers={AUTH_HEADER: session.token}, json=payload)

    def _query_all(
        self,
        site_id: str,
        query: str,
        connection: str,
    ) -> Iterator[Dict[str, Any]]:
        """
        Yield every node of a paginated Metadata API connection.

        Raises:
            SourceFetchError: On HTTP failure or GraphQL errors without data
        """
        cursor = None
        pages = 0

        while True:
            response = self._post_graphql(
                site_id,
                {"query": query, "variables": {"first": self.page_size, "after": cursor}},
            )
            try:
                body = response.json()
            except ValueError as e:
                raise SourceFetchError(f"Invalid Metadata API response for {connection}: {e}")

            errors = body.get("errors")
            data = (body.get("data") or {}).get(connection)
            if errors:
                messages = "; ".join(str(err.get("message", err)) for err in errors)
                if data is None:
                    raise SourceFetchError(f"Metadata API query {connection} failed: {messages}")
                # Partial results are returned when some nodes are not visible
                logger.warning(f"Metadata API query {connection} returned errors: {messages}")
            if data is None:
                raise SourceFetchError(f"Metadata API response has no {connection}")

            pages += 1
            for node in data.get("nodes") or []:
                yield node

            page_info = data.get("pageInfo") or {}
            if not page_info.get("hasNextPage"):
                break
            cursor = page_info.get("endCursor")
            if not cursor:
                raise SourceFetchError(f"Metadata API reported more {connection} pages but no cursor")

        logger.debug(f"Fetched {pages} pages of {connection}")

    def close(self) -> None:
        """Sign out of every site and close HTTP sessions."""
        for session in self._sessions.values():
            self.sign_out(session)
        self._sessions.clear()
        self.rest.close()
        self.graphql.close()
