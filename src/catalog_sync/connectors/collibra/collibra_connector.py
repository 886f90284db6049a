"""
Collibra target adapter.

Upserts go through the JSON import API in chunks; deletions resolve the
identifier to an asset id through communities, domains and assets, then
delete by id.

See: https://developer.collibra.com/rest/rest-import-api/
"""

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from ..http_client import HttpClient
from ...core.connector import TargetConnector
from ...core.exceptions import ConfigError, TargetCatalogError
from ...core.models import BatchResult, MappedAsset
from ...utils.retry import RetryConfig


logger = logging.getLogger(__name__)


IMPORT_OPTIONS = {
    "sendNotification": "false",
    "continueOnError": "true",
    "existingAssetPolicy": "UPDATE",
    "existingRelationPolicy": "UPDATE",
}


def _domain_ref(domain: str, community: str) -> Dict[str, Any]:
    return {"name": domain, "community": {"name": community}}


def to_import_entry(asset: MappedAsset) -> Dict[str, Any]:
    """
    Build one import API entry.

    Attribute values are wrapped as ``[{"value": ...}]`` and relations are
    grouped by relation type key.
    """
    relations: Dict[str, List[Dict[str, Any]]] = {}
    for relation in asset.relations:
        relations.setdefault(relation.relation_type, []).append({
            "name": relation.identifier,
            "domain": _domain_ref(relation.domain, relation.community),
        })

    entry = {
        "resourceType": "Asset",
        "identifier": {
            "name": asset.identifier,
            "domain": _domain_ref(asset.domain, asset.community),
        },
        "displayName": asset.display_name,
        "type": {"name": asset.type_name},
        "attributes": {
            name: [{"value": value}] for name, value in asset.attributes.items()
        },
    }
    if relations:
        entry["relations"] = relations
    return entry


class CollibraConnector(TargetConnector):
    """
    Writes mirrored assets into Collibra Data Intelligence Platform.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        batch_size: int = 500,
        timeout: int = 60,
        verify_ssl: bool = True,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the connector.

        Args:
            base_url: Instance URL, e.g. 'https://acme.collibra.com'
            username: Basic auth user
            password: Basic auth password
            batch_size: Maximum assets per import job
            timeout: Request timeout in seconds
            verify_ssl: Verify TLS certificates
            retry_config: Retry settings
            sleep: Sleep function used between retries
        """
        if not base_url:
            raise ConfigError("Collibra base_url is required")
        if not username or not password:
            raise ConfigError("Collibra username and password are required")
        if batch_size < 1:
            raise ConfigError(f"Collibra batch_size must be positive, got {batch_size}")

        self.base_url = base_url.rstrip("/")
        self.batch_size = batch_size
        self.http = HttpClient(
            name="collibra",
            error_class=TargetCatalogError,
            timeout=timeout,
            retry_config=retry_config or RetryConfig(max_attempts=3, initial_delay_ms=2000),
            sleep=sleep,
        )
        self.http.session.auth = (username, password)
        self.http.session.verify = verify_ssl

    def get_name(self) -> str:
        return "collibra"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/rest/2.0/{path.lstrip('/')}"

    def test_connection(self) -> bool:
        """Check the instance is reachable with the configured credentials."""
        try:
            response = self.http.request("GET", self._url("application/info"))
        except TargetCatalogError as e:
            logger.error(f"Collibra connection test failed: {e}")
            return False
        version = (response.json() or {}).get("version", {})
        logger.info(f"Connected to Collibra {version.get('fullVersion', 'unknown version')}")
        return True

    def upsert_batch(self, assets: List[MappedAsset]) -> BatchResult:
        """
        Submit assets as one or more import jobs.

        A rejected chunk marks its own assets failed and does not stop the
        remaining chunks.
        """
        result = BatchResult(success=True)
        if not assets:
            return result

        for start in range(0, len(assets), self.batch_size):
            chunk = assets[start:start + self.batch_size]
            identifiers = [a.identifier for a in chunk]
            try:
                job_id = self._submit_import(chunk)
            except TargetCatalogError as e:
                logger.error(f"Import of {len(chunk)} assets failed: {e}")
                result.success = False
                result.message = str(e)
                result.outcomes.update({i: False for i in identifiers})
                continue

            if job_id:
                result.job_ids.append(job_id)
            result.outcomes.update({i: True for i in identifiers})
            logger.info(f"Submitted import job {job_id} with {len(chunk)} assets")

        return result

    def _submit_import(self, chunk: List[MappedAsset]) -> Optional[str]:
        payload = json.dumps([to_import_entry(asset) for asset in chunk])
        response = self.http.request(
            "POST",
            self._url("import/json-job"),
            data=IMPORT_OPTIONS,
            files={"file": ("import.json", payload, "application/json")},
        )
        try:
            return (response.json() or {}).get("id")
        except ValueError:
            return None

    def _find_one(self, path: str, params: Dict[str, Any]) -> Optional[str]:
        response = self.http.request("GET", self._url(path), params=params)
        try:
            results = (response.json() or {}).get("results") or []
        except ValueError as e:
            raise TargetCatalogError(f"Invalid response from {path}: {e}")
        return results[0].get("id") if results else None

    def resolve_identifier(self, name: str, domain: str, community: str) -> Optional[str]:
        """
        Resolve an asset name within a domain and community to its id.

        Returns None when the community, domain or asset does not exist.
        """
        community_id = self._find_one(
            "communities", {"name": community, "nameMatchMode": "EXACT"}
        )
        if not community_id:
            logger.debug(f"Community '{community}' not found")
            return None

        domain_id = self._find_one(
            "domains", {"name": domain, "nameMatchMode": "EXACT", "communityId": community_id}
        )
        if not domain_id:
            logger.debug(f"Domain '{domain}' not found in '{community}'")
            return None

        return self._find_one(
            "assets",
            {"name": name, "nameMatchMode": "EXACT", "domainId": domain_id, "limit": 1},
        )

    def delete(self, internal_id: str) -> bool:
        response = self.http.request(
            "DELETE", self._url(f"assets/{internal_id}"), raise_for_status=False
        )
        if response.status_code == 404:
            logger.info(f"Asset {internal_id} was already deleted")
            return True
        if response.status_code >= 400:
            logger.warning(
                f"Delete of asset {internal_id} returned HTTP {response.status_code}: "
                f"{response.text[:200]}"
            )
            return False
        return True

    def close(self) -> None:
        self.http.close()
