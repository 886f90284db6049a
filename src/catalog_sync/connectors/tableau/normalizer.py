"""
Conversion of raw Tableau REST/GraphQL payloads into NormalizedRecords.

Each function takes one raw node and returns typed records; missing
optional values become None. A node without an id raises
RecordMappingError.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from ...core.models import AssetType, DataSourceKind, NormalizedRecord


CUSTOM_SQL_PREFIX = "custom-sql-"


def _get(node: Optional[Dict[str, Any]], *path: str) -> Any:
    """Walk nested dicts, returning None on any missing step."""
    value: Any = node
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _owner(node: Dict[str, Any]) -> Optional[str]:
    return _text(_get(node, "owner", "username")) or _text(_get(node, "owner", "name"))


def server_id_from_url(server_url: str) -> str:
    """Servers are identified by host (and port, when given)."""
    return urlparse(server_url).netloc or server_url


def normalize_server(server_info: Dict[str, Any], server_url: str) -> NormalizedRecord:
    """
    Normalize a ``/serverinfo`` response.

    Example payload:
        {"serverInfo": {"productVersion": {"value": "2023.1.0", "build": "20231.23"},
                        "restApiVersion": "3.19"}}
    """
    info = server_info.get("serverInfo", server_info)
    server_id = server_id_from_url(server_url)
    return NormalizedRecord(
        asset_type=AssetType.SERVER,
        asset_id=server_id,
        name=server_id,
        fields={
            "url": server_url.rstrip("/"),
            "version": _text(_get(info, "productVersion", "value")),
            "build": _text(_get(info, "productVersion", "build")),
            "rest_api_version": _text(info.get("restApiVersion")),
        },
    )


def normalize_site(site: Dict[str, Any], server_url: str) -> NormalizedRecord:
    """Normalize one entry of the REST ``/sites`` listing."""
    content_url = site.get("contentUrl") or ""
    base = server_url.rstrip("/")
    url = f"{base}/#/site/{content_url}" if content_url else base
    return NormalizedRecord(
        asset_type=AssetType.SITE,
        asset_id=_text(site.get("id")),
        name=_text(site.get("name")),
        fields={
            "content_url": content_url,
            "url": url,
            "state": _text(site.get("state")),
        },
        parents={"server": server_id_from_url(server_url)},
    )


def normalize_project(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    parent_id = _text(_get(node, "parentProject", "luid")) or _text(_get(node, "parentProject", "id"))
    return NormalizedRecord(
        asset_type=AssetType.PROJECT,
        asset_id=_text(node.get("luid")) or _text(node.get("id")),
        name=_text(node.get("name")),
        fields={
            "description": _text(node.get("description")),
            "owner": _owner(node),
            "parent_project_name": _text(_get(node, "parentProject", "name")),
        },
        parents={"site": site_id, "parent_project": parent_id},
    )


def normalize_workbook(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    return NormalizedRecord(
        asset_type=AssetType.WORKBOOK,
        asset_id=_text(node.get("luid")) or _text(node.get("id")),
        name=_text(node.get("name")),
        fields={
            "description": _text(node.get("description")),
            "project_name": _text(node.get("projectName")),
            "owner": _owner(node),
            "content_url": _text(node.get("uri")),
            "created_at": _text(node.get("createdAt")),
            "updated_at": _text(node.get("updatedAt")),
        },
        parents={"site": site_id, "project": _text(node.get("projectLuid"))},
    )


def normalize_worksheet(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    # Sheet luids are frequently null; the Metadata API id is used throughout
    workbook_id = _text(_get(node, "workbook", "luid")) or _text(_get(node, "workbook", "id"))
    return NormalizedRecord(
        asset_type=AssetType.WORKSHEET,
        asset_id=_text(node.get("id")),
        name=_text(node.get("name")),
        fields={"workbook_name": _text(_get(node, "workbook", "name"))},
        parents={"site": site_id, "workbook": workbook_id},
    )


def _first_table(node: Dict[str, Any]) -> Dict[str, Any]:
    tables = node.get("upstreamTables") or []
    return tables[0] if tables else {}


def _upstream_table_names(node: Dict[str, Any]) -> Optional[str]:
    names = sorted(
        _text(t.get("fullName")) or _text(t.get("name")) or ""
        for t in node.get("upstreamTables") or []
    )
    names = [n for n in names if n]
    return ", ".join(names) if names else None


def _table_fields(table: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "connection_type": _text(table.get("connectionType")) or _text(_get(table, "database", "connectionType")),
        "table_name": _text(table.get("fullName")) or _text(table.get("name")),
        "schema_name": _text(table.get("schema")),
        "database_name": _text(_get(table, "database", "name")),
        "server_name": _text(_get(table, "database", "hostName")),
    }


def normalize_published_datasource(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    fields = {
        "description": _text(node.get("description")),
        "is_certified": bool(node.get("isCertified")),
        "owner": _owner(node),
        "upstream_tables": _upstream_table_names(node),
        "source_type": DataSourceKind.PUBLISHED.value,
        "is_published": True,
        "luid": _text(node.get("luid")),
    }
    fields.update(_table_fields(_first_table(node)))
    return NormalizedRecord(
        asset_type=AssetType.DATA_SOURCE,
        asset_id=_text(node.get("id")),
        name=_text(node.get("name")),
        fields=fields,
        parents={"site": site_id},
    )


def normalize_embedded_datasource(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    workbook_id = _text(_get(node, "workbook", "luid")) or _text(_get(node, "workbook", "id"))
    fields = {
        "upstream_tables": _upstream_table_names(node),
        "source_type": DataSourceKind.EMBEDDED.value,
        "is_published": False,
        "references_published": bool(node.get("upstreamDatasources")),
    }
    fields.update(_table_fields(_first_table(node)))
    return NormalizedRecord(
        asset_type=AssetType.DATA_SOURCE,
        asset_id=_text(node.get("id")),
        name=_text(node.get("name")),
        fields=fields,
        parents={"site": site_id, "workbook": workbook_id},
    )


def normalize_custom_sql_table(node: Dict[str, Any], site_id: str) -> NormalizedRecord:
    raw_id = _text(node.get("id"))
    return NormalizedRecord(
        asset_type=AssetType.DATA_SOURCE,
        asset_id=f"{CUSTOM_SQL_PREFIX}{raw_id}" if raw_id else None,
        name=_text(node.get("name")),
        fields={
            "query": _text(node.get("query")),
            "connection_type": _text(node.get("connectionType")) or _text(_get(node, "database", "connectionType")),
            "database_name": _text(_get(node, "database", "name")),
            "server_name": _text(_get(node, "database", "hostName")),
            "source_type": DataSourceKind.CUSTOM_SQL.value,
            "is_published": False,
        },
        parents={"site": site_id},
    )


def _lineage(upstream_field: Dict[str, Any]) -> Optional[str]:
    columns = []
    for column in upstream_field.get("upstreamColumns") or []:
        table = _text(_get(column, "table", "fullName")) or _text(_get(column, "table", "name"))
        name = _text(column.get("name"))
        if name:
            columns.append(f"{table}.{name}" if table else name)
    return ", ".join(sorted(columns)) if columns else None


def normalize_sheet_fields(sheet: Dict[str, Any], site_id: str) -> List[NormalizedRecord]:
    """
    Flatten a sheet's field instances into report attribute records.

    Each instance is matched to the sheet's upstream field of the same name
    for data type, formula and column lineage.
    """
    worksheet_id = _text(sheet.get("id"))
    upstream_by_name = {
        f.get("name"): f for f in sheet.get("upstreamFields") or [] if f.get("name")
    }

    records = []
    for instance in sheet.get("sheetFieldInstances") or []:
        upstream = upstream_by_name.get(instance.get("name")) or {}
        is_calculated = upstream.get("__typename") == "CalculatedField"
        data_source_id = _text(_get(instance, "datasource", "id")) or _text(_get(upstream, "datasource", "id"))

        records.append(NormalizedRecord(
            asset_type=AssetType.REPORT_ATTRIBUTE,
            asset_id=_text(instance.get("id")),
            name=_text(instance.get("name")),
            worksheet_id=worksheet_id,
            fields={
                "field_role": _text(instance.get("role")),
                "is_calculated": is_calculated,
                "calculation_logic": _text(upstream.get("formula")) if is_calculated else None,
                "data_type": _text(upstream.get("dataType")),
                "lineage": _lineage(upstream),
                "data_source_name": _text(_get(instance, "datasource", "name")),
            },
            parents={"site": site_id, "worksheet": worksheet_id, "data_source": data_source_id},
        ))
    return records
