"""
Mapping of local records to the downstream catalog's asset representation.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..core.models import (
    AssetRecord,
    AssetType,
    MappedAsset,
    PropagationState,
    RelationTarget,
)
from .identifiers import export_identifier


logger = logging.getLogger(__name__)


DEFAULT_COMMUNITY = "Tableau Technology"

DEFAULT_DOMAINS: Dict[AssetType, str] = {
    AssetType.SERVER: "Tableau Servers",
    AssetType.SITE: "Tableau Sites",
    AssetType.PROJECT: "Tableau Projects",
    AssetType.WORKBOOK: "Tableau Workbooks",
    AssetType.WORKSHEET: "Tableau Worksheets",
    AssetType.DATA_SOURCE: "Tableau Data Sources",
    AssetType.REPORT_ATTRIBUTE: "Tableau Report Attributes",
}

TYPE_NAMES: Dict[AssetType, str] = {
    AssetType.SERVER: "Tableau Server",
    AssetType.SITE: "Tableau Site",
    AssetType.PROJECT: "Tableau Project",
    AssetType.WORKBOOK: "Tableau Workbook",
    AssetType.WORKSHEET: "Tableau Worksheet",
    AssetType.DATA_SOURCE: "Tableau Data Source",
    AssetType.REPORT_ATTRIBUTE: "Tableau Report Attribute",
}

# Relation name -> downstream relation type key ("<relation type id>:<direction>")
DEFAULT_RELATION_TYPES: Dict[str, Optional[str]] = {
    "site_server": "0195fcd7-70c3-7cda-aaec-0c5ae3dc3af7:SOURCE",
    "project_parent": "00000000-0000-0000-0000-120000000001:SOURCE",
    "project_site": "0195fc55-b49f-7711-9ce6-d87a1f60b36a:SOURCE",
    "workbook_project": "0195fcea-cc73-7284-88a6-ea770982b1ba:SOURCE",
    "worksheet_workbook": "0195fd0b-f14f-7e72-a382-750d4f3a704e:SOURCE",
    "data_source_workbook": "tableau-data-source-in-workbook:SOURCE",
    "report_attribute_worksheet": "0195fd1e-47f7-7674-96eb-e91ff0ce71c4:SOURCE",
    "report_attribute_data_source": "tableau-report-attribute-sources-from:SOURCE",
}

# Per type: (parent role, relation name)
RELATIONS: Dict[AssetType, Tuple[Tuple[str, str], ...]] = {
    AssetType.SERVER: (),
    AssetType.SITE: (("server", "site_server"),),
    AssetType.PROJECT: (("parent_project", "project_parent"), ("site", "project_site")),
    AssetType.WORKBOOK: (("project", "workbook_project"),),
    AssetType.WORKSHEET: (("workbook", "worksheet_workbook"),),
    AssetType.DATA_SOURCE: (("workbook", "data_source_workbook"),),
    AssetType.REPORT_ATTRIBUTE: (
        ("worksheet", "report_attribute_worksheet"),
        ("data_source", "report_attribute_data_source"),
    ),
}


@dataclass
class ExportSettings:
    """
    Downstream placement of mirrored assets.

    Attributes:
        community: Community holding every domain
        domains: Domain name per asset type
        relation_types: Relation name -> relation type key (None disables it)
    """
    community: str = DEFAULT_COMMUNITY
    domains: Dict[AssetType, str] = field(default_factory=lambda: dict(DEFAULT_DOMAINS))
    relation_types: Dict[str, Optional[str]] = field(
        default_factory=lambda: dict(DEFAULT_RELATION_TYPES)
    )

    @classmethod
    def from_dict(cls, config: Mapping[str, Any]) -> "ExportSettings":
        """Build settings from the ``collibra`` config section."""
        settings = cls()
        if config.get("community"):
            settings.community = config["community"]
        for type_name, domain in (config.get("domains") or {}).items():
            settings.domains[AssetType(type_name)] = domain
        for relation, type_key in (config.get("relation_types") or {}).items():
            if relation not in DEFAULT_RELATION_TYPES:
                raise ValueError(f"Unknown relation: {relation}")
            settings.relation_types[relation] = type_key
        return settings

    def domain_for(self, asset_type: AssetType) -> str:
        return self.domains[asset_type]


def to_epoch_millis_at_midnight(value: Any) -> Optional[str]:
    """
    Convert a timestamp to epoch milliseconds at UTC midnight of its date.

    Accepts ISO-8601 strings (with or without a trailing ``Z``), datetimes
    and dates. Returns None for blank or unparsable input.
    """
    if value in (None, ""):
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparsable timestamp: {value}")
            return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    if not isinstance(value, date):
        return None
    midnight = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return str(int(midnight.timestamp() * 1000))


def capitalize_role(role: Optional[str]) -> Optional[str]:
    """MEASURE -> Measure, dimension -> Dimension."""
    if not role:
        return role
    return role[:1].upper() + role[1:].lower()


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(v) for v in value if v not in (None, ""))
    return str(value)


def _server_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {
        "Description": f"Tableau Server: {record.name}",
        "URL": record.fields.get("url"),
        "Version": record.fields.get("version"),
    }


def _site_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {"URL": record.fields.get("url")}


def _project_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {
        "Description": record.fields.get("description"),
        "Owner in Source": record.fields.get("owner"),
    }


def _workbook_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {
        "Description": record.fields.get("description"),
        "Owner in Source": record.fields.get("owner"),
        "Document creation date": to_epoch_millis_at_midnight(record.fields.get("created_at")),
        "Document modification date": to_epoch_millis_at_midnight(record.fields.get("updated_at")),
    }


def _worksheet_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {}


def _data_source_attributes(record: AssetRecord) -> Dict[str, Any]:
    fields = record.fields
    source_type = fields.get("source_type")
    return {
        "Description": fields.get("description"),
        "Owner": fields.get("owner"),
        "Connection Type": fields.get("connection_type"),
        "Table Name": fields.get("table_name"),
        "Schema Name": fields.get("schema_name"),
        "Database Name": fields.get("database_name"),
        "Server Name": fields.get("server_name"),
        "Is Certified": fields.get("is_certified"),
        "Is Published": fields.get("is_published"),
        "Source Type": source_type.upper() if isinstance(source_type, str) else source_type,
        "Site ID": record.scope_id,
    }


def _report_attribute_attributes(record: AssetRecord) -> Dict[str, Any]:
    return {
        "Technical Data Type": record.fields.get("data_type"),
        "Role in Report": capitalize_role(record.fields.get("field_role")),
        "Calculation Rule": record.fields.get("calculation_logic"),
    }


ATTRIBUTE_BUILDERS: Dict[AssetType, Callable[[AssetRecord], Dict[str, Any]]] = {
    AssetType.SERVER: _server_attributes,
    AssetType.SITE: _site_attributes,
    AssetType.PROJECT: _project_attributes,
    AssetType.WORKBOOK: _workbook_attributes,
    AssetType.WORKSHEET: _worksheet_attributes,
    AssetType.DATA_SOURCE: _data_source_attributes,
    AssetType.REPORT_ATTRIBUTE: _report_attribute_attributes,
}


class ExportMapper:
    """
    Turns local records into MappedAssets.

    Blank attribute values are omitted rather than sent as empty strings.
    Relations are only emitted for parents that were loaded and are still
    present downstream (a DELETED parent already propagated is skipped).
    """

    def __init__(self, settings: Optional[ExportSettings] = None):
        self.settings = settings or ExportSettings()

    def map(
        self,
        record: AssetRecord,
        parents: Optional[Mapping[str, Optional[AssetRecord]]] = None,
    ) -> MappedAsset:
        """
        Map one record.

        Args:
            record: Local record to export
            parents: Parent role -> loaded parent record (missing = unresolvable)

        Returns:
            MappedAsset ready for a batch upsert
        """
        parents = parents or {}
        attributes: Dict[str, str] = {}
        for name, value in ATTRIBUTE_BUILDERS[record.asset_type](record).items():
            text = _text(value)
            if text is not None and text.strip():
                attributes[name] = text

        relations = []
        for role, relation_name in RELATIONS[record.asset_type]:
            relation_type = self.settings.relation_types.get(relation_name)
            parent = parents.get(role)
            if not relation_type or parent is None:
                continue
            if parent.is_deleted and parent.propagation_state == PropagationState.SYNCED:
                continue
            # A parent awaiting deletion still sits downstream under its exported name
            parent_name = (parent.exported_name or parent.name) if parent.is_deleted else parent.name
            relations.append(RelationTarget(
                relation_type=relation_type,
                identifier=export_identifier(parent.natural_key, parent_name),
                domain=self.settings.domain_for(parent.asset_type),
                community=self.settings.community,
            ))

        return MappedAsset(
            asset_type=record.asset_type,
            identifier=export_identifier(record.natural_key, record.name),
            display_name=record.name,
            type_name=TYPE_NAMES[record.asset_type],
            domain=self.settings.domain_for(record.asset_type),
            community=self.settings.community,
            attributes=attributes,
            relations=relations,
        )

    def locate(self, record: AssetRecord, name: Optional[str] = None) -> Tuple[str, str, str]:
        """
        Return (identifier, domain, community) used to find a record downstream.

        Args:
            record: Local record
            name: Name the record was exported under (defaults to its current name)
        """
        return (
            export_identifier(record.natural_key, name or record.name),
            self.settings.domain_for(record.asset_type),
            self.settings.community,
        )
