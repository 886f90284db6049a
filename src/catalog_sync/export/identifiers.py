"""
Deterministic downstream identifiers.

Identifiers encode the hierarchy path, the natural key and the display
name. A rename therefore produces a new identifier, and the one built from
the previously exported name has to be retired downstream.
"""

from typing import List

from ..core.models import GLOBAL_TYPES, AssetType, NaturalKey


SEPARATOR = " > "


def export_identifier(key: NaturalKey, name: str) -> str:
    """
    Build the downstream identifier for a natural key and display name.

    Examples:
        server / site:      "server-456 > Tableau Prod", "site-123 > Finance"
        scoped types:       "site-123 > project-789 > Sales"
        report attributes:  "site-1 > ws-123 > ra-1 > Amount"
    """
    path: List[str] = []
    if key.asset_type not in GLOBAL_TYPES:
        path.append(key.scope_id)
    if key.asset_type == AssetType.REPORT_ATTRIBUTE:
        path.append(key.worksheet_id or "")
    path.extend((key.asset_id, name))
    return SEPARATOR.join(path)
