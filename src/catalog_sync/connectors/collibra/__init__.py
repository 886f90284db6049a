"""
Collibra target adapter.
"""

from .collibra_connector import CollibraConnector, to_import_entry

__all__ = ["CollibraConnector", "to_import_entry"]
