"""
Tableau source adapter.
"""

from .tableau_connector import TableauConnector, TableauSession

__all__ = ["TableauConnector", "TableauSession"]
