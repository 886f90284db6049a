"""
Source and target catalog connectors.
"""

from .http_client import HttpClient
from .memory_connector import InMemorySourceConnector, InMemoryTargetConnector

__all__ = [
    "HttpClient",
    "InMemorySourceConnector",
    "InMemoryTargetConnector",
]
