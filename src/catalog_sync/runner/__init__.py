"""
Synchronisation runner.
"""

from .sync_runner import SyncRunner

__all__ = ["SyncRunner"]
