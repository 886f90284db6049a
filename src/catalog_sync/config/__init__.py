"""
Configuration loading and component construction.
"""

from .builders import build_mapper, build_source, build_store, build_target
from .config_loader import SyncConfig

__all__ = [
    "SyncConfig",
    "build_mapper",
    "build_source",
    "build_store",
    "build_target",
]
