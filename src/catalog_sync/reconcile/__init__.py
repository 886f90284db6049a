"""
Reconciliation of fetched source listings into the local store.
"""

from .cascade import CascadeEngine
from .hierarchy import AssetGraph, subtree_types
from .reconciler import Reconciler

__all__ = ["AssetGraph", "CascadeEngine", "Reconciler", "subtree_types"]
