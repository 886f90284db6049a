"""
Catalog mirror: reconcile source catalog assets into a local store and
propagate their state to a downstream governance catalog.
"""

__version__ = "0.1.0"
