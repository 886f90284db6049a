"""
Export of local records to the downstream governance catalog.
"""

from .identifiers import export_identifier
from .mapper import ExportMapper, ExportSettings
from .pipeline import PropagationPipeline, order_for_submission, partition

__all__ = [
    "ExportMapper",
    "ExportSettings",
    "PropagationPipeline",
    "export_identifier",
    "order_for_submission",
    "partition",
]
