"""
Change detection: content fingerprints and lifecycle classification.
"""

from .fingerprint import (
    classify_change,
    compute_fingerprint,
    derive_propagation_state,
    fingerprint_record,
    fingerprint_values,
)

__all__ = [
    "classify_change",
    "compute_fingerprint",
    "derive_propagation_state",
    "fingerprint_record",
    "fingerprint_values",
]
