"""Response parsing and result aggregation."""

from .aggregator import Aggregator
from .normalizer import normalize_severity, sanitize_interface_id

__all__ = ["Aggregator", "normalize_severity", "sanitize_interface_id"]
