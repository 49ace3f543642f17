"""
Record adapters.

Adapters turn loosely typed upstream records into validated engine inputs.
All defensive parsing lives here so the aggregators can assume clean data.
"""

from .base_adapter import BaseAdapter
from .record_normalizer import RecordNormalizer

__all__ = ["BaseAdapter", "RecordNormalizer"]
