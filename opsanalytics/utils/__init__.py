"""Utility modules for logging and common helpers."""

from opsanalytics.utils.logging import configure_logging

__all__ = ["configure_logging"]
