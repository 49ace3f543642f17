"""
Base adapter class for upstream record normalization.

This module provides the abstract base class for adapters that turn loosely
typed upstream records into validated models. It isolates every defensive
parsing rule: no helper here raises on bad input, each one falls back to a
caller-supplied default and, when given a flag list, records which field was
defaulted and why.
"""

import math
import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, TypeVar

import pandas as pd
import structlog

from opsanalytics.models.records import NormalizedBatch, RecordBatch
from opsanalytics.models.report import DataQualitySection

logger = structlog.get_logger()

E = TypeVar("E", bound=Enum)

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")

# Largest accepted monetary or numeric magnitude
MAX_ABS_AMOUNT = 1e12

# Range of timestamps pandas can represent, truncated to whole seconds
EARLIEST_TIMESTAMP = pd.Timestamp.min.ceil("s").to_pydatetime().replace(tzinfo=timezone.utc)
LATEST_TIMESTAMP = pd.Timestamp.max.floor("s").to_pydatetime().replace(tzinfo=timezone.utc)


class BaseAdapter(ABC):
    """
    Abstract base class for record adapters.

    Attributes:
        source_name: Identifier for the upstream source (e.g., "dashboard_api")
    """

    def __init__(self, source_name: str):
        """
        Initialize the adapter with a source name.

        Args:
            source_name: Identifier for this data source
        """
        self.source_name = source_name
        self.logger = logger.bind(adapter=source_name)

    @abstractmethod
    def normalize(self, batch: RecordBatch) -> NormalizedBatch:
        """
        Convert a raw record batch into normalized records.

        Implementations must never raise on a malformed record: every
        anomaly is recovered locally with a documented default.
        """

    # =========================================================================
    # Field access
    # =========================================================================

    def _get(self, record: Any, *path: str) -> Any:
        """
        Read a nested field, returning None when any hop is missing.

        Args:
            record: Upstream record (normally a mapping)
            *path: Field names to follow

        Returns:
            The field value or None
        """
        current = record
        for key in path:
            if not isinstance(current, Mapping):
                return None
            current = current.get(key)
        return current

    def _is_missing(self, value: Any) -> bool:
        """
        Check if a value is missing (None, NaN, NaT, empty string).

        Args:
            value: Value to check

        Returns:
            True if value is missing
        """
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if pd.api.types.is_scalar(value):
            try:
                return bool(pd.isna(value))
            except (TypeError, ValueError):
                return False
        return False

    # =========================================================================
    # Scalar coercion
    # =========================================================================

    def _safe_str(
        self,
        value: Any,
        default: Optional[str] = None,
        field: Optional[str] = None,
        flags: Optional[list[str]] = None,
    ) -> Optional[str]:
        """
        Safely convert value to a stripped string.

        Args:
            value: Value to convert
            default: Default value if the value is missing or not scalar
            field: Field name used in the data-quality flag
            flags: Flag list to append to when the default is used

        Returns:
            String representation or default
        """
        if self._is_missing(value):
            self._flag(flags, field, "missing")
            return default
        if isinstance(value, (Mapping, list, tuple, set)):
            self._flag(flags, field, "invalid")
            return default
        return str(value).strip()

    def _safe_float(
        self,
        value: Any,
        default: Optional[float] = None,
        field: Optional[str] = None,
        flags: Optional[list[str]] = None,
    ) -> Optional[float]:
        """
        Safely convert value to a finite float.

        Missing values, empty strings, booleans, unparseable strings and
        non-finite numbers all fall back to ``default``. So do magnitudes
        above ``MAX_ABS_AMOUNT``, which keeps every sum of amounts finite.

        Args:
            value: Value to convert
            default: Default value if conversion fails
            field: Field name used in the data-quality flag
            flags: Flag list to append to when the default is used

        Returns:
            Float value or default
        """
        if self._is_missing(value):
            self._flag(flags, field, "missing")
            return default
        if isinstance(value, bool):
            self._flag(flags, field, "invalid")
            return default
        try:
            result = float(value.strip() if isinstance(value, str) else value)
        except (ValueError, TypeError, OverflowError):
            self._flag(flags, field, "invalid")
            return default
        if not math.isfinite(result) or abs(result) > MAX_ABS_AMOUNT:
            self._flag(flags, field, "invalid")
            return default
        return result

    def _safe_datetime(
        self,
        value: Any,
        field: Optional[str] = None,
        flags: Optional[list[str]] = None,
    ) -> Optional[datetime]:
        """
        Safely convert value to a timezone-aware UTC datetime.

        Accepts datetime and date objects, ISO-8601 strings and epoch
        seconds. Naive values are taken to be UTC. Relative words such as
        "now" are not dates. Anything that fails to parse, or falls outside
        the range pandas can represent, becomes None ("unknown"), never an
        error.

        Args:
            value: Value to convert
            field: Field name used in the data-quality flag
            flags: Flag list to append to when parsing fails

        Returns:
            UTC datetime or None
        """
        if self._is_missing(value):
            self._flag(flags, field, "missing")
            return None
        if not isinstance(value, date):
            if isinstance(value, bool) or not isinstance(value, (str, int, float)):
                self._flag(flags, field, "invalid")
                return None
            if isinstance(value, (int, float)) and not math.isfinite(value):
                self._flag(flags, field, "invalid")
                return None

        try:
            if isinstance(value, datetime):
                if value.tzinfo is None:
                    result = value.replace(tzinfo=timezone.utc)
                else:
                    result = value.astimezone(timezone.utc)
            elif isinstance(value, date):
                result = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
            else:
                if isinstance(value, str):
                    parsed = pd.to_datetime(
                        value.strip(), format="ISO8601", errors="coerce", utc=True
                    )
                else:
                    parsed = pd.to_datetime(value, unit="s", errors="coerce", utc=True)
                if pd.isna(parsed):
                    self._flag(flags, field, "invalid")
                    return None
                result = parsed.to_pydatetime().astimezone(timezone.utc)
        except (ValueError, TypeError, OverflowError):
            self._flag(flags, field, "invalid")
            return None
        if not EARLIEST_TIMESTAMP <= result <= LATEST_TIMESTAMP:
            self._flag(flags, field, "invalid")
            return None
        return result

    def _safe_enum(
        self,
        value: Any,
        enum_cls: type[E],
        default: E,
        field: Optional[str] = None,
        flags: Optional[list[str]] = None,
    ) -> E:
        """
        Map a raw value onto an enum member, case-insensitively.

        Args:
            value: Raw value
            enum_cls: Target enum
            default: Member substituted for missing or unknown values
            field: Field name used in the data-quality flag
            flags: Flag list to append to when the default is used

        Returns:
            Matching enum member or default
        """
        if self._is_missing(value):
            self._flag(flags, field, "missing")
            return default
        text = str(value).strip().lower()
        for member in enum_cls:
            if member.value.lower() == text:
                return member
        self._flag(flags, field, "unknown_value")
        return default

    def _slug(self, value: Optional[str]) -> Optional[str]:
        """Lowercase, dash-separated form of a display name."""
        if not value:
            return None
        slug = _SLUG_PATTERN.sub("-", value.lower()).strip("-")
        return slug or None

    def _flag(self, flags: Optional[list[str]], field: Optional[str], issue: str) -> None:
        if flags is not None and field:
            flags.append(f"{field}:{issue}")

    # =========================================================================
    # Quality reporting
    # =========================================================================

    def _compute_quality_report(
        self, batch: NormalizedBatch, total_records: int
    ) -> DataQualitySection:
        """
        Summarize the defaults applied while normalizing a batch.

        Args:
            batch: Normalized records
            total_records: Number of raw records that were processed

        Returns:
            DataQualitySection with per-flag counts
        """
        flagged = 0
        issue_counts: dict[str, int] = {}
        groups = (
            batch.orders,
            batch.shipments,
            batch.payments,
            batch.print_jobs,
            batch.reconciliations,
            batch.products,
        )
        for records in groups:
            for record in records:
                if not record.data_quality_flags:
                    continue
                flagged += 1
                for flag in record.data_quality_flags:
                    issue_counts[flag] = issue_counts.get(flag, 0) + 1

        return DataQualitySection(
            total_records=total_records,
            flagged_records=flagged,
            issue_counts=dict(sorted(issue_counts.items())),
        )
