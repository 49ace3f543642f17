"""
Classifier / Scorer — status, score and pricing classification.

Pure functions that turn an accumulator's final counts into discrete labels
and a 0-100 score. Nothing here reads or mutates accumulators directly.

Two scoring policies exist and intentionally differ:

    LISTING_POLICY     25 x failed prints + 18 x cancellations + 10 x pending,
                       flagged below 85
    COMPLIANCE_POLICY  22 x failed prints + 18 x cancellations
                       + 12 x missing payments,
                       action below 75, monitor below 90, healthy otherwise

Both clamp at their floor, and an ``error`` listing loses a further 10
points, clamped again.

Version: scoring_v1
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from opsanalytics.models.accumulators import PriceLedger
from opsanalytics.models.enums import (
    LISTING_STATUS_RANK,
    ComplianceClass,
    ListingStatus,
    PricingRule,
)

from .time_buckets import to_utc

DEFAULT_CANCELLATION_ERROR_RATIO = 0.25
DEFAULT_PAUSED_AFTER_DAYS = 45

# Repricing band thresholds: (absolute minimum, share of latest price)
REPRICING_BAND = (2.0, 0.04)
AGGRESSIVE_BAND = (5.0, 0.12)


class ScoringPolicy(BaseModel):
    """
    Named penalty-weighted scoring policy.

    Attributes:
        name: Policy identifier
        weights: Penalty points per unit of each counted signal
        score_floor: Lowest score the policy can produce
        error_penalty: Extra points removed for listings in error
    """

    model_config = ConfigDict(frozen=True)

    name: str
    weights: dict[str, float]
    score_floor: float = Field(default=0.0, ge=0.0, le=100.0)
    error_penalty: float = Field(default=10.0, ge=0.0)


LISTING_POLICY = ScoringPolicy(
    name="listing",
    weights={"failed_prints": 25, "cancelled_orders": 18, "pending_orders": 10},
)

COMPLIANCE_POLICY = ScoringPolicy(
    name="compliance",
    weights={"failed_prints": 22, "cancelled_orders": 18, "missing_payments": 12},
)

LISTING_FLAG_THRESHOLD = 85.0
COMPLIANCE_ACTION_THRESHOLD = 75.0
COMPLIANCE_MONITOR_THRESHOLD = 90.0


# =============================================================================
# Status classification
# =============================================================================


def cancellation_ratio(cancelled: int, total: int) -> float:
    """Share of cancelled orders; 0.0 when there are no orders."""
    if total <= 0:
        return 0.0
    return cancelled / total


def is_error(
    failed_prints: int,
    cancelled: int,
    total: int,
    error_ratio: float = DEFAULT_CANCELLATION_ERROR_RATIO,
) -> bool:
    """A listing is in error after any failed print or too many cancellations."""
    return failed_prints > 0 or cancellation_ratio(cancelled, total) > error_ratio


def classify_listing(
    failed_prints: int,
    cancelled: int,
    total: int,
    pending: int,
    last_order_at: Optional[datetime],
    as_of: datetime,
    paused_after_days: int = DEFAULT_PAUSED_AFTER_DAYS,
    error_ratio: float = DEFAULT_CANCELLATION_ERROR_RATIO,
) -> ListingStatus:
    """
    Ranked listing status, highest priority first.

    error     failed prints > 0 or cancellation ratio above ``error_ratio``
    pending   any pending order
    paused    no order within ``paused_after_days`` of ``as_of``
    published otherwise

    Must be applied once to final counts, never mid-pass.
    """
    if is_error(failed_prints, cancelled, total, error_ratio):
        return ListingStatus.ERROR
    if pending > 0:
        return ListingStatus.PENDING
    if last_order_at is None:
        return ListingStatus.PAUSED
    if to_utc(as_of) - to_utc(last_order_at) > timedelta(days=paused_after_days):
        return ListingStatus.PAUSED
    return ListingStatus.PUBLISHED


def listing_sort_key(status: ListingStatus, last_order_at: Optional[datetime], key: str) -> tuple:
    """
    Presentation order: status rank, then most recent order first.

    Listings without any known order date sort last within their status;
    the listing key breaks remaining ties so ordering is deterministic.
    """
    timestamp = to_utc(last_order_at).timestamp() if last_order_at else float("-inf")
    return (LISTING_STATUS_RANK[status], -timestamp, key)


# =============================================================================
# Scores
# =============================================================================


def penalty(policy: ScoringPolicy, counts: dict[str, int]) -> float:
    """Weighted penalty of the signals a policy knows about."""
    return sum(weight * counts.get(signal, 0) for signal, weight in policy.weights.items())


def compute_score(
    policy: ScoringPolicy, counts: dict[str, int], status: Optional[ListingStatus] = None
) -> float:
    """
    Penalty-weighted score in [policy.score_floor, 100].

    Args:
        policy: Scoring policy to apply
        counts: Signal name -> observed count
        status: Listing status; ERROR removes ``policy.error_penalty`` more

    Returns:
        Score clamped to the policy floor
    """
    score = max(policy.score_floor, 100.0 - penalty(policy, counts))
    if status == ListingStatus.ERROR:
        score = max(policy.score_floor, score - policy.error_penalty)
    return min(100.0, score)


def is_flagged(score: float) -> bool:
    """Listing-view flag."""
    return score < LISTING_FLAG_THRESHOLD


def classify_compliance(score: float) -> ComplianceClass:
    """Compliance-view classification."""
    if score < COMPLIANCE_ACTION_THRESHOLD:
        return ComplianceClass.ACTION
    if score < COMPLIANCE_MONITOR_THRESHOLD:
        return ComplianceClass.MONITOR
    return ComplianceClass.HEALTHY


# =============================================================================
# Pricing
# =============================================================================


def _band_exceeds(ledger: PriceLedger, minimum: float, share: float) -> bool:
    if ledger.floor is None or ledger.ceiling is None or ledger.latest is None:
        return False
    return ledger.ceiling - ledger.floor > max(minimum, share * ledger.latest)


def repricing_active(ledger: PriceLedger) -> bool:
    """True when the observed price band exceeds max(2, 4% of latest price)."""
    return _band_exceeds(ledger, *REPRICING_BAND)


def pricing_rule(ledger: PriceLedger) -> PricingRule:
    """
    Pricing behaviour label.

    ``aggressive`` when repricing is active and the band also exceeds
    max(5, 12% of latest price); ``repricing`` when only the first holds.
    """
    if not repricing_active(ledger):
        return PricingRule.STATIC
    if _band_exceeds(ledger, *AGGRESSIVE_BAND):
        return PricingRule.AGGRESSIVE
    return PricingRule.REPRICING
