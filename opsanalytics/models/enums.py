"""
Enumeration types for the operations analytics engine.

All enums inherit from str to ensure JSON serialization compatibility.
Each upstream enum documents the value the normalizer substitutes when a
record carries something outside the known set.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle status. Unknown values normalize to PENDING."""

    PENDING = "pending"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ListingStatus(str, Enum):
    """
    Channel status of a listing.

    DRAFT is only ever produced by the normalizer for catalog products whose
    upstream status is missing or unknown; the aggregator classifies every
    observed listing into one of the other four.
    """

    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    ERROR = "error"
    PAUSED = "paused"


class PrintJobStatus(str, Enum):
    """Production status of a print job. Unknown values normalize to PENDING."""

    PENDING = "pending"
    PRINTING = "printing"
    COMPLETE = "complete"
    FAILED = "failed"


class SettlementStatus(str, Enum):
    """Finance reconciliation status. Unknown values normalize to PENDING."""

    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class CycleStatus(str, Enum):
    """Rolled-up status of a settlement cycle (failed > pending > complete)."""

    ATTENTION_NEEDED = "Attention needed"
    IN_PROGRESS = "In progress"
    COMPLETE = "Complete"


class ComplianceClass(str, Enum):
    """Compliance-view classification of a listing score."""

    ACTION = "action"
    MONITOR = "monitor"
    HEALTHY = "healthy"


class PricingRule(str, Enum):
    """Pricing behaviour inferred from a listing's observed price band."""

    STATIC = "static"
    REPRICING = "repricing"
    AGGRESSIVE = "aggressive"


class TaskPriority(str, Enum):
    """Priority of a generated compliance task."""

    HIGH = "high"
    MEDIUM = "medium"


class IssueTag(str, Enum):
    """Deduplicated issue tags attached to listings and channels."""

    FAILED_PRINT = "failed_print"
    CANCELLED_ORDERS = "cancelled_orders"
    PENDING_ORDERS = "pending_orders"
    MISSING_PAYMENT = "missing_payment"
    MISSING_PRICE = "missing_price"
    MISSING_ORDER_DATE = "missing_order_date"


# Presentation order of listing statuses: most urgent first.
LISTING_STATUS_RANK = {
    ListingStatus.ERROR: 0,
    ListingStatus.PENDING: 1,
    ListingStatus.PAUSED: 2,
    ListingStatus.PUBLISHED: 3,
    ListingStatus.DRAFT: 4,
}
