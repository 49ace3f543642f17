"""
Accumulator models for the operations analytics engine.

Accumulators are mutable running-total records keyed by a deterministic
identity derived from the input records. They are created on the first
observation of their key, updated on every matching record and discarded
when the aggregation pass ends.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .enums import OrderStatus, SettlementStatus


class PriceLedger(BaseModel):
    """
    Observed price history of a listing.

    Attributes:
        latest: Price of the most recent order seen
        previous: First differing price observed before ``latest``
        floor: Lowest price observed
        ceiling: Highest price observed
    """

    latest: Optional[float] = None
    previous: Optional[float] = None
    floor: Optional[float] = None
    ceiling: Optional[float] = None


class ListingAccumulator(BaseModel):
    """Running totals for one listing (channel + item identity)."""

    key: str
    label: str
    channel: str
    total_orders: int = 0
    pending_orders: int = 0
    cancelled_orders: int = 0
    failed_prints: int = 0
    gmv: float = 0.0
    last_order_at: Optional[datetime] = None
    prices: PriceLedger = Field(default_factory=PriceLedger)
    issues: set[str] = Field(default_factory=set)


class ChannelAccumulator(BaseModel):
    """Running totals for one sales channel (payment method)."""

    key: str
    total_orders: int = 0
    gmv: float = 0.0
    failed_prints: int = 0
    status_counts: dict[str, int] = Field(
        default_factory=lambda: {status.value: 0 for status in OrderStatus}
    )
    last_sync_at: Optional[datetime] = None
    issues: set[str] = Field(default_factory=set)
    listing_keys: set[str] = Field(default_factory=set)


class ComplianceAccumulator(BaseModel):
    """Compliance metrics for one listing, same key space as ListingAccumulator."""

    key: str
    label: str
    channel: str
    total_orders: int = 0
    cancelled_orders: int = 0
    failed_prints: int = 0
    missing_payments: int = 0
    delivered_orders: int = 0
    last_activity_at: Optional[datetime] = None


class SettlementCycleAccumulator(BaseModel):
    """Reconciliations sharing one ISO week."""

    key: str
    first_date: Optional[datetime] = None
    last_date: Optional[datetime] = None
    total_amount: float = 0.0
    status_counts: dict[str, int] = Field(
        default_factory=lambda: {status.value: 0 for status in SettlementStatus}
    )
    order_ids: set[str] = Field(default_factory=set)
    days_to_reconcile: list[float] = Field(default_factory=list)


class ShipmentWeekAccumulator(BaseModel):
    """Shipments sharing one ISO week."""

    key: str
    total_shipments: int = 0
    on_time: int = 0
    with_lead_time: int = 0
    lead_hours: float = 0.0
    breaches: list[str] = Field(default_factory=list)


class TrendBucket(BaseModel):
    """GMV and order count of one calendar day."""

    key: str
    gmv: float = 0.0
    orders: int = 0


class ProductionDayAccumulator(BaseModel):
    """Print jobs sharing one calendar day."""

    key: str
    total: int = 0
    completed: int = 0
    failed: int = 0


__all__ = [
    "ChannelAccumulator",
    "ComplianceAccumulator",
    "ListingAccumulator",
    "PriceLedger",
    "ProductionDayAccumulator",
    "SettlementCycleAccumulator",
    "ShipmentWeekAccumulator",
    "TrendBucket",
]
