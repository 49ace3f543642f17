"""
Analytics report models.

The report is the only product of the engine. It is consumed by the
presentation layer, so every numeric field must be finite and every value
that could not be computed is an explicit None rather than a 0 stand-in.
"""

import math
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from .enums import (
    ComplianceClass,
    CycleStatus,
    ListingStatus,
    PricingRule,
    TaskPriority,
)


class ReportModel(BaseModel):
    """Base for report sections; rejects NaN and infinite floats."""

    @model_validator(mode="after")
    def validate_finite_numbers(self):
        for name, value in self:
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"{type(self).__name__}.{name} must be finite")
            if isinstance(value, dict):
                for key, item in value.items():
                    if isinstance(item, float) and not math.isfinite(item):
                        raise ValueError(
                            f"{type(self).__name__}.{name}[{key}] must be finite"
                        )
        return self


class SalesOverview(ReportModel):
    """Headline sales KPIs for the window."""

    total_orders: int = Field(ge=0)
    gross_merchandise_value: float
    average_order_value: Optional[float] = None
    pending_orders: int = Field(ge=0)
    shipped_orders: int = Field(ge=0)
    delivered_orders: int = Field(ge=0)
    cancelled_orders: int = Field(ge=0)
    cancellation_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    gmv_change: float = Field(description="Period-over-period GMV change ratio")
    active_listings: int = Field(ge=0)
    flagged_listings: int = Field(ge=0)


class TrendPoint(ReportModel):
    """One gap-filled day of the GMV trend."""

    date: str
    gmv: float
    orders: int = Field(ge=0)


class ChannelRow(ReportModel):
    """Health and volume of one sales channel."""

    channel: str
    status: ListingStatus
    total_orders: int = Field(ge=0)
    gmv: float
    share_of_gmv: Optional[float] = None
    failed_prints: int = Field(ge=0)
    status_counts: dict[str, int]
    listings: int = Field(ge=0)
    last_sync_at: Optional[datetime] = None
    issues: list[str] = Field(default_factory=list)


class ListingRow(ReportModel):
    """Assortment row: status, pricing behaviour and listing-view score."""

    key: str
    label: str
    channel: str
    status: ListingStatus
    total_orders: int = Field(ge=0)
    pending_orders: int = Field(ge=0)
    cancelled_orders: int = Field(ge=0)
    failed_prints: int = Field(ge=0)
    gmv: float
    last_order_at: Optional[datetime] = None
    latest_price: Optional[float] = None
    previous_price: Optional[float] = None
    price_floor: Optional[float] = None
    price_ceiling: Optional[float] = None
    repricing_active: bool
    pricing_rule: PricingRule
    score: float = Field(ge=0.0, le=100.0)
    flagged: bool
    issues: list[str] = Field(default_factory=list)


class ComplianceRow(ReportModel):
    """Compliance-view score of one listing."""

    key: str
    label: str
    channel: str
    score: float = Field(ge=0.0, le=100.0)
    classification: ComplianceClass
    total_orders: int = Field(ge=0)
    cancelled_orders: int = Field(ge=0)
    failed_prints: int = Field(ge=0)
    missing_payments: int = Field(ge=0)
    delivered_orders: int = Field(ge=0)
    delivery_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    last_activity_at: Optional[datetime] = None


class ComplianceTask(ReportModel):
    """Follow-up generated for a listing that needs attention."""

    listing_key: str
    label: str
    priority: TaskPriority
    signal: str
    message: str


class ComplianceSummary(ReportModel):
    listings: int = Field(ge=0)
    average_score: Optional[float] = None
    action: int = Field(ge=0)
    monitor: int = Field(ge=0)
    healthy: int = Field(ge=0)


class ComplianceSection(ReportModel):
    summary: ComplianceSummary
    listings: list[ComplianceRow] = Field(default_factory=list)
    tasks: list[ComplianceTask] = Field(default_factory=list)


class SettlementCycle(ReportModel):
    """One ISO-week settlement cycle."""

    cycle: str
    label: str
    status: CycleStatus
    first_date: Optional[datetime] = None
    last_date: Optional[datetime] = None
    total_amount: float
    completed: int = Field(ge=0)
    pending: int = Field(ge=0)
    failed: int = Field(ge=0)
    orders: int = Field(ge=0)
    average_days_to_reconcile: Optional[float] = None


class NextPayout(ReportModel):
    cycle: str
    status: CycleStatus
    amount: float
    expected_date: date


class SettlementSummary(ReportModel):
    total_amount: float
    pending_amount: float
    status_counts: dict[str, int]
    cycles: int = Field(ge=0)
    average_days_to_reconcile: Optional[float] = None


class SettlementSection(ReportModel):
    summary: SettlementSummary
    cycles: list[SettlementCycle] = Field(default_factory=list)
    next_payout: Optional[NextPayout] = None


class SlaBreach(ReportModel):
    tracking_number: str
    order_id: str
    shipment_date: Optional[datetime] = None
    fulfillment_hours: float
    method: str


class SlaWeek(ReportModel):
    """On-time attainment of one ISO week."""

    week: str
    label: str
    total_shipments: int = Field(ge=0)
    shipments_with_lead_time: int = Field(ge=0)
    on_time_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    average_fulfillment_hours: Optional[float] = None
    breaches: list[str] = Field(default_factory=list)


class SlaSection(ReportModel):
    target_hours: float
    total_shipments: int = Field(ge=0)
    on_time_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    average_fulfillment_hours: Optional[float] = None
    weekly: list[SlaWeek] = Field(default_factory=list)
    top_breaches: list[SlaBreach] = Field(default_factory=list)


class ProductionDay(ReportModel):
    date: str
    total: int = Field(ge=0)
    completed: int = Field(ge=0)
    failed: int = Field(ge=0)


class ProductionSection(ReportModel):
    """Print-job throughput and lead time."""

    total_jobs: int = Field(ge=0)
    status_counts: dict[str, int]
    average_lead_time_hours: Optional[float] = None
    completion_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    trend: list[ProductionDay] = Field(default_factory=list)


class PaymentsSection(ReportModel):
    total_collected: float
    method_totals: dict[str, float]


class CatalogStats(ReportModel):
    total: int = Field(ge=0)
    attached: int = Field(ge=0)
    unattached: int = Field(ge=0)
    average_price: Optional[float] = None


class DataQualitySection(ReportModel):
    """How many input records needed defaults, and for which fields."""

    total_records: int = Field(ge=0)
    flagged_records: int = Field(ge=0)
    issue_counts: dict[str, int] = Field(default_factory=dict)


class AnalyticsReport(ReportModel):
    """
    Complete operations analytics report for one batch.

    Attributes:
        as_of: Reference time the report was computed for
        sales_overview: Headline KPIs
        trend: Gap-filled daily GMV series ending on ``as_of``
        channel_breakdown: Per-channel health, largest GMV first
        assortment: Listings ordered by status urgency then recency
        compliance: Compliance-view scores and generated tasks
        settlements: Settlement cycles and next payout
        sla: Shipment on-time attainment
        production: Print-job throughput
        payments: Collected amounts by method
        catalog: Catalog product KPIs
        data_quality: Normalization defaults applied to the input
        schema_version: Report schema version
    """

    as_of: datetime
    sales_overview: SalesOverview
    trend: list[TrendPoint] = Field(default_factory=list)
    channel_breakdown: list[ChannelRow] = Field(default_factory=list)
    assortment: list[ListingRow] = Field(default_factory=list)
    compliance: ComplianceSection
    settlements: SettlementSection
    sla: SlaSection
    production: ProductionSection
    payments: PaymentsSection
    catalog: CatalogStats
    data_quality: DataQualitySection
    schema_version: str = Field(default="ops_report_v1")
