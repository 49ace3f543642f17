"""
Report Assembler — one synchronous pass from raw records to report.

    raw RecordBatch
        -> RecordNormalizer
        -> ListingAggregator (listings, channels, compliance)
           FulfillmentAggregator (SLA, production)
           SettlementAggregator (cycles, payments)
           TrendAssembler, catalog_stats
        -> AnalyticsReport

The builder keeps no state between invocations: every call creates its own
accumulator stores and returns a fresh report, so concurrent calls over the
same batch need no locking. Given the same batch and ``as_of`` the report
is byte-for-byte identical.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Optional, Union

import structlog

from opsanalytics.adapters.record_normalizer import RecordNormalizer
from opsanalytics.config import Settings, get_settings
from opsanalytics.models.enums import ListingStatus, OrderStatus
from opsanalytics.models.records import NormalizedBatch, RecordBatch
from opsanalytics.models.report import AnalyticsReport, ListingRow, SalesOverview

from .catalog import catalog_stats
from .fulfillment import FulfillmentAggregator, merge_shipments
from .listing_aggregator import ListingAggregator
from .numbers import average, round_money, round_ratio, safe_ratio
from .settlement import SettlementAggregator
from .time_buckets import to_utc
from .trend import TrendAssembler


BatchInput = Union[RecordBatch, Mapping[str, Any], None]


class ReportBuilder:
    """
    Builds the operations analytics report for one batch of records.

    Attributes:
        settings: Engine settings (SLA target, trend window, thresholds)
        normalizer: Record normalizer

    Example:
        >>> builder = ReportBuilder()
        >>> report = builder.build({"orders": orders}, as_of=datetime(2025, 1, 15))
        >>> report.sales_overview.total_orders
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.normalizer = RecordNormalizer()
        self.logger = structlog.get_logger()

    def build(self, batch: BatchInput = None, as_of: Optional[datetime] = None) -> AnalyticsReport:
        """
        Normalize, aggregate, classify and assemble the report.

        An empty or missing batch is a valid input and yields a well-formed
        all-zero report.

        Args:
            batch: RecordBatch, a mapping with the same keys, or None
            as_of: Reference time; defaults to now (UTC)

        Returns:
            AnalyticsReport
        """
        as_of = to_utc(as_of) if as_of is not None else datetime.now(timezone.utc)
        raw = self._coerce_batch(batch)

        with structlog.contextvars.bound_contextvars(report_as_of=as_of.isoformat()):
            normalized = self.normalizer.normalize(raw)
            report = self._assemble(normalized, as_of, raw.total_records)

            self.logger.info(
                "report_built",
                orders=report.sales_overview.total_orders,
                listings=len(report.assortment),
                channels=len(report.channel_breakdown),
                cycles=len(report.settlements.cycles),
                flagged_records=report.data_quality.flagged_records,
            )
        return report

    def _assemble(
        self, batch: NormalizedBatch, as_of: datetime, total_records: int
    ) -> AnalyticsReport:
        settings = self.settings

        listing_aggregator = ListingAggregator(
            paused_after_days=settings.paused_after_days,
            cancellation_error_ratio=settings.cancellation_error_ratio,
        )
        aggregation = listing_aggregator.aggregate(batch.orders, as_of)
        assortment = listing_aggregator.listing_rows(aggregation)
        channel_breakdown = listing_aggregator.channel_rows(aggregation)
        compliance = listing_aggregator.compliance_section(aggregation)

        fulfillment = FulfillmentAggregator(
            target_hours=settings.sla_target_hours,
            breach_limit=settings.breach_list_limit,
        )
        sla = fulfillment.sla_section(merge_shipments(batch.shipments, batch.orders))
        production = fulfillment.production_section(batch.print_jobs)

        settlement = SettlementAggregator()
        settlements = settlement.settlement_section(batch.reconciliations)
        payments = settlement.payments_section(batch.payments)

        trend, gmv_change = TrendAssembler(days=settings.trend_days).build(batch.orders, as_of)

        return AnalyticsReport(
            as_of=as_of,
            sales_overview=self._sales_overview(batch, assortment, gmv_change),
            trend=trend,
            channel_breakdown=channel_breakdown,
            assortment=assortment,
            compliance=compliance,
            settlements=settlements,
            sla=sla,
            production=production,
            payments=payments,
            catalog=catalog_stats(batch.products),
            data_quality=self.normalizer.quality_report(batch, total_records),
        )

    def _sales_overview(
        self, batch: NormalizedBatch, assortment: list[ListingRow], gmv_change: float
    ) -> SalesOverview:
        orders = batch.orders
        status_counts = {status: 0 for status in OrderStatus}
        for order in orders:
            status_counts[order.status] += 1
        aov = average(order.total for order in orders)

        return SalesOverview(
            total_orders=len(orders),
            gross_merchandise_value=round_money(sum(order.total for order in orders)),
            average_order_value=round_money(aov) if aov is not None else None,
            pending_orders=status_counts[OrderStatus.PENDING],
            shipped_orders=status_counts[OrderStatus.SHIPPED],
            delivered_orders=status_counts[OrderStatus.DELIVERED],
            cancelled_orders=status_counts[OrderStatus.CANCELLED],
            cancellation_rate=round_ratio(
                safe_ratio(status_counts[OrderStatus.CANCELLED], len(orders))
            ),
            gmv_change=gmv_change,
            active_listings=sum(
                1 for row in assortment if row.status != ListingStatus.PAUSED
            ),
            flagged_listings=sum(1 for row in assortment if row.flagged),
        )

    @staticmethod
    def _coerce_batch(batch: BatchInput) -> RecordBatch:
        if batch is None:
            return RecordBatch()
        if isinstance(batch, RecordBatch):
            return batch
        fields = RecordBatch.model_fields
        return RecordBatch(
            **{
                name: list(value)
                for name, value in batch.items()
                if name in fields and isinstance(value, (list, tuple))
            }
        )


def build_report(
    batch: BatchInput = None,
    as_of: Optional[datetime] = None,
    settings: Optional[Settings] = None,
) -> AnalyticsReport:
    """
    Build the operations analytics report for ``batch``.

    Args:
        batch: RecordBatch, mapping of record lists, or None
        as_of: Reference time; pass it for fully deterministic output
        settings: Engine settings; defaults to the cached environment settings

    Returns:
        AnalyticsReport
    """
    return ReportBuilder(settings=settings).build(batch, as_of=as_of)
