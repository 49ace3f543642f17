"""
Listing / Channel Aggregator — per-listing, per-channel and compliance folds.

Each normalized order is folded, in one pass, into three keyed stores:

- listings: one accumulator per (channel, item) or, for item-less orders,
  per synthetic ``order:<order_id>:<channel>`` key
- channels: one accumulator per payment method ("unassigned" when none)
- compliance: same key space as listings, different metrics

A multi-item order contributes an even share of its total to each item's
GMV and its whole total to the channel. Statuses and scores are derived
once from final counts after the pass; nothing is re-derived mid-fold.

Price ledger rule, applied per fold in this order:
    1. first known price seeds latest/floor/ceiling (previous stays unset)
    2. newer event: if previous is unset and the price differs from latest,
       the old latest becomes previous; latest becomes the incoming price
    3. older (or undated) event: if previous is unset and the price differs
       from latest, the incoming price becomes previous
    4. floor/ceiling extend to include the incoming price
"""

from datetime import datetime
from typing import Optional

import structlog

from opsanalytics.models.accumulators import (
    ChannelAccumulator,
    ComplianceAccumulator,
    ListingAccumulator,
    PriceLedger,
)
from opsanalytics.models.enums import (
    ComplianceClass,
    IssueTag,
    ListingStatus,
    OrderStatus,
    PrintJobStatus,
    TaskPriority,
)
from opsanalytics.models.records import OrderEvent
from opsanalytics.models.report import (
    ChannelRow,
    ComplianceRow,
    ComplianceSection,
    ComplianceSummary,
    ComplianceTask,
    ListingRow,
)

from . import scoring
from .accumulator_store import KeyedAccumulatorStore
from .numbers import average, round_money, round_ratio, safe_ratio
from .time_buckets import to_utc


# Signal -> (issue tag, task message template)
COMPLIANCE_SIGNALS = {
    "failed_prints": (
        IssueTag.FAILED_PRINT,
        "Investigate {count} failed print job(s) for {label}",
    ),
    "cancelled_orders": (
        IssueTag.CANCELLED_ORDERS,
        "Review {count} cancelled order(s) for {label}",
    ),
    "missing_payments": (
        IssueTag.MISSING_PAYMENT,
        "Collect payment details for {count} order(s) of {label}",
    ),
}


def update_price_ledger(
    ledger: PriceLedger,
    price: Optional[float],
    event_at: Optional[datetime],
    last_seen_at: Optional[datetime],
) -> None:
    """
    Fold one observed price into a ledger.

    Args:
        ledger: Ledger to update in place
        price: Observed price, None when unknown (ledger untouched)
        event_at: Timestamp of the observing event
        last_seen_at: Latest event timestamp folded before this one
    """
    if price is None:
        return

    if ledger.latest is None:
        ledger.latest = price
        ledger.floor = price
        ledger.ceiling = price
        return

    newer = event_at is not None and (
        last_seen_at is None or to_utc(event_at) > to_utc(last_seen_at)
    )
    if newer:
        if ledger.previous is None and price != ledger.latest:
            ledger.previous = ledger.latest
        ledger.latest = price
    elif ledger.previous is None and price != ledger.latest:
        ledger.previous = price

    ledger.floor = price if ledger.floor is None else min(ledger.floor, price)
    ledger.ceiling = price if ledger.ceiling is None else max(ledger.ceiling, price)


def _latest(current: Optional[datetime], candidate: Optional[datetime]) -> Optional[datetime]:
    if candidate is None:
        return current
    if current is None or to_utc(candidate) > to_utc(current):
        return candidate
    return current


class ListingAggregation:
    """
    Accumulator stores produced by one ListingAggregator pass.

    Attributes:
        listings: Listing key -> ListingAccumulator
        channels: Channel key -> ChannelAccumulator
        compliance: Listing key -> ComplianceAccumulator
        as_of: Reference time used for recency classification
    """

    def __init__(self, as_of: datetime):
        self.as_of = as_of
        self.listings: KeyedAccumulatorStore[ListingAccumulator] = KeyedAccumulatorStore(
            lambda key, **init: ListingAccumulator(key=key, **init)
        )
        self.channels: KeyedAccumulatorStore[ChannelAccumulator] = KeyedAccumulatorStore(
            lambda key: ChannelAccumulator(key=key)
        )
        self.compliance: KeyedAccumulatorStore[ComplianceAccumulator] = KeyedAccumulatorStore(
            lambda key, **init: ComplianceAccumulator(key=key, **init)
        )


class ListingAggregator:
    """
    Folds orders into listing, channel and compliance accumulators and
    derives the assortment, channel breakdown and compliance sections.

    Attributes:
        paused_after_days: Days without orders before a listing is paused
        cancellation_error_ratio: Cancellation ratio above which a listing errors

    Example:
        >>> aggregator = ListingAggregator()
        >>> aggregation = aggregator.aggregate(orders, as_of=now)
        >>> rows = aggregator.listing_rows(aggregation)
    """

    def __init__(
        self,
        paused_after_days: int = scoring.DEFAULT_PAUSED_AFTER_DAYS,
        cancellation_error_ratio: float = scoring.DEFAULT_CANCELLATION_ERROR_RATIO,
    ):
        self.paused_after_days = paused_after_days
        self.cancellation_error_ratio = cancellation_error_ratio
        self.logger = structlog.get_logger()

    # =========================================================================
    # Fold
    # =========================================================================

    def aggregate(self, orders: list[OrderEvent], as_of: datetime) -> ListingAggregation:
        """
        Run one aggregation pass over ``orders``.

        Args:
            orders: Normalized orders of the window
            as_of: Reference time for recency classification

        Returns:
            ListingAggregation holding the populated stores
        """
        aggregation = ListingAggregation(as_of=as_of)
        for order in orders:
            self.fold_order(aggregation, order)

        for channel in aggregation.channels:
            for listing_key in channel.listing_keys:
                channel.issues |= aggregation.listings.get(listing_key).issues

        self.logger.info(
            "listing_aggregation_completed",
            orders=len(orders),
            listings=len(aggregation.listings),
            channels=len(aggregation.channels),
        )
        return aggregation

    def fold_order(self, aggregation: ListingAggregation, order: OrderEvent) -> None:
        """Fold one order into every store of ``aggregation``."""
        channel_key = order.channel_key
        channel, _ = aggregation.channels.get_or_create(channel_key)
        channel.total_orders += 1
        channel.gmv += order.total
        channel.status_counts[order.status.value] += 1
        if self._print_failed(order):
            channel.failed_prints += 1
        channel.last_sync_at = _latest(channel.last_sync_at, order.order_date)

        if order.line_items:
            share = order.total / len(order.line_items)
            for item in order.line_items:
                key = f"{channel_key}:{item.item_id}"
                label = item.name or item.item_id
                self._fold_listing(aggregation, key, label, channel_key, order, item.price, share)
                channel.listing_keys.add(key)
        else:
            key = f"order:{order.order_id}:{channel_key}"
            price = None if "total:missing" in order.data_quality_flags else order.total
            self._fold_listing(
                aggregation, key, f"Order {order.order_id}", channel_key, order, price, order.total
            )
            channel.listing_keys.add(key)

    def _fold_listing(
        self,
        aggregation: ListingAggregation,
        key: str,
        label: str,
        channel_key: str,
        order: OrderEvent,
        price: Optional[float],
        gmv_share: float,
    ) -> None:
        listing, _ = aggregation.listings.get_or_create(key, label=label, channel=channel_key)
        update_price_ledger(listing.prices, price, order.order_date, listing.last_order_at)

        listing.total_orders += 1
        listing.gmv += gmv_share
        if order.status == OrderStatus.PENDING:
            listing.pending_orders += 1
            listing.issues.add(IssueTag.PENDING_ORDERS.value)
        elif order.status == OrderStatus.CANCELLED:
            listing.cancelled_orders += 1
            listing.issues.add(IssueTag.CANCELLED_ORDERS.value)
        if self._print_failed(order):
            listing.failed_prints += 1
            listing.issues.add(IssueTag.FAILED_PRINT.value)
        if order.payment is None:
            listing.issues.add(IssueTag.MISSING_PAYMENT.value)
        if price is None:
            listing.issues.add(IssueTag.MISSING_PRICE.value)
        if order.order_date is None:
            listing.issues.add(IssueTag.MISSING_ORDER_DATE.value)
        listing.last_order_at = _latest(listing.last_order_at, order.order_date)

        compliance, _ = aggregation.compliance.get_or_create(
            key, label=label, channel=channel_key
        )
        compliance.total_orders += 1
        if order.status == OrderStatus.CANCELLED:
            compliance.cancelled_orders += 1
        elif order.status == OrderStatus.DELIVERED:
            compliance.delivered_orders += 1
        if self._print_failed(order):
            compliance.failed_prints += 1
        if order.payment is None:
            compliance.missing_payments += 1
        compliance.last_activity_at = _latest(compliance.last_activity_at, order.order_date)
        if order.payment is not None:
            compliance.last_activity_at = _latest(
                compliance.last_activity_at, order.payment.payment_date
            )
        if order.shipment is not None:
            compliance.last_activity_at = _latest(
                compliance.last_activity_at, order.shipment.shipment_date
            )

    @staticmethod
    def _print_failed(order: OrderEvent) -> bool:
        return order.print_job is not None and order.print_job.status == PrintJobStatus.FAILED

    # =========================================================================
    # Derivation
    # =========================================================================

    def listing_status(self, listing: ListingAccumulator, as_of: datetime) -> ListingStatus:
        return scoring.classify_listing(
            failed_prints=listing.failed_prints,
            cancelled=listing.cancelled_orders,
            total=listing.total_orders,
            pending=listing.pending_orders,
            last_order_at=listing.last_order_at,
            as_of=as_of,
            paused_after_days=self.paused_after_days,
            error_ratio=self.cancellation_error_ratio,
        )

    def listing_rows(self, aggregation: ListingAggregation) -> list[ListingRow]:
        """
        Assortment rows ordered by status urgency, then most recent order.

        Args:
            aggregation: Completed aggregation pass

        Returns:
            List of ListingRow
        """
        rows = []
        for listing in aggregation.listings:
            status = self.listing_status(listing, aggregation.as_of)
            score = scoring.compute_score(
                scoring.LISTING_POLICY,
                {
                    "failed_prints": listing.failed_prints,
                    "cancelled_orders": listing.cancelled_orders,
                    "pending_orders": listing.pending_orders,
                },
                status,
            )
            ledger = listing.prices
            rows.append(
                ListingRow(
                    key=listing.key,
                    label=listing.label,
                    channel=listing.channel,
                    status=status,
                    total_orders=listing.total_orders,
                    pending_orders=listing.pending_orders,
                    cancelled_orders=listing.cancelled_orders,
                    failed_prints=listing.failed_prints,
                    gmv=round_money(listing.gmv),
                    last_order_at=listing.last_order_at,
                    latest_price=ledger.latest,
                    previous_price=ledger.previous,
                    price_floor=ledger.floor,
                    price_ceiling=ledger.ceiling,
                    repricing_active=scoring.repricing_active(ledger),
                    pricing_rule=scoring.pricing_rule(ledger),
                    score=score,
                    flagged=scoring.is_flagged(score),
                    issues=sorted(listing.issues),
                )
            )

        rows.sort(key=lambda row: scoring.listing_sort_key(row.status, row.last_order_at, row.key))
        return rows

    def channel_rows(self, aggregation: ListingAggregation) -> list[ChannelRow]:
        """Channel breakdown, largest GMV first."""
        total_gmv = sum(channel.gmv for channel in aggregation.channels)
        rows = []
        for channel in aggregation.channels:
            status = scoring.classify_listing(
                failed_prints=channel.failed_prints,
                cancelled=channel.status_counts[OrderStatus.CANCELLED.value],
                total=channel.total_orders,
                pending=channel.status_counts[OrderStatus.PENDING.value],
                last_order_at=channel.last_sync_at,
                as_of=aggregation.as_of,
                paused_after_days=self.paused_after_days,
                error_ratio=self.cancellation_error_ratio,
            )
            rows.append(
                ChannelRow(
                    channel=channel.key,
                    status=status,
                    total_orders=channel.total_orders,
                    gmv=round_money(channel.gmv),
                    share_of_gmv=round_ratio(safe_ratio(channel.gmv, total_gmv)),
                    failed_prints=channel.failed_prints,
                    status_counts=dict(channel.status_counts),
                    listings=len(channel.listing_keys),
                    last_sync_at=channel.last_sync_at,
                    issues=sorted(channel.issues),
                )
            )
        rows.sort(key=lambda row: (-row.gmv, row.channel))
        return rows

    def compliance_section(self, aggregation: ListingAggregation) -> ComplianceSection:
        """
        Compliance-view scores, summary and follow-up tasks.

        Tasks are generated for every ``action`` or ``monitor`` listing, one
        per contributing signal, ordered by score ascending then key.
        """
        rows = []
        for entry in aggregation.compliance:
            counts = {
                "failed_prints": entry.failed_prints,
                "cancelled_orders": entry.cancelled_orders,
                "missing_payments": entry.missing_payments,
            }
            status = (
                ListingStatus.ERROR
                if scoring.is_error(
                    entry.failed_prints,
                    entry.cancelled_orders,
                    entry.total_orders,
                    self.cancellation_error_ratio,
                )
                else None
            )
            score = scoring.compute_score(scoring.COMPLIANCE_POLICY, counts, status)
            rows.append(
                ComplianceRow(
                    key=entry.key,
                    label=entry.label,
                    channel=entry.channel,
                    score=score,
                    classification=scoring.classify_compliance(score),
                    total_orders=entry.total_orders,
                    cancelled_orders=entry.cancelled_orders,
                    failed_prints=entry.failed_prints,
                    missing_payments=entry.missing_payments,
                    delivered_orders=entry.delivered_orders,
                    delivery_rate=round_ratio(
                        safe_ratio(entry.delivered_orders, entry.total_orders)
                    ),
                    last_activity_at=entry.last_activity_at,
                )
            )
        rows.sort(key=lambda row: (row.score, row.key))

        tasks = []
        for row in rows:
            if row.classification == ComplianceClass.HEALTHY:
                continue
            priority = (
                TaskPriority.HIGH
                if row.classification == ComplianceClass.ACTION
                else TaskPriority.MEDIUM
            )
            for signal, (tag, template) in COMPLIANCE_SIGNALS.items():
                count = getattr(row, signal)
                if count <= 0:
                    continue
                tasks.append(
                    ComplianceTask(
                        listing_key=row.key,
                        label=row.label,
                        priority=priority,
                        signal=tag.value,
                        message=template.format(count=count, label=row.label),
                    )
                )

        scores = [row.score for row in rows]
        mean_score = average(scores)
        summary = ComplianceSummary(
            listings=len(rows),
            average_score=round(mean_score, 1) if mean_score is not None else None,
            action=sum(1 for row in rows if row.classification == ComplianceClass.ACTION),
            monitor=sum(1 for row in rows if row.classification == ComplianceClass.MONITOR),
            healthy=sum(1 for row in rows if row.classification == ComplianceClass.HEALTHY),
        )
        return ComplianceSection(summary=summary, listings=rows, tasks=tasks)
