"""
Fulfilment aggregator — shipment SLA attainment and print production.

SLA: a shipment is on time when (shipment date - order date) <= target
hours (72 by default). Shipments missing either date still count towards a
week's total shipments but are excluded from the on-time ratio's
denominator. Weeks are ISO-8601 weeks of the shipment date.

Production: print jobs are counted per status and per print day, with the
average order-to-print lead time.
"""

from typing import Optional

import structlog

from opsanalytics.models.accumulators import ProductionDayAccumulator, ShipmentWeekAccumulator
from opsanalytics.models.enums import PrintJobStatus
from opsanalytics.models.records import OrderEvent, PrintJobRecord, ShipmentRecord
from opsanalytics.models.report import (
    ProductionDay,
    ProductionSection,
    SlaBreach,
    SlaSection,
    SlaWeek,
)

from .accumulator_store import KeyedAccumulatorStore
from .numbers import average, round_duration, round_ratio, safe_ratio
from .time_buckets import day_key, hours_between, iso_week_key, week_label


DEFAULT_SLA_TARGET_HOURS = 72.0
DEFAULT_BREACH_LIMIT = 5


def merge_shipments(
    shipments: list[ShipmentRecord], orders: list[OrderEvent]
) -> list[ShipmentRecord]:
    """
    Combine standalone shipment records with shipments embedded in orders.

    Standalone records win; an embedded shipment is added only when no
    record with the same tracking number (or order id) exists.

    Args:
        shipments: Normalized standalone shipments
        orders: Normalized orders, possibly carrying a shipment reference

    Returns:
        Deduplicated shipment list, standalone records first
    """
    merged = list(shipments)
    seen = {shipment.dedupe_key for shipment in shipments}
    for order in orders:
        if order.shipment is None:
            continue
        embedded = ShipmentRecord(
            shipment_id=f"order-shipment:{order.order_id}",
            order_id=order.order_id,
            order_date=order.order_date,
            shipment_date=order.shipment.shipment_date,
            method=order.shipment.method,
            tracking_number=order.shipment.tracking_number,
        )
        if embedded.dedupe_key in seen:
            continue
        seen.add(embedded.dedupe_key)
        merged.append(embedded)
    return merged


def is_on_time(lead_hours: Optional[float], target_hours: float) -> Optional[bool]:
    """On-time verdict, None when the lead time is unknown."""
    if lead_hours is None:
        return None
    return lead_hours <= target_hours


class FulfillmentAggregator:
    """
    Builds the SLA and production sections of the report.

    Attributes:
        target_hours: Order-to-shipment SLA target
        breach_limit: Number of worst breaches reported overall

    Example:
        >>> aggregator = FulfillmentAggregator(target_hours=72)
        >>> sla = aggregator.sla_section(shipments)
        >>> print(sla.on_time_rate)
    """

    def __init__(
        self,
        target_hours: float = DEFAULT_SLA_TARGET_HOURS,
        breach_limit: int = DEFAULT_BREACH_LIMIT,
    ):
        self.target_hours = target_hours
        self.breach_limit = breach_limit
        self.logger = structlog.get_logger()

    def sla_section(self, shipments: list[ShipmentRecord]) -> SlaSection:
        """
        Fold shipments into ISO-week buckets and derive SLA attainment.

        Args:
            shipments: Normalized shipments (see merge_shipments)

        Returns:
            SlaSection with overall and weekly on-time rates and top breaches
        """
        weeks: KeyedAccumulatorStore[ShipmentWeekAccumulator] = KeyedAccumulatorStore(
            lambda key: ShipmentWeekAccumulator(key=key)
        )
        lead_times: list[float] = []
        on_time_count = 0
        breaches: list[tuple[float, str, ShipmentRecord]] = []

        for shipment in shipments:
            lead_hours = hours_between(shipment.order_date, shipment.shipment_date)
            on_time = is_on_time(lead_hours, self.target_hours)
            reference = shipment.tracking_number or shipment.order_id or shipment.shipment_id

            if on_time is not None:
                lead_times.append(lead_hours)
                if on_time:
                    on_time_count += 1
                else:
                    breaches.append((lead_hours, shipment.dedupe_key, shipment))

            if shipment.shipment_date is None:
                continue
            week, _ = weeks.get_or_create(iso_week_key(shipment.shipment_date))
            week.total_shipments += 1
            if on_time is not None:
                week.with_lead_time += 1
                week.lead_hours += lead_hours
                if on_time:
                    week.on_time += 1
                else:
                    week.breaches.append(reference)

        weekly = [
            SlaWeek(
                week=week.key,
                label=week_label(week.key),
                total_shipments=week.total_shipments,
                shipments_with_lead_time=week.with_lead_time,
                on_time_rate=round_ratio(safe_ratio(week.on_time, week.with_lead_time)),
                average_fulfillment_hours=round_duration(
                    safe_ratio(week.lead_hours, week.with_lead_time)
                ),
                breaches=sorted(week.breaches),
            )
            for week in weeks.sorted_values()
        ]

        breaches.sort(key=lambda entry: (-entry[0], entry[1]))
        top_breaches = [
            SlaBreach(
                tracking_number=shipment.tracking_number or "",
                order_id=shipment.order_id or "",
                shipment_date=shipment.shipment_date,
                fulfillment_hours=round(hours, 2),
                method=shipment.method or "",
            )
            for hours, _, shipment in breaches[: self.breach_limit]
        ]

        section = SlaSection(
            target_hours=self.target_hours,
            total_shipments=len(shipments),
            on_time_rate=round_ratio(safe_ratio(on_time_count, len(lead_times))),
            average_fulfillment_hours=round_duration(average(lead_times)),
            weekly=weekly,
            top_breaches=top_breaches,
        )

        self.logger.info(
            "sla_aggregation_completed",
            shipments=len(shipments),
            weeks=len(weekly),
            breaches=len(breaches),
            on_time_rate=section.on_time_rate,
        )
        return section

    def production_section(self, print_jobs: list[PrintJobRecord]) -> ProductionSection:
        """
        Print-job throughput: status counts, lead time and a per-day trend.

        Args:
            print_jobs: Normalized print jobs

        Returns:
            ProductionSection
        """
        status_counts = {status.value: 0 for status in PrintJobStatus}
        days: KeyedAccumulatorStore[ProductionDayAccumulator] = KeyedAccumulatorStore(
            lambda key: ProductionDayAccumulator(key=key)
        )
        lead_times: list[float] = []

        for job in print_jobs:
            status_counts[job.status.value] += 1
            lead_hours = hours_between(job.order_date, job.print_date)
            if lead_hours is not None:
                lead_times.append(lead_hours)
            if job.print_date is None:
                continue
            day, _ = days.get_or_create(day_key(job.print_date))
            day.total += 1
            if job.status == PrintJobStatus.COMPLETE:
                day.completed += 1
            elif job.status == PrintJobStatus.FAILED:
                day.failed += 1

        section = ProductionSection(
            total_jobs=len(print_jobs),
            status_counts=status_counts,
            average_lead_time_hours=round_duration(average(lead_times)),
            completion_rate=round_ratio(
                safe_ratio(status_counts[PrintJobStatus.COMPLETE.value], len(print_jobs))
            ),
            trend=[
                ProductionDay(
                    date=day.key, total=day.total, completed=day.completed, failed=day.failed
                )
                for day in days.sorted_values()
            ],
        )

        self.logger.info(
            "production_aggregation_completed",
            jobs=section.total_jobs,
            days=len(section.trend),
            completion_rate=section.completion_rate,
        )
        return section
