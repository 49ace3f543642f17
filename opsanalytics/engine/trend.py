"""
Trend Assembler — gap-filled daily GMV series and period-over-period change.

The series always has exactly ``days`` points ending on the report's
reference day; days without orders appear with zero GMV and zero orders.
The change compares the second half of the window with the first half
(the first half is the first days // 2 days).
"""

from datetime import datetime

import structlog

from opsanalytics.models.accumulators import TrendBucket
from opsanalytics.models.records import OrderEvent
from opsanalytics.models.report import TrendPoint

from .accumulator_store import KeyedAccumulatorStore
from .numbers import period_change, round_money, round_ratio
from .time_buckets import day_key, day_range


DEFAULT_TREND_DAYS = 14


class TrendAssembler:
    """
    Builds the fixed-length GMV trend.

    Attributes:
        days: Window length, at least 2

    Raises:
        ValueError: If ``days`` is smaller than 2
    """

    def __init__(self, days: int = DEFAULT_TREND_DAYS):
        if days < 2:
            raise ValueError(f"Trend window must span at least 2 days, got {days}")
        self.days = days
        self.logger = structlog.get_logger()

    def build(self, orders: list[OrderEvent], as_of: datetime) -> tuple[list[TrendPoint], float]:
        """
        Bucket orders by UTC day and fill the window.

        Orders without a date or outside the window are ignored.

        Args:
            orders: Normalized orders
            as_of: Reference time; its UTC day is the last point

        Returns:
            (trend points oldest first, GMV change ratio)
        """
        window = day_range(as_of, self.days)
        buckets: KeyedAccumulatorStore[TrendBucket] = KeyedAccumulatorStore(
            lambda key: TrendBucket(key=key)
        )
        for key in window:
            buckets.get_or_create(key)

        for order in orders:
            if order.order_date is None:
                continue
            bucket = buckets.get(day_key(order.order_date))
            if bucket is None:
                continue
            bucket.gmv += order.total
            bucket.orders += 1

        points = [
            TrendPoint(date=bucket.key, gmv=round_money(bucket.gmv), orders=bucket.orders)
            for bucket in buckets
        ]
        gmv_change = self.change(buckets.values())

        self.logger.info(
            "trend_built",
            days=self.days,
            orders=sum(point.orders for point in points),
            gmv_change=gmv_change,
        )
        return points, gmv_change

    def change(self, buckets: list[TrendBucket]) -> float:
        """Period-over-period GMV change of a filled window."""
        half = len(buckets) // 2
        first = sum(bucket.gmv for bucket in buckets[:half])
        second = sum(bucket.gmv for bucket in buckets[half:])
        return round_ratio(period_change(first, second))
