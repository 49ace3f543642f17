"""
Unit tests for the aggregation engine modules.

Records are built with the raw factories from conftest and passed through
the RecordNormalizer, so each test sees the same inputs the report builder
would.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from opsanalytics.adapters.record_normalizer import RecordNormalizer
from opsanalytics.engine import scoring
from opsanalytics.engine.accumulator_store import KeyedAccumulatorStore
from opsanalytics.engine.catalog import catalog_stats
from opsanalytics.engine.fulfillment import FulfillmentAggregator, is_on_time, merge_shipments
from opsanalytics.engine.listing_aggregator import ListingAggregator, update_price_ledger
from opsanalytics.engine.numbers import average, period_change, safe_ratio
from opsanalytics.engine.settlement import SettlementAggregator, cycle_status
from opsanalytics.engine.time_buckets import (
    day_key,
    day_range,
    days_between,
    hours_between,
    iso_week_key,
    week_label,
    week_start,
)
from opsanalytics.engine.trend import TrendAssembler
from opsanalytics.models.accumulators import PriceLedger, TrendBucket
from opsanalytics.models.enums import (
    ComplianceClass,
    CycleStatus,
    ListingStatus,
    PricingRule,
    TaskPriority,
)
from tests.conftest import (
    AS_OF,
    at,
    make_item,
    make_order,
    make_payment,
    make_print_job,
    make_product,
    make_reconciliation,
    make_shipment,
)

NORMALIZER = RecordNormalizer()


def normalize_orders(*raw_orders):
    return [NORMALIZER.normalize_order(raw, i) for i, raw in enumerate(raw_orders)]


def aggregate(*raw_orders, as_of=AS_OF, **kwargs):
    aggregator = ListingAggregator(**kwargs)
    return aggregator, aggregator.aggregate(normalize_orders(*raw_orders), as_of)


# ============================================================================
# Time buckets
# ============================================================================


class TestIsoWeekKey:
    """Test ISO-8601 week attribution, including year boundaries."""

    @pytest.mark.parametrize(
        "day,expected",
        [
            (date(2024, 12, 29), "2024-W52"),
            (date(2024, 12, 30), "2025-W01"),
            (date(2024, 12, 31), "2025-W01"),
            (date(2025, 1, 1), "2025-W01"),
            (date(2025, 1, 15), "2025-W03"),
            (date(2020, 12, 31), "2020-W53"),
            (date(2021, 1, 1), "2020-W53"),
            (date(2021, 1, 3), "2020-W53"),
            (date(2021, 1, 4), "2021-W01"),
            (date(2022, 1, 2), "2021-W52"),
            (date(2023, 1, 1), "2022-W52"),
            (date(2026, 1, 1), "2026-W01"),
            (date(2027, 1, 1), "2026-W53"),
            (date(2008, 12, 29), "2009-W01"),
            (date(2010, 1, 3), "2009-W53"),
        ],
    )
    def test_iso_week_key_reference_dates(self, day, expected):
        """Test week keys against a reference calendar."""
        assert iso_week_key(day) == expected

    def test_iso_week_key_uses_utc_day(self):
        """Test that an offset timestamp is bucketed by its UTC date."""
        plus_five = timezone(timedelta(hours=5))
        # 2025-01-01 02:00 +05:00 is 2024-12-31 21:00 UTC, still 2025-W01
        value = datetime(2025, 1, 1, 2, 0, tzinfo=plus_five)
        assert day_key(value) == "2024-12-31"
        assert iso_week_key(value) == "2025-W01"

    def test_iso_week_key_naive_datetime_is_utc(self):
        """Test that naive datetimes are taken as UTC."""
        assert day_key(datetime(2025, 1, 5, 23, 59)) == "2025-01-05"


class TestWeekHelpers:
    """Test week labels, week starts and day ranges."""

    def test_week_label(self):
        assert week_label("2025-W01") == "W01 · 2025"

    def test_week_start_crosses_year(self):
        """Test that 2025-W01 starts on Monday 2024-12-30."""
        assert week_start("2025-W01") == date(2024, 12, 30)

    def test_week_start_invalid_key_raises(self):
        with pytest.raises(ValueError):
            week_start("2025-01")

    def test_day_range_ascending_and_inclusive(self):
        assert day_range(date(2025, 1, 2), 3) == ["2024-12-31", "2025-01-01", "2025-01-02"]

    def test_hours_and_days_between(self):
        start = at("2025-01-06T00:00:00Z")
        end = at("2025-01-08T12:00:00Z")
        assert hours_between(start, end) == 60.0
        assert days_between(start, end) == 2.5

    def test_between_unknown_is_none(self):
        assert hours_between(None, AS_OF) is None
        assert days_between(AS_OF, None) is None


# ============================================================================
# Accumulator store
# ============================================================================


class TestKeyedAccumulatorStore:
    """Test get-or-create and the two iteration orders."""

    def test_get_or_create_reuses_entry(self):
        store = KeyedAccumulatorStore(lambda key: TrendBucket(key=key))
        first, created = store.get_or_create("2025-01-02")
        again, created_again = store.get_or_create("2025-01-02")
        assert created and not created_again
        assert again is first
        assert len(store) == 1

    def test_iteration_orders(self):
        store = KeyedAccumulatorStore(lambda key: TrendBucket(key=key))
        for key in ["2025-01-03", "2025-01-01", "2025-01-02"]:
            store.get_or_create(key)
        assert [bucket.key for bucket in store] == ["2025-01-03", "2025-01-01", "2025-01-02"]
        assert [bucket.key for bucket in store.sorted_values()] == [
            "2025-01-01",
            "2025-01-02",
            "2025-01-03",
        ]
        assert store.get("2025-01-09") is None


# ============================================================================
# Numbers
# ============================================================================


class TestNumbers:
    """Test the zero-safe numeric helpers."""

    def test_average_empty_is_none(self):
        assert average([]) is None

    def test_average(self):
        assert average([1.0, 2.0, 6.0]) == 3.0

    def test_safe_ratio_zero_denominator(self):
        assert safe_ratio(5, 0) is None

    @pytest.mark.parametrize(
        "first,second,expected",
        [(0.0, 0.0, 0.0), (0.0, 10.0, 1.0), (100.0, 150.0, 0.5), (100.0, 50.0, -0.5)],
    )
    def test_period_change(self, first, second, expected):
        assert period_change(first, second) == expected


# ============================================================================
# Scoring
# ============================================================================


class TestScoring:
    """Test listing classification, scores and pricing labels."""

    def test_failed_print_is_error(self):
        status = scoring.classify_listing(1, 0, 3, 2, AS_OF, AS_OF)
        assert status == ListingStatus.ERROR

    def test_cancellation_ratio_at_threshold_is_not_error(self):
        """Test that exactly 25% cancelled does not error (strictly greater)."""
        status = scoring.classify_listing(0, 1, 4, 0, AS_OF, AS_OF)
        assert status == ListingStatus.PUBLISHED

    def test_cancellation_ratio_above_threshold_is_error(self):
        status = scoring.classify_listing(0, 2, 4, 0, AS_OF, AS_OF)
        assert status == ListingStatus.ERROR

    def test_pending_outranks_paused(self):
        old = AS_OF - timedelta(days=90)
        assert scoring.classify_listing(0, 0, 1, 1, old, AS_OF) == ListingStatus.PENDING

    def test_paused_after_45_days(self):
        assert (
            scoring.classify_listing(0, 0, 1, 0, AS_OF - timedelta(days=46), AS_OF)
            == ListingStatus.PAUSED
        )
        assert (
            scoring.classify_listing(0, 0, 1, 0, AS_OF - timedelta(days=45), AS_OF)
            == ListingStatus.PUBLISHED
        )

    def test_no_known_order_date_is_paused(self):
        assert scoring.classify_listing(0, 0, 1, 0, None, AS_OF) == ListingStatus.PAUSED

    def test_listing_score_with_error_penalty(self):
        """Test 100 - 25 (failed print) - 10 (error) = 65."""
        score = scoring.compute_score(
            scoring.LISTING_POLICY, {"failed_prints": 1}, ListingStatus.ERROR
        )
        assert score == 65.0
        assert scoring.is_flagged(score)

    def test_compliance_score_differs_from_listing_score(self):
        """Test the compliance weights for the same failed print."""
        score = scoring.compute_score(
            scoring.COMPLIANCE_POLICY, {"failed_prints": 1}, ListingStatus.ERROR
        )
        assert score == 68.0

    def test_score_clamped_to_floor(self):
        score = scoring.compute_score(
            scoring.LISTING_POLICY, {"failed_prints": 5}, ListingStatus.ERROR
        )
        assert score == 0.0

    @pytest.mark.parametrize(
        "score,expected",
        [
            (74.9, ComplianceClass.ACTION),
            (75.0, ComplianceClass.MONITOR),
            (89.99, ComplianceClass.MONITOR),
            (90.0, ComplianceClass.HEALTHY),
        ],
    )
    def test_classify_compliance_thresholds(self, score, expected):
        assert scoring.classify_compliance(score) == expected

    def test_flag_threshold(self):
        assert scoring.is_flagged(84.9)
        assert not scoring.is_flagged(85.0)

    @pytest.mark.parametrize(
        "floor,ceiling,latest,expected",
        [
            (10.0, 13.0, 13.0, PricingRule.REPRICING),
            (10.0, 20.0, 20.0, PricingRule.AGGRESSIVE),
            (100.0, 103.0, 100.0, PricingRule.STATIC),
            (None, None, None, PricingRule.STATIC),
        ],
    )
    def test_pricing_rule(self, floor, ceiling, latest, expected):
        ledger = PriceLedger(latest=latest, floor=floor, ceiling=ceiling)
        assert scoring.pricing_rule(ledger) == expected


# ============================================================================
# Price ledger
# ============================================================================


class TestPriceLedger:
    """Test the price ledger update rule."""

    def _fold(self, observations):
        ledger = PriceLedger()
        last_seen = None
        for price, event_at in observations:
            update_price_ledger(ledger, price, event_at, last_seen)
            if event_at is not None and (last_seen is None or event_at > last_seen):
                last_seen = event_at
        return ledger

    def test_chronological_prices(self):
        """Test prices 10, 10, 15 in time order."""
        ledger = self._fold(
            [
                (10.0, AS_OF - timedelta(days=3)),
                (10.0, AS_OF - timedelta(days=2)),
                (15.0, AS_OF - timedelta(days=1)),
            ]
        )
        assert (ledger.latest, ledger.previous, ledger.floor, ledger.ceiling) == (
            15.0,
            10.0,
            10.0,
            15.0,
        )

    def test_older_event_does_not_replace_latest(self):
        ledger = self._fold([(12.0, AS_OF), (10.0, AS_OF - timedelta(days=1))])
        assert ledger.latest == 12.0
        assert ledger.previous == 10.0
        assert ledger.floor == 10.0
        assert ledger.ceiling == 12.0

    def test_previous_set_once(self):
        ledger = self._fold(
            [
                (10.0, AS_OF - timedelta(days=3)),
                (12.0, AS_OF - timedelta(days=2)),
                (15.0, AS_OF - timedelta(days=1)),
            ]
        )
        assert ledger.latest == 15.0
        assert ledger.previous == 10.0

    def test_unknown_price_leaves_ledger_untouched(self):
        ledger = self._fold([(None, AS_OF)])
        assert ledger.latest is None
        assert ledger.floor is None


# ============================================================================
# Listing aggregation
# ============================================================================


class TestListingAggregator:
    """Test listing, channel and compliance folding."""

    def test_multi_item_order_splits_gmv(self):
        """Test that each item gets an even share and the channel the whole total."""
        aggregator, aggregation = aggregate(
            make_order(total=30.0, items=[make_item("sku-1"), make_item("sku-2", "Tee")])
        )
        rows = {row.key: row for row in aggregator.listing_rows(aggregation)}
        assert set(rows) == {"creditCard:sku-1", "creditCard:sku-2"}
        assert rows["creditCard:sku-1"].gmv == 15.0
        channels = aggregator.channel_rows(aggregation)
        assert channels[0].gmv == 30.0
        assert channels[0].listings == 2

    def test_order_without_items_uses_synthetic_key(self):
        aggregator, aggregation = aggregate(make_order("ORD-9", payment_method="paypal"))
        rows = aggregator.listing_rows(aggregation)
        assert rows[0].key == "order:ORD-9:paypal"
        assert rows[0].latest_price == 100.0

    def test_missing_payment_is_unassigned_channel(self):
        aggregator, aggregation = aggregate(make_order("ORD-1", payment_method=None))
        row = aggregator.listing_rows(aggregation)[0]
        assert row.channel == "unassigned"
        assert "missing_payment" in row.issues

    def test_listing_ordering(self):
        """Test ordering: error, pending (recent first), paused, published."""
        orders = [
            make_order("O-A", AS_OF - timedelta(days=5), items=[make_item("a")], print_status="failed"),
            make_order("O-B", AS_OF - timedelta(days=1), "pending", items=[make_item("b")]),
            make_order("O-C", AS_OF - timedelta(days=2), "pending", items=[make_item("c")]),
            make_order("O-D", AS_OF - timedelta(days=1), items=[make_item("d")]),
            make_order("O-E", AS_OF - timedelta(days=60), items=[make_item("e")]),
        ]
        aggregator, aggregation = aggregate(*orders)
        keys = [row.key for row in aggregator.listing_rows(aggregation)]
        assert keys == [
            "creditCard:a",
            "creditCard:b",
            "creditCard:c",
            "creditCard:e",
            "creditCard:d",
        ]

    def test_listing_scores_and_flags(self):
        orders = [
            make_order("O-1", items=[make_item("a")], print_status="failed"),
            make_order("O-2", status="pending", items=[make_item("b")]),
        ]
        aggregator, aggregation = aggregate(*orders)
        rows = {row.key: row for row in aggregator.listing_rows(aggregation)}
        assert rows["creditCard:a"].score == 65.0
        assert rows["creditCard:a"].flagged
        assert rows["creditCard:b"].score == 90.0
        assert not rows["creditCard:b"].flagged

    def test_channel_issues_union_member_listings(self):
        orders = [
            make_order("O-1", items=[make_item("a")], print_status="failed"),
            make_order("O-2", status="pending", items=[make_item("b")]),
        ]
        aggregator, aggregation = aggregate(*orders)
        channel = aggregator.channel_rows(aggregation)[0]
        assert channel.issues == ["failed_print", "pending_orders"]
        assert channel.status == ListingStatus.ERROR

    def test_compliance_tasks(self):
        orders = [
            make_order("O-1", items=[make_item("a")], print_status="failed"),
            make_order("O-2", items=[make_item("b")], payment_method=None),
            make_order("O-3", items=[make_item("c")]),
        ]
        aggregator, aggregation = aggregate(*orders)
        section = aggregator.compliance_section(aggregation)

        scores = {row.key: (row.score, row.classification) for row in section.listings}
        assert scores["creditCard:a"] == (68.0, ComplianceClass.ACTION)
        assert scores["unassigned:b"] == (88.0, ComplianceClass.MONITOR)
        assert scores["creditCard:c"] == (100.0, ComplianceClass.HEALTHY)

        assert [(task.listing_key, task.priority, task.signal) for task in section.tasks] == [
            ("creditCard:a", TaskPriority.HIGH, "failed_print"),
            ("unassigned:b", TaskPriority.MEDIUM, "missing_payment"),
        ]
        assert section.summary.action == 1
        assert section.summary.monitor == 1
        assert section.summary.healthy == 1


# ============================================================================
# Fulfilment
# ============================================================================


class TestFulfillment:
    """Test SLA attainment and print production."""

    def _shipments(self, *raw):
        return [NORMALIZER.normalize_shipment(record, i) for i, record in enumerate(raw)]

    def test_is_on_time_boundary(self):
        assert is_on_time(72.0, 72.0) is True
        assert is_on_time(72.01, 72.0) is False
        assert is_on_time(None, 72.0) is None

    def test_late_shipment_listed_as_breach(self):
        """Test that a shipment 80h after its order breaches the 72h target."""
        ordered = at("2025-01-06T00:00:00Z")
        shipments = self._shipments(
            make_shipment("S-1", ordered, ordered + timedelta(hours=80), "TRK-LATE")
        )
        section = FulfillmentAggregator().sla_section(shipments)

        week = section.weekly[0]
        assert week.week == "2025-W02"
        assert week.breaches == ["TRK-LATE"]
        assert week.on_time_rate == 0.0
        assert section.top_breaches[0].fulfillment_hours == 80.0

    def test_unknown_lead_time_excluded_from_rate(self):
        ordered = at("2025-01-06T00:00:00Z")
        shipments = self._shipments(
            make_shipment("S-1", ordered, ordered + timedelta(hours=10), "T1"),
            make_shipment("S-2", ordered, ordered + timedelta(hours=100), "T2"),
            make_shipment("S-3", None, ordered + timedelta(hours=20), "T3"),
        )
        section = FulfillmentAggregator().sla_section(shipments)
        week = section.weekly[0]
        assert week.total_shipments == 3
        assert week.shipments_with_lead_time == 2
        assert week.on_time_rate == 0.5
        assert section.on_time_rate == 0.5

    def test_no_lead_times_rate_is_none(self):
        shipments = self._shipments(make_shipment("S-1", None, AS_OF, "T1"))
        section = FulfillmentAggregator().sla_section(shipments)
        assert section.on_time_rate is None
        assert section.average_fulfillment_hours is None

    def test_top_breaches_sorted_and_limited(self):
        ordered = at("2025-01-06T00:00:00Z")
        shipments = self._shipments(
            *[
                make_shipment(f"S-{h}", ordered, ordered + timedelta(hours=h), f"T-{h}")
                for h in (80, 120, 96, 200)
            ]
        )
        section = FulfillmentAggregator(breach_limit=2).sla_section(shipments)
        assert [b.tracking_number for b in section.top_breaches] == ["T-200", "T-120"]

    def test_merge_dedupes_embedded_shipments(self):
        shipments = self._shipments(make_shipment("S-1", tracking_number="TRK-1"))
        orders = normalize_orders(
            make_order("ORD-1", shipment_date=AS_OF, tracking_number="TRK-1"),
            make_order("ORD-2", shipment_date=AS_OF, tracking_number=None),
        )
        merged = merge_shipments(shipments, orders)
        assert [s.dedupe_key for s in merged] == ["tracking:TRK-1", "order:ORD-2"]

    def test_production_section(self):
        jobs = [
            NORMALIZER.normalize_print_job(raw, i)
            for i, raw in enumerate(
                [
                    make_print_job("PJ-1", "complete", at("2025-01-14T12:00:00Z"), at("2025-01-14T10:00:00Z")),
                    make_print_job("PJ-2", "failed", at("2025-01-13T09:00:00Z"), at("2025-01-12T15:00:00Z")),
                ]
            )
        ]
        section = FulfillmentAggregator().production_section(jobs)
        assert section.status_counts["complete"] == 1
        assert section.status_counts["failed"] == 1
        assert section.completion_rate == 0.5
        assert section.average_lead_time_hours == 10.0
        assert [day.date for day in section.trend] == ["2025-01-13", "2025-01-14"]

    def test_production_empty(self):
        section = FulfillmentAggregator().production_section([])
        assert section.completion_rate is None
        assert section.average_lead_time_hours is None


# ============================================================================
# Settlements
# ============================================================================


class TestSettlement:
    """Test settlement cycles, next payout and payments."""

    def _reconciliations(self, *raw):
        return [NORMALIZER.normalize_reconciliation(record, i) for i, record in enumerate(raw)]

    @pytest.mark.parametrize(
        "counts,expected",
        [
            ({"complete": 3, "pending": 1, "failed": 1}, CycleStatus.ATTENTION_NEEDED),
            ({"complete": 3, "pending": 1, "failed": 0}, CycleStatus.IN_PROGRESS),
            ({"complete": 3, "pending": 0, "failed": 0}, CycleStatus.COMPLETE),
        ],
    )
    def test_cycle_status_priority(self, counts, expected):
        assert cycle_status(counts) == expected

    def test_days_to_reconcile(self):
        records = self._reconciliations(
            make_reconciliation(
                "R-1", "complete", at("2025-01-08T12:00:00Z"), at("2025-01-06T00:00:00Z")
            )
        )
        section = SettlementAggregator().settlement_section(records)
        assert section.cycles[0].average_days_to_reconcile == 2.5

    def test_days_to_reconcile_none_without_order_date(self):
        records = self._reconciliations(make_reconciliation("R-1", order_date=None))
        section = SettlementAggregator().settlement_section(records)
        assert section.cycles[0].average_days_to_reconcile is None
        assert section.summary.average_days_to_reconcile is None

    def test_next_payout_is_first_open_cycle(self):
        records = self._reconciliations(
            make_reconciliation("R-1", "complete", at("2025-01-02T10:00:00Z"), amount=20.0),
            make_reconciliation("R-2", "pending", at("2025-01-07T10:00:00Z"), amount=35.0),
        )
        section = SettlementAggregator().settlement_section(records)
        assert [cycle.cycle for cycle in section.cycles] == ["2025-W01", "2025-W02"]
        assert section.next_payout.cycle == "2025-W02"
        assert section.next_payout.amount == 35.0
        assert section.next_payout.expected_date == date(2025, 1, 13)

    def test_all_complete_has_no_next_payout(self):
        records = self._reconciliations(make_reconciliation("R-1", "complete"))
        assert SettlementAggregator().settlement_section(records).next_payout is None

    def test_undated_reconciliation_counted_in_summary_only(self):
        records = self._reconciliations(
            make_reconciliation("R-1", "pending", reconciliation_date=None, amount=12.0)
        )
        section = SettlementAggregator().settlement_section(records)
        assert section.cycles == []
        assert section.summary.status_counts["pending"] == 1
        assert section.summary.pending_amount == 12.0

    def test_payments_section(self):
        payments = [
            NORMALIZER.normalize_payment(raw, i)
            for i, raw in enumerate(
                [
                    make_payment("P-1", 40.0, "creditCard"),
                    make_payment("P-2", "25.5", "PayPal"),
                    make_payment("P-3", 5.0, None),
                ]
            )
        ]
        section = SettlementAggregator().payments_section(payments)
        assert section.total_collected == 70.5
        assert section.method_totals == {"creditCard": 40.0, "paypal": 25.5, "unknown": 5.0}


# ============================================================================
# Trend and catalog
# ============================================================================


class TestTrend:
    """Test the gap-filled GMV trend."""

    def test_window_is_gap_filled(self):
        orders = normalize_orders(make_order("O-1", AS_OF - timedelta(days=1), total=40.0))
        points, _ = TrendAssembler(days=14).build(orders, AS_OF)
        assert len(points) == 14
        assert points[0].date == "2025-01-02"
        assert points[-1].date == "2025-01-15"
        assert points[-2].gmv == 40.0
        assert sum(point.orders for point in points) == 1

    def test_orders_outside_window_ignored(self):
        orders = normalize_orders(make_order("O-1", AS_OF - timedelta(days=30)))
        points, change = TrendAssembler(days=14).build(orders, AS_OF)
        assert all(point.orders == 0 for point in points)
        assert change == 0.0

    def test_change_second_half_growth(self):
        orders = normalize_orders(
            make_order("O-1", AS_OF - timedelta(days=10), total=100.0),
            make_order("O-2", AS_OF - timedelta(days=2), total=150.0),
        )
        _, change = TrendAssembler(days=14).build(orders, AS_OF)
        assert change == 0.5

    def test_change_from_zero(self):
        orders = normalize_orders(make_order("O-1", AS_OF, total=10.0))
        _, change = TrendAssembler(days=14).build(orders, AS_OF)
        assert change == 1.0

    def test_window_too_short_raises(self):
        with pytest.raises(ValueError):
            TrendAssembler(days=1)


class TestCatalog:
    """Test catalog KPIs."""

    def test_catalog_stats(self):
        products = [
            NORMALIZER.normalize_product(raw, i)
            for i, raw in enumerate(
                [make_product("p1", 10, "o1"), make_product("p2", 20), make_product("p3", 30, "o2")]
            )
        ]
        stats = catalog_stats(products)
        assert (stats.total, stats.attached, stats.unattached, stats.average_price) == (
            3,
            2,
            1,
            20.0,
        )

    def test_empty_catalog(self):
        stats = catalog_stats([])
        assert stats.total == 0
        assert stats.average_price is None
