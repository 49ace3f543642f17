"""
Settlement aggregator — payout cycles and collected payments.

Reconciliations are grouped into settlement cycles by the ISO week of their
reconciliation date. A cycle's status follows a fixed priority regardless of
fold order:

    any failed reconciliation   -> "Attention needed"
    else any pending            -> "In progress"
    else                        -> "Complete"

Average days-to-reconcile is the mean of (reconciliation date - order date)
in days, and stays None when no reconciliation has both dates.
"""

from datetime import timedelta

import structlog

from opsanalytics.models.accumulators import SettlementCycleAccumulator
from opsanalytics.models.enums import CycleStatus, SettlementStatus
from opsanalytics.models.records import PaymentRecord, ReconciliationRecord
from opsanalytics.models.report import (
    NextPayout,
    PaymentsSection,
    SettlementCycle,
    SettlementSection,
    SettlementSummary,
)

from .accumulator_store import KeyedAccumulatorStore
from .numbers import average, round_duration, round_money
from .time_buckets import days_between, iso_week_key, to_utc, week_label, week_start


def cycle_status(status_counts: dict[str, int]) -> CycleStatus:
    """Roll per-status reconciliation counts up into one cycle status."""
    if status_counts.get(SettlementStatus.FAILED.value, 0) > 0:
        return CycleStatus.ATTENTION_NEEDED
    if status_counts.get(SettlementStatus.PENDING.value, 0) > 0:
        return CycleStatus.IN_PROGRESS
    return CycleStatus.COMPLETE

def fold_reconciliation(
    cycle: SettlementCycleAccumulator, record: ReconciliationRecord
) -> None:
    """Fold one dated reconciliation into its cycle accumulator."""
    reconciled_at = record.reconciliation_date
    if cycle.first_date is None or to_utc(reconciled_at) < to_utc(cycle.first_date):
        cycle.first_date = reconciled_at
    if cycle.last_date is None or to_utc(reconciled_at) > to_utc(cycle.last_date):
        cycle.last_date = reconciled_at
    cycle.total_amount += record.amount
    cycle.status_counts[record.status.value] += 1
    if record.order_id:
        cycle.order_ids.add(record.order_id)
    delta = days_between(record.order_date, reconciled_at)
    if delta is not None:
        cycle.days_to_reconcile.append(delta)

class SettlementAggregator:
    """
    Builds the settlements and payments sections of the report.

    Example:
        >>> aggregator = SettlementAggregator()
        >>> section = aggregator.settlement_section(reconciliations)
        >>> section.next_payout
    """

    def __init__(self):
        self.logger = structlog.get_logger()

    def settlement_section(
        self, reconciliations: list[ReconciliationRecord]
    ) -> SettlementSection:
        """
        Group reconciliations into weekly settlement cycles.

        Reconciliations without a date count in the summary but belong to
        no cycle.

        Args:
            reconciliations: Normalized reconciliation records

        Returns:
            SettlementSection with summary, cycles (oldest first) and the
            next pending payout
        """
        cycles: KeyedAccumulatorStore[SettlementCycleAccumulator] = KeyedAccumulatorStore(
            lambda key: SettlementCycleAccumulator(key=key)
        )
        status_counts = {status.value: 0 for status in SettlementStatus}
        total_amount = 0.0
        pending_amount = 0.0
        all_deltas: list[float] = []

        for record in reconciliations:
            status_counts[record.status.value] += 1
            total_amount += record.amount
            if record.status == SettlementStatus.PENDING:
                pending_amount += record.amount
            delta = days_between(record.order_date, record.reconciliation_date)
            if delta is not None:
                all_deltas.append(delta)
            if record.reconciliation_date is None:
                continue
            cycle, _ = cycles.get_or_create(iso_week_key(record.reconciliation_date))
            fold_reconciliation(cycle, record)

        cycle_rows = [
            SettlementCycle(
                cycle=cycle.key,
                label=week_label(cycle.key),
                status=cycle_status(cycle.status_counts),
                first_date=cycle.first_date,
                last_date=cycle.last_date,
                total_amount=round_money(cycle.total_amount),
                completed=cycle.status_counts[SettlementStatus.COMPLETE.value],
                pending=cycle.status_counts[SettlementStatus.PENDING.value],
                failed=cycle.status_counts[SettlementStatus.FAILED.value],
                orders=len(cycle.order_ids),
                average_days_to_reconcile=round_duration(average(cycle.days_to_reconcile)),
            )
            for cycle in cycles.sorted_values()
        ]

        next_payout = None
        for row in cycle_rows:
            if row.status != CycleStatus.COMPLETE:
                next_payout = NextPayout(
                    cycle=row.cycle,
                    status=row.status,
                    amount=row.total_amount,
                    expected_date=week_start(row.cycle) + timedelta(days=7),
                )
                break

        summary = SettlementSummary(
            total_amount=round_money(total_amount),
            pending_amount=round_money(pending_amount),
            status_counts=status_counts,
            cycles=len(cycle_rows),
            average_days_to_reconcile=round_duration(average(all_deltas)),
        )

        self.logger.info(
            "settlement_aggregation_completed",
            reconciliations=len(reconciliations),
            cycles=len(cycle_rows),
            next_payout=next_payout.cycle if next_payout else None,
        )
        return SettlementSection(summary=summary, cycles=cycle_rows, next_payout=next_payout)

    def payments_section(self, payments: list[PaymentRecord]) -> PaymentsSection:
        """Total collected and per-method totals (unknown method -> "unknown")."""
        method_totals: dict[str, float] = {}
        for payment in payments:
            method = payment.method or "unknown"
            method_totals[method] = method_totals.get(method, 0.0) + payment.amount
        return PaymentsSection(
            total_collected=round_money(sum(payment.amount for payment in payments)),
            method_totals={
                method: round_money(amount) for method, amount in sorted(method_totals.items())
            },
        )
