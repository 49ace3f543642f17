"""
Operations analytics engine components.

- Time bucketing: UTC day keys and ISO-8601 week keys
- Keyed accumulator store: per-pass map of derived key -> running totals
- Listing/channel aggregation: listings, channels and compliance folds
- Classification and scoring: statuses, scores, pricing labels
- Fulfilment and settlement aggregation: SLA weeks, production, payout cycles
- Trend and report assembly

All components are synchronous, perform no I/O and share no state between
invocations.
"""

__version__ = "1.0.0"

__all__ = [
    "KeyedAccumulatorStore",
    "ListingAggregator",
    "FulfillmentAggregator",
    "SettlementAggregator",
    "TrendAssembler",
    "ReportBuilder",
    "build_report",
]

from opsanalytics.engine.accumulator_store import KeyedAccumulatorStore
from opsanalytics.engine.fulfillment import FulfillmentAggregator
from opsanalytics.engine.listing_aggregator import ListingAggregator
from opsanalytics.engine.report_builder import ReportBuilder, build_report
from opsanalytics.engine.settlement import SettlementAggregator
from opsanalytics.engine.trend import TrendAssembler
