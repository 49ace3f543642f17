"""
Operations analytics engine for a multi-tenant order-management dashboard.

Turns a batch of orders, shipments, payments, print jobs, reconciliations and
catalog products into one structured analytics report.
"""

from opsanalytics.engine.report_builder import ReportBuilder, build_report
from opsanalytics.models.records import RecordBatch
from opsanalytics.models.report import AnalyticsReport
from opsanalytics.utils.logging import configure_logging

__version__ = "1.0.0"

__all__ = [
    "AnalyticsReport",
    "RecordBatch",
    "ReportBuilder",
    "build_report",
    "configure_logging",
]
