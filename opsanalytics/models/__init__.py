"""
Pydantic v2 data models for the operations analytics engine.

Model Organization:
    - enums: Status and classification enumerations
    - records: Normalized input records and the raw record batch
    - accumulators: Mutable running totals used during one aggregation pass
    - report: The structured analytics report handed to the presentation layer
"""

from .enums import (
    ComplianceClass,
    CycleStatus,
    IssueTag,
    ListingStatus,
    OrderStatus,
    PricingRule,
    PrintJobStatus,
    SettlementStatus,
    TaskPriority,
)
from .records import (
    LineItem,
    NormalizedBatch,
    OrderEvent,
    PaymentRecord,
    PaymentRef,
    PrintJobRecord,
    PrintJobRef,
    ProductRecord,
    ReconciliationRecord,
    RecordBatch,
    ShipmentRecord,
    ShipmentRef,
)
from .report import AnalyticsReport

__all__ = [
    # Enumerations
    "ComplianceClass",
    "CycleStatus",
    "IssueTag",
    "ListingStatus",
    "OrderStatus",
    "PricingRule",
    "PrintJobStatus",
    "SettlementStatus",
    "TaskPriority",
    # Records
    "LineItem",
    "NormalizedBatch",
    "OrderEvent",
    "PaymentRecord",
    "PaymentRef",
    "PrintJobRecord",
    "PrintJobRef",
    "ProductRecord",
    "ReconciliationRecord",
    "RecordBatch",
    "ShipmentRecord",
    "ShipmentRef",
    # Report
    "AnalyticsReport",
]
