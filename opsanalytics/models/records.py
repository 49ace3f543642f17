"""
Normalized record models for the operations analytics engine.

Upstream records arrive as loosely typed mappings where any field may be
missing or malformed. The record normalizer converts them into these
validated value objects. Every model carries ``data_quality_flags`` naming
the fields that were substituted with a documented default, so downstream
code can tell a known value from a defaulted one.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .enums import ListingStatus, OrderStatus, PrintJobStatus, SettlementStatus


class LineItem(BaseModel):
    """
    Single line item of an order.

    Attributes:
        item_id: Listing identity of the item (upstream id, slugged name or
            positional fallback)
        name: Display name, if known
        price: Unit price, None when the upstream price was unusable
    """

    item_id: str = Field(description="Listing identity of the item")
    name: Optional[str] = Field(default=None, description="Display name")
    price: Optional[float] = Field(default=None, description="Unit price")


class PaymentRef(BaseModel):
    """Payment attached to an order."""

    method: Optional[str] = Field(default=None, description="Payment method / channel")
    amount: Optional[float] = Field(default=None, description="Amount paid")
    payment_date: Optional[datetime] = Field(default=None, description="When payment was taken")


class PrintJobRef(BaseModel):
    """Print job attached to an order."""

    status: PrintJobStatus = Field(default=PrintJobStatus.PENDING)


class ShipmentRef(BaseModel):
    """Shipment attached to an order."""

    shipment_date: Optional[datetime] = Field(default=None)
    method: Optional[str] = Field(default=None)
    tracking_number: Optional[str] = Field(default=None)


class OrderEvent(BaseModel):
    """
    Normalized order, the main input of the listing and channel aggregators.

    Attributes:
        order_id: Deterministic order identity
        order_date: UTC timestamp of the order, None when unknown
        status: Order status (unknown upstream values become PENDING)
        total: Order total, 0.0 when unknown
        line_items: Zero or more line items
        payment: Payment reference, if any
        print_job: Print job reference, if any
        shipment: Shipment reference, if any
        data_quality_flags: Fields that were defaulted during normalization
    """

    order_id: str
    order_date: Optional[datetime] = None
    status: OrderStatus = OrderStatus.PENDING
    total: float = 0.0
    line_items: list[LineItem] = Field(default_factory=list)
    payment: Optional[PaymentRef] = None
    print_job: Optional[PrintJobRef] = None
    shipment: Optional[ShipmentRef] = None
    data_quality_flags: list[str] = Field(default_factory=list)

    @property
    def channel_key(self) -> str:
        """Channel identity derived from the payment method."""
        if self.payment is not None and self.payment.method:
            return self.payment.method
        return "unassigned"


class ShipmentRecord(BaseModel):
    """Shipment with the order date needed to compute fulfilment lead time."""

    shipment_id: str
    order_id: Optional[str] = None
    order_date: Optional[datetime] = None
    shipment_date: Optional[datetime] = None
    method: Optional[str] = None
    tracking_number: Optional[str] = None
    data_quality_flags: list[str] = Field(default_factory=list)

    @property
    def dedupe_key(self) -> str:
        """Identity used to merge standalone and order-embedded shipments."""
        if self.tracking_number:
            return f"tracking:{self.tracking_number}"
        if self.order_id:
            return f"order:{self.order_id}"
        return f"shipment:{self.shipment_id}"


class PaymentRecord(BaseModel):
    """Standalone payment record."""

    payment_id: str
    order_id: Optional[str] = None
    amount: float = 0.0
    method: Optional[str] = None
    payment_date: Optional[datetime] = None
    data_quality_flags: list[str] = Field(default_factory=list)


class PrintJobRecord(BaseModel):
    """Print job with the order date needed for production lead time."""

    print_job_id: str
    order_id: Optional[str] = None
    order_date: Optional[datetime] = None
    status: PrintJobStatus = PrintJobStatus.PENDING
    print_date: Optional[datetime] = None
    data_quality_flags: list[str] = Field(default_factory=list)


class ReconciliationRecord(BaseModel):
    """Finance reconciliation of an order's payment."""

    reconciliation_id: str
    order_id: Optional[str] = None
    order_date: Optional[datetime] = None
    reconciliation_date: Optional[datetime] = None
    status: SettlementStatus = SettlementStatus.PENDING
    amount: float = 0.0
    data_quality_flags: list[str] = Field(default_factory=list)


class ProductRecord(BaseModel):
    """Catalog product, used for catalog KPIs."""

    product_id: str
    name: Optional[str] = None
    price: float = 0.0
    status: ListingStatus = ListingStatus.DRAFT
    attached_order_id: Optional[str] = None
    data_quality_flags: list[str] = Field(default_factory=list)


class RecordBatch(BaseModel):
    """
    Raw, already-fetched input of one report invocation.

    Each list holds upstream records exactly as the record query returned
    them. Nothing is validated here; the normalizer owns all parsing.
    """

    orders: list[Any] = Field(default_factory=list)
    shipments: list[Any] = Field(default_factory=list)
    payments: list[Any] = Field(default_factory=list)
    print_jobs: list[Any] = Field(default_factory=list)
    reconciliations: list[Any] = Field(default_factory=list)
    products: list[Any] = Field(default_factory=list)

    @property
    def total_records(self) -> int:
        return (
            len(self.orders)
            + len(self.shipments)
            + len(self.payments)
            + len(self.print_jobs)
            + len(self.reconciliations)
            + len(self.products)
        )


class NormalizedBatch(BaseModel):
    """Output of the record normalizer, input of every aggregator."""

    orders: list[OrderEvent] = Field(default_factory=list)
    shipments: list[ShipmentRecord] = Field(default_factory=list)
    payments: list[PaymentRecord] = Field(default_factory=list)
    print_jobs: list[PrintJobRecord] = Field(default_factory=list)
    reconciliations: list[ReconciliationRecord] = Field(default_factory=list)
    products: list[ProductRecord] = Field(default_factory=list)
