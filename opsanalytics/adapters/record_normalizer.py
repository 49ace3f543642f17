"""
Record normalizer: raw upstream records -> validated engine inputs.

The dashboard's record queries return camelCase mappings in which any field
may be null, empty, malformed or absent. RecordNormalizer is the single place
where those records are interpreted. Documented defaults:

    order status          -> "pending"
    listing status        -> "draft"
    settlement status     -> "pending"
    print-job status      -> "pending"
    unparseable dates     -> None (unknown)
    missing/bad numbers   -> the field's default (0.0 for totals and amounts,
                             None for item prices)

A normalization anomaly is recorded in the record's ``data_quality_flags``
and never raised, so one malformed record cannot abort a report.
"""

from collections.abc import Mapping
from typing import Any, Optional

from opsanalytics.models.enums import (
    ListingStatus,
    OrderStatus,
    PrintJobStatus,
    SettlementStatus,
)
from opsanalytics.models.records import (
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
from opsanalytics.models.report import DataQualitySection

from .base_adapter import BaseAdapter

# Canonical spelling of the payment methods the upstream enum defines.
# Other non-empty methods are kept verbatim as their own channel.
KNOWN_PAYMENT_METHODS = {
    "creditcard": "creditCard",
    "paypal": "paypal",
    "banktransfer": "bankTransfer",
}

KNOWN_SHIPMENT_METHODS = {"ground", "air", "express"}


class RecordNormalizer(BaseAdapter):
    """
    Normalizes every record type of a RecordBatch.

    Example:
        >>> normalizer = RecordNormalizer()
        >>> order = normalizer.normalize_order({"orderId": "ORD-1", "total": "12.5"})
        >>> order.total
        12.5
    """

    def __init__(self, source_name: str = "dashboard_api"):
        super().__init__(source_name=source_name)

    def normalize(self, batch: RecordBatch) -> NormalizedBatch:
        """
        Normalize all records of a batch.

        Args:
            batch: Raw records as returned by the upstream queries

        Returns:
            NormalizedBatch with one normalized record per raw record
        """
        normalized = NormalizedBatch(
            orders=[self.normalize_order(r, i) for i, r in enumerate(batch.orders)],
            shipments=[self.normalize_shipment(r, i) for i, r in enumerate(batch.shipments)],
            payments=[self.normalize_payment(r, i) for i, r in enumerate(batch.payments)],
            print_jobs=[self.normalize_print_job(r, i) for i, r in enumerate(batch.print_jobs)],
            reconciliations=[
                self.normalize_reconciliation(r, i)
                for i, r in enumerate(batch.reconciliations)
            ],
            products=[self.normalize_product(r, i) for i, r in enumerate(batch.products)],
        )

        self.logger.debug(
            "batch_normalized",
            orders=len(normalized.orders),
            shipments=len(normalized.shipments),
            payments=len(normalized.payments),
            print_jobs=len(normalized.print_jobs),
            reconciliations=len(normalized.reconciliations),
            products=len(normalized.products),
        )
        return normalized

    def quality_report(self, batch: NormalizedBatch, total_records: int) -> DataQualitySection:
        """Summarize the defaults applied to a normalized batch."""
        return self._compute_quality_report(batch, total_records)

    # =========================================================================
    # Orders
    # =========================================================================

    def normalize_order(self, raw: Any, index: int = 0) -> OrderEvent:
        """
        Normalize one order record.

        Args:
            raw: Upstream order mapping
            index: Position of the record in its batch, used for a
                deterministic id when the record has none

        Returns:
            OrderEvent
        """
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        order_id = self._safe_str(raw.get("orderId")) or self._safe_str(raw.get("id"))
        if order_id is None:
            flags.append("order_id:missing")
            order_id = f"order-{index}"

        order = OrderEvent(
            order_id=order_id,
            order_date=self._safe_datetime(raw.get("orderDate"), "order_date", flags),
            status=self._safe_enum(
                raw.get("status"), OrderStatus, OrderStatus.PENDING, "status", flags
            ),
            total=self._safe_float(raw.get("total"), 0.0, "total", flags),
            line_items=self._normalize_line_items(raw.get("lineItems"), flags),
            payment=self._normalize_payment_ref(raw.get("payment"), flags),
            print_job=self._normalize_print_job_ref(raw.get("printJob"), flags),
            shipment=self._normalize_shipment_ref(raw.get("shipment"), flags),
            data_quality_flags=flags,
        )
        self._log_defaults("order", order.order_id, flags)
        return order

    def _normalize_line_items(self, raw_items: Any, flags: list[str]) -> list[LineItem]:
        if self._is_missing(raw_items):
            return []
        if not isinstance(raw_items, (list, tuple)):
            flags.append("line_items:invalid")
            return []

        items = []
        for position, raw_item in enumerate(raw_items):
            if not isinstance(raw_item, Mapping):
                flags.append("line_items:invalid")
                continue
            name = self._safe_str(raw_item.get("name"))
            item_id = (
                self._safe_str(raw_item.get("id"))
                or self._slug(name)
                or f"item-{position}"
            )
            items.append(
                LineItem(
                    item_id=item_id,
                    name=name,
                    price=self._safe_float(raw_item.get("price"), None, "line_items.price", flags),
                )
            )
        return items

    def _normalize_payment_ref(self, raw: Any, flags: list[str]) -> Optional[PaymentRef]:
        if not isinstance(raw, Mapping):
            return None
        return PaymentRef(
            method=self._payment_method(raw.get("paymentMethod")),
            amount=self._safe_float(raw.get("amount"), None, "payment.amount", flags),
            payment_date=self._safe_datetime(raw.get("paymentDate")),
        )

    def _normalize_print_job_ref(self, raw: Any, flags: list[str]) -> Optional[PrintJobRef]:
        if not isinstance(raw, Mapping):
            return None
        return PrintJobRef(
            status=self._safe_enum(
                raw.get("status"),
                PrintJobStatus,
                PrintJobStatus.PENDING,
                "print_job.status",
                flags,
            )
        )

    def _normalize_shipment_ref(self, raw: Any, flags: list[str]) -> Optional[ShipmentRef]:
        if not isinstance(raw, Mapping):
            return None
        return ShipmentRef(
            shipment_date=self._safe_datetime(
                raw.get("shipmentDate"), "shipment.shipment_date", flags
            ),
            method=self._shipment_method(raw.get("shipmentMethod")),
            tracking_number=self._safe_str(raw.get("trackingNumber")),
        )

    # =========================================================================
    # Standalone records
    # =========================================================================

    def normalize_shipment(self, raw: Any, index: int = 0) -> ShipmentRecord:
        """Normalize one shipment record (with its order's date)."""
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        shipment = ShipmentRecord(
            shipment_id=self._safe_str(raw.get("id")) or f"shipment-{index}",
            order_id=self._safe_str(self._get(raw, "order", "orderId")),
            order_date=self._safe_datetime(
                self._get(raw, "order", "orderDate"), "order_date", flags
            ),
            shipment_date=self._safe_datetime(raw.get("shipmentDate"), "shipment_date", flags),
            method=self._shipment_method(raw.get("shipmentMethod")),
            tracking_number=self._safe_str(raw.get("trackingNumber")),
            data_quality_flags=flags,
        )
        self._log_defaults("shipment", shipment.shipment_id, flags)
        return shipment

    def normalize_payment(self, raw: Any, index: int = 0) -> PaymentRecord:
        """Normalize one payment record."""
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        payment = PaymentRecord(
            payment_id=self._safe_str(raw.get("id")) or f"payment-{index}",
            order_id=self._safe_str(self._get(raw, "order", "orderId")),
            amount=self._safe_float(raw.get("amount"), 0.0, "amount", flags),
            method=self._payment_method(raw.get("paymentMethod")),
            payment_date=self._safe_datetime(raw.get("paymentDate"), "payment_date", flags),
            data_quality_flags=flags,
        )
        self._log_defaults("payment", payment.payment_id, flags)
        return payment

    def normalize_print_job(self, raw: Any, index: int = 0) -> PrintJobRecord:
        """Normalize one print-job record (with its order's date)."""
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        job = PrintJobRecord(
            print_job_id=(
                self._safe_str(raw.get("printJobId"))
                or self._safe_str(raw.get("id"))
                or f"print-job-{index}"
            ),
            order_id=self._safe_str(self._get(raw, "order", "orderId")),
            order_date=self._safe_datetime(
                self._get(raw, "order", "orderDate"), "order_date", flags
            ),
            status=self._safe_enum(
                raw.get("status"), PrintJobStatus, PrintJobStatus.PENDING, "status", flags
            ),
            print_date=self._safe_datetime(raw.get("printDate"), "print_date", flags),
            data_quality_flags=flags,
        )
        self._log_defaults("print_job", job.print_job_id, flags)
        return job

    def normalize_reconciliation(self, raw: Any, index: int = 0) -> ReconciliationRecord:
        """Normalize one finance reconciliation record."""
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        reconciliation = ReconciliationRecord(
            reconciliation_id=(
                self._safe_str(raw.get("reconciliationId"))
                or self._safe_str(raw.get("id"))
                or f"reconciliation-{index}"
            ),
            order_id=self._safe_str(self._get(raw, "order", "orderId")),
            order_date=self._safe_datetime(self._get(raw, "order", "orderDate")),
            reconciliation_date=self._safe_datetime(
                raw.get("reconciliationDate"), "reconciliation_date", flags
            ),
            status=self._safe_enum(
                raw.get("status"),
                SettlementStatus,
                SettlementStatus.PENDING,
                "status",
                flags,
            ),
            amount=self._safe_float(
                self._get(raw, "order", "payment", "amount"), 0.0, "amount", flags
            ),
            data_quality_flags=flags,
        )
        self._log_defaults("reconciliation", reconciliation.reconciliation_id, flags)
        return reconciliation

    def normalize_product(self, raw: Any, index: int = 0) -> ProductRecord:
        """Normalize one catalog product record."""
        flags: list[str] = []
        if not isinstance(raw, Mapping):
            flags.append("record:invalid")
            raw = {}

        product = ProductRecord(
            product_id=self._safe_str(raw.get("id")) or f"product-{index}",
            name=self._safe_str(raw.get("productName")),
            price=self._safe_float(raw.get("price"), 0.0, "price", flags),
            status=self._safe_enum(
                raw.get("status"), ListingStatus, ListingStatus.DRAFT, "status", flags
            ),
            attached_order_id=self._safe_str(self._get(raw, "order", "id")),
            data_quality_flags=flags,
        )
        self._log_defaults("product", product.product_id, flags)
        return product

    # =========================================================================
    # Helpers
    # =========================================================================

    def _payment_method(self, value: Any) -> Optional[str]:
        method = self._safe_str(value)
        if not method:
            return None
        return KNOWN_PAYMENT_METHODS.get(method.lower(), method)

    def _shipment_method(self, value: Any) -> Optional[str]:
        method = self._safe_str(value)
        if not method:
            return None
        lowered = method.lower()
        return lowered if lowered in KNOWN_SHIPMENT_METHODS else method

    def _log_defaults(self, record_type: str, record_id: str, flags: list[str]) -> None:
        if flags:
            self.logger.debug(
                "record_normalized_with_defaults",
                record_type=record_type,
                record_id=record_id,
                flags=flags,
            )
