"""
Pytest configuration and shared fixtures for the operations analytics test suite.

Factories build raw upstream records (camelCase mappings, exactly as the
record queries return them) so tests exercise the normalizer on the way in.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from opsanalytics.adapters.record_normalizer import RecordNormalizer
from opsanalytics.config import Settings
from opsanalytics.models.records import RecordBatch

AS_OF = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def iso(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime the way the upstream API does ("...Z")."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def at(text: str) -> datetime:
    """Parse an ISO timestamp into an aware UTC datetime."""
    return datetime.fromisoformat(text.replace("Z", "+00:00")).astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Raw record factories
# ---------------------------------------------------------------------------


def make_item(item_id: Optional[str] = "sku-1", name: Optional[str] = "Blue Mug", price=20.0) -> dict:
    """Factory for a raw line item."""
    return {"id": item_id, "name": name, "price": price}


def make_order(
    order_id: str = "ORD-1",
    order_date: Optional[datetime] = AS_OF - timedelta(days=1),
    status: Optional[str] = "delivered",
    total=100.0,
    items: Optional[list] = None,
    payment_method: Optional[str] = "creditCard",
    print_status: Optional[str] = None,
    shipment_date: Optional[datetime] = None,
    tracking_number: Optional[str] = None,
    **overrides,
) -> dict:
    """Factory for a raw order record. ``payment_method=None`` omits the payment."""
    record = {
        "orderId": order_id,
        "orderDate": iso(order_date),
        "status": status,
        "total": total,
        "lineItems": items if items is not None else [],
    }
    if payment_method is not None:
        record["payment"] = {
            "paymentMethod": payment_method,
            "amount": total,
            "paymentDate": iso(order_date),
        }
    if print_status is not None:
        record["printJob"] = {"status": print_status}
    if shipment_date is not None or tracking_number is not None:
        record["shipment"] = {
            "shipmentDate": iso(shipment_date),
            "shipmentMethod": "ground",
            "trackingNumber": tracking_number,
        }
    record.update(overrides)
    return record


def make_shipment(
    shipment_id: str = "SHP-1",
    order_date: Optional[datetime] = AS_OF - timedelta(days=2),
    shipment_date: Optional[datetime] = AS_OF - timedelta(days=1),
    tracking_number: Optional[str] = "TRK-1",
    order_id: Optional[str] = "ORD-1",
    method: Optional[str] = "ground",
) -> dict:
    """Factory for a raw shipment record."""
    return {
        "id": shipment_id,
        "shipmentDate": iso(shipment_date),
        "shipmentMethod": method,
        "trackingNumber": tracking_number,
        "order": {"orderId": order_id, "orderDate": iso(order_date)},
    }


def make_print_job(
    print_job_id: str = "PJ-1",
    status: Optional[str] = "complete",
    print_date: Optional[datetime] = AS_OF - timedelta(days=1),
    order_date: Optional[datetime] = AS_OF - timedelta(days=2),
    order_id: str = "ORD-1",
) -> dict:
    """Factory for a raw print-job record."""
    return {
        "printJobId": print_job_id,
        "status": status,
        "printDate": iso(print_date),
        "order": {"orderId": order_id, "orderDate": iso(order_date)},
    }


def make_reconciliation(
    reconciliation_id: str = "REC-1",
    status: Optional[str] = "complete",
    reconciliation_date: Optional[datetime] = AS_OF - timedelta(days=1),
    order_date: Optional[datetime] = AS_OF - timedelta(days=3),
    order_id: Optional[str] = "ORD-1",
    amount=50.0,
) -> dict:
    """Factory for a raw finance reconciliation record."""
    return {
        "reconciliationId": reconciliation_id,
        "reconciliationDate": iso(reconciliation_date),
        "status": status,
        "order": {
            "orderId": order_id,
            "orderDate": iso(order_date),
            "payment": {"amount": amount},
        },
    }


def make_payment(
    payment_id: str = "PAY-1",
    amount=40.0,
    method: Optional[str] = "creditCard",
    payment_date: Optional[datetime] = AS_OF - timedelta(days=1),
    order_id: Optional[str] = "ORD-1",
) -> dict:
    """Factory for a raw payment record."""
    return {
        "id": payment_id,
        "amount": amount,
        "paymentMethod": method,
        "paymentDate": iso(payment_date),
        "order": {"orderId": order_id},
    }


def make_product(product_id: str = "p1", price=10.0, order_id: Optional[str] = None) -> dict:
    """Factory for a raw catalog product."""
    return {
        "id": product_id,
        "productName": f"Product {product_id}",
        "price": price,
        "order": {"id": order_id} if order_id else None,
    }


def make_golden_batch() -> RecordBatch:
    """
    Fixed dataset used by the golden-path tests.

    Five orders across three channels (one malformed), three shipments
    (one duplicated by an order's embedded shipment), three print jobs,
    five reconciliations over two ISO weeks, three payments and three
    catalog products.
    """
    orders = [
        make_order(
            "ORD-1",
            at("2025-01-14T10:00:00Z"),
            "delivered",
            40.0,
            items=[make_item("mug-1", "Blue Mug", 20.0), make_item("tee-1", "Logo Tee", 20.0)],
            print_status="complete",
            shipment_date=at("2025-01-15T08:00:00Z"),
            tracking_number="TRK-1",
        ),
        make_order(
            "ORD-2",
            at("2025-01-10T09:00:00Z"),
            "delivered",
            25.0,
            items=[make_item("mug-1", "Blue Mug", 25.0)],
            print_status="complete",
            shipment_date=at("2025-01-14T09:00:00Z"),
            tracking_number="TRK-2",
        ),
        make_order(
            "ORD-3",
            at("2025-01-12T15:00:00Z"),
            "cancelled",
            30.0,
            items=[make_item("poster-1", "Poster", 30.0)],
            payment_method="paypal",
            print_status="failed",
        ),
        make_order("ORD-4", at("2025-01-13T08:00:00Z"), "pending", 18.0, payment_method=None),
        {
            "orderId": "ORD-5",
            "orderDate": "not-a-date",
            "status": "teleported",
            "total": "abc",
            "lineItems": [{"id": "mug-1", "name": "Blue Mug", "price": None}],
            "payment": {"paymentMethod": "creditCard"},
        },
    ]
    shipments = [
        make_shipment(
            "SHP-1",
            order_date=at("2025-01-14T10:00:00Z"),
            shipment_date=at("2025-01-15T08:00:00Z"),
            tracking_number="TRK-1",
            order_id="ORD-1",
        ),
        make_shipment(
            "SHP-3",
            order_date=None,
            shipment_date=at("2025-01-08T10:00:00Z"),
            tracking_number="TRK-3",
            order_id="ORD-0",
        ),
    ]
    print_jobs = [
        make_print_job("PJ-1", "complete", at("2025-01-14T12:00:00Z"), at("2025-01-14T10:00:00Z"), "ORD-1"),
        make_print_job("PJ-2", "failed", at("2025-01-13T09:00:00Z"), at("2025-01-12T15:00:00Z"), "ORD-3"),
        {"printJobId": "PJ-3", "status": "bogus", "printDate": None},
    ]
    reconciliations = [
        make_reconciliation("REC-1", "complete", at("2025-01-07T10:00:00Z"), at("2025-01-05T10:00:00Z"), "ORD-0", 50.0),
        make_reconciliation("REC-2", "complete", at("2025-01-08T10:00:00Z"), at("2025-01-04T10:00:00Z"), "ORD-9", 30.0),
        make_reconciliation("REC-3", "pending", at("2025-01-14T10:00:00Z"), at("2025-01-14T10:00:00Z"), "ORD-1", 40.0),
        make_reconciliation("REC-4", "failed", at("2025-01-15T09:00:00Z"), at("2025-01-12T15:00:00Z"), "ORD-3", 30.0),
        {"reconciliationId": "REC-5", "status": None, "reconciliationDate": None, "order": {"orderId": "ORD-4"}},
    ]
    payments = [
        make_payment("PAY-1", 40.0, "creditCard", at("2025-01-14T10:05:00Z"), "ORD-1"),
        make_payment("PAY-2", "25.5", "PayPal", at("2025-01-12T15:05:00Z"), "ORD-3"),
        make_payment("PAY-3", None, None, None, None),
    ]
    products = [
        make_product("p1", 10, "o1"),
        make_product("p2", 20, None),
        make_product("p3", 30, "o2"),
    ]
    return RecordBatch(
        orders=orders,
        shipments=shipments,
        payments=payments,
        print_jobs=print_jobs,
        reconciliations=reconciliations,
        products=products,
    )


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def as_of():
    """Fixed report reference time (Wednesday 2025-01-15 12:00 UTC)."""
    return AS_OF


@pytest.fixture
def settings():
    """Default engine settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def normalizer():
    return RecordNormalizer()


@pytest.fixture
def golden_batch():
    return make_golden_batch()
