# tests/test_admin_orders.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from glowglitch.core import orders as order_ops
from glowglitch.core.commission import handle_order_return
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.marketing import EmailEvent
from glowglitch.models.order import Order

from factories import create_commission, create_creator, create_order


def test_status_transition_table():
    assert order_ops.is_valid_transition("pending", "confirmed")
    assert order_ops.is_valid_transition("shipped", "delivered")
    assert not order_ops.is_valid_transition("delivered", "pending")
    assert not order_ops.is_valid_transition("cancelled", "confirmed")


def test_tracking_urls():
    assert order_ops.tracking_url("UPS", "1Z999") == "https://www.ups.com/track?track=yes&trackNums=1Z999"
    assert order_ops.tracking_url("Royal Mail", "AB 12").startswith("https://www.google.com/search?q=Royal+Mail")


def test_risk_and_priority():
    order = Order(
        is_guest=True,
        user_id=None,
        total=6000,
        subtotal=6000,
        payment_status="failed",
        shipping={},
        items=[],
    )
    assert order_ops.risk_score(order) == 55
    assert order_ops.risk_level(order) == "high"
    assert order_ops.fulfillment_priority(order) == "high"

    express = Order(is_guest=False, total=50, subtotal=50, payment_status="completed", shipping={"method": "express"}, items=[])
    assert order_ops.fulfillment_priority(express) == "urgent"


@pytest.mark.asyncio
async def test_order_detail_metadata_and_history(client, db, admin_headers):
    first = await create_order(db, total="100.00", email="repeat@glowglitch.io", status="delivered")
    order = await create_order(db, total="300.00", email="repeat@glowglitch.io", status="confirmed")
    await create_order(db, total="999.00", email="someone-else@glowglitch.io")
    await db.commit()

    r = await client.get(f"/api/admin/orders/{order.id}", headers=admin_headers)
    assert r.status_code == 200
    detail = r.json()["data"]["order"]
    assert detail["orderNumber"] == order.order_number
    meta = detail["adminMetadata"]
    assert meta["canBeCancelled"] is True
    assert meta["canBeRefunded"] is True
    assert meta["canBeShipped"] is False
    assert meta["profitMargin"] == 195.0
    assert detail["customerMetrics"]["totalOrders"] == 2
    assert detail["customerMetrics"]["totalSpent"] == 400.0
    assert detail["customerMetrics"]["averageOrderValue"] == 200.0
    assert {o["id"] for o in detail["customerOrderHistory"]} == {str(first.id), str(order.id)}

    r = await client.get(f"/api/admin/orders/{uuid.uuid4()}", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "ORDER_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_status_follows_transitions(client, db, admin_headers):
    order = await create_order(db, status="confirmed")
    await db.commit()
    url = f"/api/admin/orders/{order.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "update-status", "status": "processing"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["order"]["status"] == "processing"
    assert data["order"]["timeline"][-1]["status"] == "processing"
    assert data["emailSent"] is True
    assert data["message"] == "Order status updated successfully"

    r = await client.put(url, headers=admin_headers, json={"action": "update-status", "status": "delivered"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_STATUS_TRANSITION"

    events = (await db.execute(select(EmailEvent).where(EmailEvent.recipient_email == order.email))).scalars().all()
    assert len(events) == 1
    assert events[0].event_type == "sent"
    assert events[0].source == "transactional"


@pytest.mark.asyncio
async def test_add_tracking_ships_processing_order(client, db, admin_headers):
    order = await create_order(db, status="processing")
    await db.commit()

    r = await client.put(
        f"/api/admin/orders/{order.id}",
        headers=admin_headers,
        json={"action": "add-tracking", "trackingNumber": "1Z999AA10123456784", "carrier": "UPS", "notifyCustomer": False},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["emailSent"] is False
    shipped = data["order"]
    assert shipped["status"] == "shipped"
    assert shipped["shippingStatus"] == "shipped"
    assert shipped["shipping"]["trackingUrl"].endswith("trackNums=1Z999AA10123456784")
    assert "shippedAt" in shipped["shipping"]

    r = await client.put(
        f"/api/admin/orders/{order.id}",
        headers=admin_headers,
        json={"action": "add-tracking", "carrier": "UPS"},
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Tracking number is required"


@pytest.mark.asyncio
async def test_refunds_accumulate(client, db, admin_headers):
    order = await create_order(db, total="120.00", status="delivered")
    await db.commit()
    url = f"/api/admin/orders/{order.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 20, "reason": "Scratched"})
    assert r.status_code == 200
    partial = r.json()["data"]["order"]
    assert partial["paymentStatus"] == "partially-refunded"
    assert partial["status"] == "delivered"
    assert len(partial["payment"]["refunds"]) == 1

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 100, "reason": "Returned"})
    full = r.json()["data"]["order"]
    assert full["paymentStatus"] == "refunded"
    assert full["status"] == "refunded"

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 0, "reason": "Oops"})
    assert r.status_code in (400, 409)


@pytest.mark.asyncio
async def test_shipping_notes_and_cancel(client, db, admin_headers):
    order = await create_order(db, status="pending", payment_status="pending")
    await db.commit()
    url = f"/api/admin/orders/{order.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "update-shipping", "method": "express", "cost": 15})
    data = r.json()["data"]
    assert data["order"]["shipping"] == {"method": "express", "cost": 15.0}
    assert data["emailSent"] is False

    r = await client.put(url, headers=admin_headers, json={"action": "add-note", "note": "Gift wrap", "isInternal": False})
    notes = r.json()["data"]["order"]["adminNotes"]
    assert notes[0]["note"] == "Gift wrap"
    assert notes[0]["isInternal"] is False

    r = await client.put(url, headers=admin_headers, json={"action": "cancel-order"})
    assert r.status_code == 400

    r = await client.put(
        url,
        headers=admin_headers,
        json={"action": "cancel-order", "reason": "Customer request", "refundAmount": 250},
    )
    cancelled = r.json()["data"]["order"]
    assert cancelled["status"] == "cancelled"
    assert cancelled["paymentStatus"] == "refunded"
    assert cancelled["payment"]["refunds"][0]["reason"] == "Order cancellation: Customer request"

    r = await client.put(url, headers=admin_headers, json={"action": "cancel-order", "reason": "Again"})
    assert r.status_code == 409


@pytest.mark.asyncio
async def test_unknown_action(client, db, admin_headers):
    order = await create_order(db)
    await db.commit()

    r = await client.put(f"/api/admin/orders/{order.id}", headers=admin_headers, json={"action": "teleport"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_ACTION"


async def _return_rows(db, order_id):
    stmt = select(CommissionTransaction).where(
        CommissionTransaction.order_id == order_id,
        CommissionTransaction.transaction_type == "return",
    )
    return (await db.execute(stmt)).scalars().all()


@pytest.mark.asyncio
async def test_refund_cannot_exceed_order_total(client, db, admin_headers):
    order = await create_order(db, total="200.00", status="delivered")
    creator = await create_creator(db)
    await create_commission(db, creator, amount="20.00", order=order)
    await db.commit()
    url = f"/api/admin/orders/{order.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 1000, "reason": "Typo"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "REFUND_EXCEEDS_TOTAL"
    assert r.json()["error"]["details"]["refundable"] == 200.0
    assert await _return_rows(db, order.id) == []

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 150, "reason": "Lost stone"})
    assert r.status_code == 200

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 60, "reason": "Goodwill"})
    assert r.status_code == 400
    assert r.json()["error"]["details"]["refundable"] == 50.0

    r = await client.put(url, headers=admin_headers, json={"action": "process-refund", "amount": 50, "reason": "Goodwill"})
    assert r.json()["data"]["order"]["paymentStatus"] == "refunded"

    rows = await _return_rows(db, order.id)
    assert sorted(row.commission_amount for row in rows) == [Decimal("-15.00"), Decimal("-5.00")]
    assert sum(row.commission_amount for row in rows) == Decimal("-20.00")


@pytest.mark.asyncio
async def test_cancel_refund_is_capped(client, db, admin_headers):
    order = await create_order(db, total="80.00", status="pending", payment_status="pending")
    await db.commit()

    r = await client.put(
        f"/api/admin/orders/{order.id}",
        headers=admin_headers,
        json={"action": "cancel-order", "reason": "Fraud", "refundAmount": 95},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "REFUND_EXCEEDS_TOTAL"

    await db.refresh(order)
    assert order.status == "pending"


@pytest.mark.asyncio
async def test_clawback_never_exceeds_commission(db):
    order = await create_order(db, total="200.00", status="delivered")
    creator = await create_creator(db)
    await create_commission(db, creator, amount="20.00", order=order)

    first = await handle_order_return(db, order.id, Decimal("1000"), "Chargeback")
    assert first.commission_amount == Decimal("-20.00")
    assert first.order_amount == Decimal("-200.00")

    assert await handle_order_return(db, order.id, Decimal("10"), "Chargeback") is None
    await db.commit()
