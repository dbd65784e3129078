# tests/test_commissions.py
from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from sqlalchemy import select

from glowglitch.core.commission import calculate_commission, tier_rate
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator

from factories import create_commission, create_creator, create_order


def _creator(status: str = "approved", rate: str = "10") -> Creator:
    return Creator(status=status, commission_rate=Decimal(rate))


def test_unapproved_creator_earns_nothing():
    calc = calculate_commission(_creator(status="pending"), Decimal("100"))
    assert calc.is_eligible is False
    assert calc.amount == Decimal("0.00")
    assert calc.reason == "Creator not approved"


def test_minimum_order_amount():
    calc = calculate_commission(_creator(), Decimal("9.99"))
    assert calc.is_eligible is False
    assert "minimum" in calc.reason

    assert calculate_commission(_creator(), Decimal("10.00")).is_eligible is True


@pytest.mark.parametrize(
    "monthly, expected",
    [("0", "10"), ("999.99", "10"), ("1000", "12"), ("5000", "15"), ("9999.99", "15"), ("10000", "18")],
)
def test_tier_boundaries(monthly, expected):
    assert tier_rate(Decimal(monthly)) == Decimal(expected)


def test_tier_rate_raises_creator_rate():
    calc = calculate_commission(_creator(rate="10"), Decimal("100"), monthly_sales=Decimal("6000"))
    assert calc.rate == Decimal("15")
    assert calc.amount == Decimal("15.00")


def test_creator_rate_kept_when_higher_than_tier():
    calc = calculate_commission(_creator(rate="20"), Decimal("100"), monthly_sales=Decimal("6000"))
    assert calc.rate == Decimal("20")


def test_custom_rate_wins():
    calc = calculate_commission(_creator(rate="20"), Decimal("100"), Decimal("20000"), custom_rate=Decimal("5"))
    assert calc.rate == Decimal("5")
    assert calc.amount == Decimal("5.00")


def test_commission_is_capped_and_rounded():
    capped = calculate_commission(_creator(), Decimal("20000"))
    assert capped.amount == Decimal("1000.00")

    rounded = calculate_commission(_creator(), Decimal("10.05"))
    assert rounded.amount == Decimal("1.01")


@pytest.mark.asyncio
async def test_bulk_approve_only_touches_pending(client, db, admin_headers):
    creator = await create_creator(db)
    pending = await create_commission(db, creator, amount="20.00", status="pending")
    paid = await create_commission(db, creator, amount="5.00", status="paid")
    await db.commit()

    r = await client.post(
        "/api/admin/commissions",
        headers=admin_headers,
        json={"transactionIds": [str(pending.id), str(paid.id), str(uuid.uuid4())], "adminNotes": "checked"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["approved"] == 1
    assert data["failed"] == 2

    await db.refresh(pending)
    await db.refresh(paid)
    await db.refresh(creator)
    assert pending.status == "approved"
    assert pending.processed_at is not None
    assert pending.notes == "checked"
    assert paid.status == "paid"
    # metrics are recomputed from the approved + paid ledger
    assert creator.total_sales == 2
    assert creator.total_commission == Decimal("25.00")


@pytest.mark.asyncio
async def test_bulk_approve_requires_ids(client, admin_headers):
    r = await client.post("/api/admin/commissions", headers=admin_headers, json={"transactionIds": []})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"


@pytest.mark.asyncio
async def test_list_commissions_with_filters_and_analytics(client, db, admin_headers):
    luna = await create_creator(db, display_name="Luna Gold")
    iris = await create_creator(db, display_name="Iris Silver")
    order = await create_order(db, total="400.00")
    await create_commission(db, luna, amount="40.00", status="pending", order=order)
    await create_commission(db, luna, amount="12.50", status="approved")
    await create_commission(db, iris, amount="7.00", status="approved")
    await db.commit()

    r = await client.get("/api/admin/commissions", headers=admin_headers, params={"status": "approved"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["pagination"]["total"] == 2
    assert {t["creatorName"] for t in data["transactions"]} == {"Luna Gold", "Iris Silver"}
    assert all(t["type"] == "sale" for t in data["transactions"])

    analytics = data["analytics"]
    assert analytics["totalTransactions"] == 3
    assert analytics["pendingCommissions"] == 40.0
    assert analytics["totalCommissions"] == 19.5
    assert analytics["topCreators"][0]["displayName"] == "Luna Gold"

    r = await client.get("/api/admin/commissions", headers=admin_headers, params={"search": order.order_number})
    rows = r.json()["data"]["transactions"]
    assert len(rows) == 1
    assert rows[0]["orderNumber"] == order.order_number
    assert rows[0]["commissionAmount"] == 40.0

    r = await client.get("/api/admin/commissions", headers=admin_headers, params={"creatorId": str(iris.id)})
    assert r.json()["data"]["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_partial_refund_claws_back_commission(client, db, admin_headers):
    creator = await create_creator(db)
    order = await create_order(db, total="200.00", status="delivered")
    await create_commission(db, creator, amount="20.00", status="approved", order=order)
    await db.commit()

    r = await client.put(
        f"/api/admin/orders/{order.id}",
        headers=admin_headers,
        json={"action": "process-refund", "amount": 50, "reason": "Damaged clasp", "notifyCustomer": False},
    )
    assert r.status_code == 200

    rows = (
        await db.execute(
            select(CommissionTransaction).where(
                CommissionTransaction.order_id == order.id,
                CommissionTransaction.transaction_type == "return",
            )
        )
    ).scalars().all()
    assert len(rows) == 1
    clawback = rows[0]
    assert clawback.status == "approved"
    assert clawback.order_amount == Decimal("-50.00")
    assert clawback.commission_amount == Decimal("-5.00")
    assert clawback.notes == "Damaged clasp"

    await db.refresh(creator)
    assert creator.total_commission == Decimal("15.00")
