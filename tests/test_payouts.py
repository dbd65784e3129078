# tests/test_payouts.py
from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from glowglitch.core.clock import utcnow
from glowglitch.models.commission import CommissionTransaction, CreatorPayout
from glowglitch.models.user import ROLE_CREATOR
from glowglitch.services import payments
from glowglitch.services.payments import PaymentError

from factories import auth_headers, create_commission, create_creator, create_user


async def _earning_creator(db, amounts=("40.00", "35.00"), **fields):
    owner = await create_user(db, role=ROLE_CREATOR)
    creator = await create_creator(db, user=owner, **fields)
    txs = [await create_commission(db, creator, amount=a, status="approved") for a in amounts]
    await db.commit()
    return creator, txs, auth_headers(owner)


class _DecliningGateway:
    method = "paypal"

    async def send_payout(self, *, amount, currency, details):
        raise PaymentError("PayPal payout failed: receiver account locked")


@pytest.mark.asyncio
async def test_eligibility_overview(client, db):
    creator, txs, headers = await _earning_creator(db)
    await create_commission(db, creator, amount="99.00", status="pending")
    await db.commit()

    r = await client.get("/api/creators/payouts", headers=headers)
    assert r.status_code == 200
    data = r.json()["data"]
    eligibility = data["eligibility"]
    assert eligibility["availableForPayout"] == 75.0
    # creator minimum (50) beats the PayPal minimum (25)
    assert eligibility["minimumPayout"] == 50.0
    assert eligibility["isEligible"] is True
    assert set(eligibility["transactionIds"]) == {str(t.id) for t in txs}
    assert data["payouts"] == []
    assert data["pagination"]["total"] == 0


@pytest.mark.asyncio
async def test_below_minimum_is_not_eligible(client, db):
    _, _, headers = await _earning_creator(db, amounts=("20.00",))

    r = await client.get("/api/creators/payouts", headers=headers)
    assert r.json()["data"]["eligibility"]["isEligible"] is False

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 20})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "PAYOUT_NOT_ELIGIBLE"


@pytest.mark.asyncio
async def test_successful_paypal_payout_marks_transactions_paid(client, db):
    creator, txs, headers = await _earning_creator(db)

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 75})
    assert r.status_code == 201
    payout = r.json()["data"]["payout"]
    assert payout["status"] == "completed"
    assert payout["amount"] == 75.0
    assert payout["currency"] == "USD"
    assert payout["paymentReference"].startswith("paypal_")
    assert payout["paymentDetails"].startswith("***")
    assert set(payout["transactionIds"]) == {str(t.id) for t in txs}

    for tx in txs:
        await db.refresh(tx)
        assert tx.status == "paid"
        assert tx.paid_at is not None
        assert str(tx.payout_id) == payout["id"]

    r = await client.get("/api/creators/payouts", headers=headers)
    data = r.json()["data"]
    assert data["eligibility"]["availableForPayout"] == 0
    assert data["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_payout_larger_than_balance(client, db):
    _, _, headers = await _earning_creator(db)

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 500})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INSUFFICIENT_BALANCE"


@pytest.mark.asyncio
async def test_partial_payout_settles_oldest_matching_transactions(client, db):
    _, txs, headers = await _earning_creator(db, amounts=("60.00", "40.00"))
    oldest, newest = txs
    oldest.created_at = utcnow() - timedelta(days=2)
    newest.created_at = utcnow() - timedelta(days=1)
    await db.commit()

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 50})
    assert r.status_code == 400
    body = r.json()
    assert body["error"]["code"] == "INVALID_INPUT"
    assert body["error"]["details"]["settleableAmounts"] == [60.0, 100.0]

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 60})
    assert r.status_code == 201
    assert r.json()["data"]["payout"]["transactionIds"] == [str(oldest.id)]

    await db.refresh(oldest)
    await db.refresh(newest)
    assert oldest.status == "paid"
    assert newest.status == "approved"
    assert newest.payout_id is None

    r = await client.get("/api/creators/payouts", headers=headers)
    assert r.json()["data"]["eligibility"]["availableForPayout"] == 40.0


@pytest.mark.asyncio
async def test_amount_must_match_selected_transactions(client, db):
    _, txs, headers = await _earning_creator(db, amounts=("60.00", "40.00"))

    r = await client.post(
        "/api/creators/payouts",
        headers=headers,
        json={"amount": 100, "transactionIds": [str(txs[1].id)]},
    )
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"
    assert r.json()["error"]["details"]["selectedTotal"] == 40.0

    for tx in txs:
        await db.refresh(tx)
        assert tx.status == "approved"

    r = await client.post(
        "/api/creators/payouts",
        headers=headers,
        json={"amount": 40, "transactionIds": [str(txs[1].id)]},
    )
    assert r.status_code == 201
    assert r.json()["data"]["payout"]["amount"] == 40.0


@pytest.mark.asyncio
async def test_missing_payment_fields_rejected(client, db):
    _, _, headers = await _earning_creator(db)

    r = await client.post(
        "/api/creators/payouts",
        headers=headers,
        json={"amount": 75, "paymentMethod": "bank", "paymentDetails": {"accountNumber": "12345678"}},
    )
    assert r.status_code == 400
    body = r.json()
    assert body["error"]["code"] == "INVALID_PAYMENT_DETAILS"
    assert body["error"]["details"]["missing"] == ["routingNumber", "accountName"]


@pytest.mark.asyncio
async def test_gateway_failure_reverts_transactions(client, db):
    creator, txs, headers = await _earning_creator(db)

    r = await client.post(
        "/api/creators/payouts",
        headers=headers,
        json={"amount": 75, "paymentDetails": {"email": "not-an-address"}},
    )
    assert r.status_code == 502
    body = r.json()
    assert body["error"]["code"] == "PAYOUT_FAILED"
    assert "invalid receiver email" in body["error"]["message"]

    payout = (
        await db.execute(select(CreatorPayout).where(CreatorPayout.creator_id == creator.id))
    ).scalar_one()
    assert payout.status == "failed"
    assert str(payout.id) == body["error"]["details"]["payoutId"]

    for tx in txs:
        await db.refresh(tx)
        assert tx.status == "approved"
        assert tx.paid_at is None
        assert tx.payout_id is None


@pytest.mark.asyncio
async def test_declining_gateway_is_reported(client, db, monkeypatch):
    _, txs, headers = await _earning_creator(db)
    monkeypatch.setitem(payments.GATEWAYS, "paypal", _DecliningGateway())

    r = await client.post("/api/creators/payouts", headers=headers, json={"amount": 75})
    assert r.status_code == 502
    assert r.json()["error"]["message"] == "PayPal payout failed: receiver account locked"

    await db.refresh(txs[0])
    assert txs[0].status == "approved"


@pytest.mark.asyncio
async def test_cancel_pending_payout(client, db):
    creator, txs, headers = await _earning_creator(db)
    payout = CreatorPayout(
        creator_id=creator.id,
        amount=Decimal("75.00"),
        currency="USD",
        transaction_ids=[str(t.id) for t in txs],
        payment_method="paypal",
        payment_details=creator.payment_details,
        status="pending",
        payout_date=utcnow(),
    )
    db.add(payout)
    await db.flush()
    for tx in txs:
        tx.status = "paid"
        tx.paid_at = utcnow()
        tx.payout_id = payout.id
    await db.commit()

    r = await client.put(f"/api/creators/payouts/{payout.id}", headers=headers, json={"action": "cancel"})
    assert r.status_code == 200
    assert r.json()["data"]["payout"]["status"] == "cancelled"

    rows = (
        await db.execute(select(CommissionTransaction).where(CommissionTransaction.creator_id == creator.id))
    ).scalars().all()
    for tx in rows:
        await db.refresh(tx)
        assert tx.status == "approved"
        assert tx.payout_id is None

    r = await client.put(f"/api/creators/payouts/{payout.id}", headers=headers, json={"action": "cancel"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_STATUS"


@pytest.mark.asyncio
async def test_cannot_touch_another_creators_payout(client, db):
    creator, _, _ = await _earning_creator(db)
    _, _, other_headers = await _earning_creator(db)
    payout = CreatorPayout(
        creator_id=creator.id,
        amount=Decimal("75.00"),
        currency="USD",
        transaction_ids=[],
        payment_method="paypal",
        payment_details="",
        status="pending",
        payout_date=utcnow(),
    )
    db.add(payout)
    await db.commit()

    r = await client.put(f"/api/creators/payouts/{payout.id}", headers=other_headers, json={"action": "cancel"})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "PAYOUT_NOT_FOUND"
