# tests/test_admin_creators.py
from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import select

from glowglitch.crud.creators import tier_for_sales
from glowglitch.models.commission import CreatorPayout

from factories import create_commission, create_creator, create_link


@pytest.mark.parametrize(
    "sales, tier",
    [("0", "bronze"), ("999", "bronze"), ("1000", "silver"), ("5000", "gold"), ("25000", "platinum")],
)
def test_tier_for_sales(sales, tier):
    assert tier_for_sales(Decimal(sales)) == tier


@pytest.mark.asyncio
async def test_list_creators_with_stats(client, db, admin_headers):
    luna = await create_creator(db, display_name="Luna Gold")
    await create_creator(db, status="pending", display_name="Iris Silver")
    await create_link(db, luna, click_count=12, conversion_count=2)
    await create_commission(db, luna, amount="30.00", status="pending")
    # 6000 in order volume this month: gold tier
    await create_commission(db, luna, amount="600.00", status="approved")
    await db.commit()

    r = await client.get("/api/admin/creators", headers=admin_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["metrics"]["totalCreators"] == 2
    assert data["metrics"]["pendingApplications"] == 1
    assert data["metrics"]["activeCreators"] == 1

    row = next(c for c in data["creators"] if c["displayName"] == "Luna Gold")
    assert row["tier"] == "gold"
    assert row["monthlySales"] == 6000.0
    assert row["stats"]["totalLinks"] == 1
    assert row["stats"]["totalClicks"] == 12
    assert row["stats"]["totalConversions"] == 2
    assert row["stats"]["pendingCommissions"] == 30.0
    assert row["stats"]["approvedCommissions"] == 600.0
    assert row["stats"]["totalCommissions"] == 630.0

    r = await client.get("/api/admin/creators", headers=admin_headers, params={"tier": "bronze"})
    assert [c["displayName"] for c in r.json()["data"]["creators"]] == ["Iris Silver"]

    r = await client.get("/api/admin/creators", headers=admin_headers, params={"status": "pending"})
    assert r.json()["data"]["pagination"]["total"] == 1

    r = await client.get(
        "/api/admin/creators",
        headers=admin_headers,
        params={"search": "luna", "sortBy": "displayName", "sortOrder": "asc"},
    )
    assert [c["displayName"] for c in r.json()["data"]["creators"]] == ["Luna Gold"]


@pytest.mark.asyncio
async def test_bulk_approve_and_suspend(client, db, admin_headers):
    pending = await create_creator(db, status="pending")
    active = await create_creator(db)
    link = await create_link(db, active)
    await db.commit()

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "approve", "creatorIds": [str(pending.id), str(active.id)]},
    )
    assert r.status_code == 200
    assert r.json()["data"] == {"modifiedCount": 1, "message": "Approved 1 creators"}

    await db.refresh(pending)
    assert pending.status == "approved"
    assert pending.approved_at is not None

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "suspend", "creatorIds": [str(active.id)], "updates": {"reason": "Chargebacks"}},
    )
    assert r.json()["data"]["modifiedCount"] == 1

    await db.refresh(active)
    await db.refresh(link)
    assert active.status == "suspended"
    assert active.notes == "Chargebacks"
    assert link.is_active is False

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "reactivate", "creatorIds": [str(active.id)]},
    )
    assert r.json()["data"]["modifiedCount"] == 1
    await db.refresh(link)
    assert link.is_active is True


@pytest.mark.asyncio
async def test_bulk_validation(client, db, admin_headers):
    creator = await create_creator(db)
    await db.commit()
    ids = [str(creator.id)]

    r = await client.put("/api/admin/creators", headers=admin_headers, json={"action": "approve", "creatorIds": []})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_INPUT"

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "update-commission-rate", "creatorIds": ids, "updates": {"commissionRate": 75}},
    )
    assert r.status_code == 400
    assert r.json()["error"]["message"] == "Invalid commission rate"

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "update-commission-rate", "creatorIds": ids, "updates": {"commissionRate": 14.5}},
    )
    assert r.json()["data"]["modifiedCount"] == 1
    await db.refresh(creator)
    assert creator.commission_rate == Decimal("14.50")

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "update-minimum-payout", "creatorIds": ids, "updates": {"minimumPayout": 5}},
    )
    assert r.status_code == 400

    r = await client.put("/api/admin/creators", headers=admin_headers, json={"action": "promote", "creatorIds": ids})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_ACTION"


@pytest.mark.asyncio
async def test_export(client, db, admin_headers):
    creator = await create_creator(db, display_name="Export Me")
    await db.commit()

    r = await client.put(
        "/api/admin/creators",
        headers=admin_headers,
        json={"action": "export", "creatorIds": [str(creator.id)]},
    )
    data = r.json()["data"]
    assert data["format"] == "csv"
    assert data["filename"].startswith("creators-export-")
    assert data["exportData"][0]["creatorCode"] == creator.creator_code


@pytest.mark.asyncio
async def test_creator_detail(client, db, admin_headers):
    creator = await create_creator(db)
    await create_link(db, creator, code="detaillink01", click_count=4, conversion_count=1)
    await create_commission(db, creator, amount="10.00", status="pending")
    await create_commission(db, creator, amount="20.00", status="approved")
    await create_commission(db, creator, amount="5.00", status="paid")
    await db.commit()

    await client.get("/r/detaillink01", headers={"x-forwarded-for": "203.0.113.9"}, follow_redirects=False)

    r = await client.get(f"/api/admin/creators/{creator.id}", headers=admin_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    summary = data["summary"]
    assert summary["totalLinks"] == 1
    assert summary["activeLinks"] == 1
    assert summary["totalClicks"] == 5
    assert summary["totalConversions"] == 1
    assert summary["conversionRate"] == 20.0
    assert summary["commissionBreakdown"]["pending"] == {"count": 1, "total": 10.0}
    assert summary["totalEarnings"] == 5.0
    assert summary["pendingEarnings"] == 20.0
    assert len(data["transactions"]) == 3
    assert data["recentClicks"][0]["ipAddress"] == "203.0.113.***"
    assert data["performance30Days"][0]["clicks"] == 1


@pytest.mark.asyncio
async def test_single_creator_actions(client, db, admin_headers):
    creator = await create_creator(db, status="pending")
    link = await create_link(db, creator)
    await db.commit()
    url = f"/api/admin/creators/{creator.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "update-profile", "updates": {"displayName": "Luna G.", "commissionRate": 12}})
    assert r.status_code == 200
    assert r.json()["data"]["creator"]["displayName"] == "Luna G."
    assert r.json()["data"]["creator"]["commissionRate"] == 12.0

    r = await client.put(url, headers=admin_headers, json={"action": "update-profile", "updates": {"commissionRate": 80}})
    assert r.status_code == 400
    assert r.json()["error"]["message"].startswith("commissionRate")

    r = await client.put(url, headers=admin_headers, json={"action": "update-status", "updates": {"status": "approved"}})
    assert r.json()["data"]["creator"]["approvedAt"] is not None

    r = await client.put(url, headers=admin_headers, json={"action": "update-status", "updates": {"status": "suspended", "reason": "Fraud review"}})
    assert r.json()["data"]["creator"]["status"] == "suspended"
    await db.refresh(link)
    assert link.is_active is False

    r = await client.put(url, headers=admin_headers, json={"action": "add-note", "updates": {"note": "Called the creator"}})
    notes = r.json()["data"]["creator"]["notes"]
    assert notes.startswith("Fraud review\n")
    assert notes.endswith("admin@glowglitch.io: Called the creator")

    r = await client.put(url, headers=admin_headers, json={"action": "add-note", "updates": {"note": "  "}})
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_trigger_payout_and_refresh_metrics(client, db, admin_headers):
    creator = await create_creator(db)
    await create_commission(db, creator, amount="40.00", status="approved")
    await create_commission(db, creator, amount="25.00", status="approved")
    await db.commit()
    url = f"/api/admin/creators/{creator.id}"

    r = await client.put(url, headers=admin_headers, json={"action": "refresh-metrics"})
    assert r.status_code == 200
    assert r.json()["data"]["creator"]["totalSales"] == 2
    assert r.json()["data"]["creator"]["totalCommission"] == 65.0

    r = await client.put(url, headers=admin_headers, json={"action": "trigger-payout"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["amount"] == 65.0

    payout = (await db.execute(select(CreatorPayout).where(CreatorPayout.creator_id == creator.id))).scalar_one()
    assert payout.status == "completed"
    assert str(payout.id) == data["payoutId"]

    r = await client.put(url, headers=admin_headers, json={"action": "trigger-payout"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "PAYOUT_NOT_ELIGIBLE"
