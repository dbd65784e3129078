# tests/test_creators.py
from __future__ import annotations

import pytest

from glowglitch.models.user import ROLE_CREATOR

from factories import auth_headers, create_commission, create_creator, create_link, create_user


@pytest.mark.asyncio
async def test_apply_creates_pending_profile(client, db):
    user = await create_user(db)
    await db.commit()
    headers = auth_headers(user)

    r = await client.post(
        "/api/creators/apply",
        headers=headers,
        json={
            "displayName": "  Nova   Sparkle ",
            "bio": "Layered necklaces and late-night unboxings",
            "paymentMethod": "paypal",
            "paymentDetails": {"email": "nova.payouts@glowglitch.io"},
        },
    )
    assert r.status_code == 201
    creator = r.json()["data"]["creator"]
    assert creator["displayName"] == "Nova Sparkle"
    assert creator["status"] == "pending"
    assert creator["commissionRate"] == 10.0
    assert creator["paymentDetails"].startswith("***")
    assert "nova.payouts" not in creator["paymentDetails"]
    assert len(creator["creatorCode"]) == 8

    await db.refresh(user)
    assert user.role == ROLE_CREATOR

    r = await client.post("/api/creators/apply", headers=headers, json={"displayName": "Nova Again"})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "CREATOR_EXISTS"


@pytest.mark.asyncio
async def test_profile_requires_creator(client, db):
    user = await create_user(db)
    await db.commit()

    r = await client.get("/api/creators/me", headers=auth_headers(user))
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_suspended_creator_is_locked_out(client, db):
    owner = await create_user(db, role=ROLE_CREATOR)
    await create_creator(db, status="suspended", user=owner)
    await db.commit()

    r = await client.get("/api/creators/me", headers=auth_headers(owner))
    assert r.status_code == 403
    assert "suspended" in r.json()["error"]["message"]


@pytest.mark.asyncio
async def test_conversion_stats(client, db):
    owner = await create_user(db, role=ROLE_CREATOR)
    creator = await create_creator(db, user=owner)
    await create_link(db, creator, code="statslink001")
    await create_link(db, creator, code="statslink002", is_active=False)
    await create_commission(db, creator, amount="12.00", status="approved")
    await create_commission(db, creator, amount="8.00", status="pending")
    await db.commit()

    await client.get("/r/statslink001", follow_redirects=False)
    await client.get("/r/statslink001", follow_redirects=False)

    r = await client.get("/api/creators/conversions", headers=auth_headers(owner), params={"period": 7})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["period"] == 7
    assert data["totals"]["clicks"] == 2
    assert data["totals"]["conversions"] == 0
    assert data["totals"]["conversionRate"] == 0
    assert data["totals"]["activeLinks"] == 1
    assert data["commissions"]["approved"] == {"count": 1, "total": 12.0}
    assert data["commissions"]["pending"] == {"count": 1, "total": 8.0}
    assert len(data["daily"]) == 8
    assert sum(day["clicks"] for day in data["daily"]) == 2
    assert sum(day["commission"] for day in data["daily"]) == 20.0
    assert data["topLinks"][0]["linkCode"] == "statslink001"


@pytest.mark.asyncio
async def test_link_listing_filters(client, db):
    owner = await create_user(db, role=ROLE_CREATOR)
    creator = await create_creator(db, user=owner)
    await create_link(db, creator, code="listlink0001", title="Aurora Ring")
    await create_link(db, creator, code="listlink0002", title="Halo Hoops", is_active=False)
    await create_link(db, await create_creator(db), code="otherlink001")
    await db.commit()

    headers = auth_headers(owner)
    r = await client.get("/api/creators/links", headers=headers)
    assert r.json()["data"]["pagination"]["total"] == 2

    r = await client.get("/api/creators/links", headers=headers, params={"status": "inactive"})
    links = r.json()["data"]["links"]
    assert [link["linkCode"] for link in links] == ["listlink0002"]

    r = await client.get("/api/creators/links", headers=headers, params={"search": "aurora"})
    assert [link["title"] for link in r.json()["data"]["links"]] == ["Aurora Ring"]
