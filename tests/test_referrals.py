# tests/test_referrals.py
from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal

import pytest

from glowglitch.core.clock import utcnow
from glowglitch.models.referral import ReferralClick
from glowglitch.models.user import ROLE_CREATOR
from glowglitch.services.referrals import build_target_url, detect_device, mask_ip

from factories import auth_headers, create_creator, create_link, create_order, create_user


async def _creator_with_headers(db, status="approved", **fields):
    owner = await create_user(db, role=ROLE_CREATOR)
    creator = await create_creator(db, status=status, user=owner, **fields)
    await db.commit()
    return creator, auth_headers(owner)


def test_build_target_url_merges_query_and_ref():
    url = build_target_url(
        "https://glowglitch.com/products/aurora-ring?size=7",
        "LUNA1234",
        {"source": "instagram", "medium": None},
    )
    assert url.startswith("https://glowglitch.com/products/aurora-ring?")
    assert "size=7" in url
    assert "utm_source=instagram" in url
    assert "utm_medium" not in url
    assert url.endswith("ref=LUNA1234")


def test_device_detection_and_ip_masking():
    assert detect_device("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0) Mobile") == "mobile"
    assert detect_device("Mozilla/5.0 (iPad; CPU OS 17_0)") == "tablet"
    assert detect_device("Mozilla/5.0 (X11; Linux x86_64)") == "desktop"
    assert mask_ip("203.0.113.42") == "203.0.113.***"
    assert mask_ip("2001:db8:85a3::8a2e:370:7334") == "2001:db8:85a3::8a2e:370:***"
    assert mask_ip("2001:db8::1") == "2001:db8::***"
    assert mask_ip("::ffff:198.51.100.7") == "198.51.100.***"
    assert "7334" not in mask_ip("2001:DB8:85A3:0:0:8A2E:370:7334")


@pytest.mark.asyncio
async def test_create_link_and_alias_conflict(client, db):
    creator, headers = await _creator_with_headers(db)

    r = await client.post(
        "/api/creators/links",
        headers=headers,
        json={"targetUrl": "/products/aurora-ring", "title": "Aurora", "customAlias": "luna-aurora", "utm": {"source": "tiktok"}},
    )
    assert r.status_code == 201
    link = r.json()["data"]["link"]
    assert link["customAlias"] == "luna-aurora"
    assert link["shortUrl"].endswith("/luna-aurora")
    assert f"ref={creator.creator_code}" in link["originalUrl"]
    assert "utm_source=tiktok" in link["originalUrl"]
    assert link["utm"] == {"source": "tiktok"}
    assert len(link["linkCode"]) == 12

    r = await client.post(
        "/api/creators/links",
        headers=headers,
        json={"targetUrl": "/products/aurora-ring", "customAlias": "luna-aurora"},
    )
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "ALIAS_TAKEN"

    r = await client.post(
        "/api/creators/links",
        headers=headers,
        json={"targetUrl": "/products/aurora-ring", "customAlias": "no spaces!"},
    )
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_pending_creator_cannot_create_links(client, db):
    _, headers = await _creator_with_headers(db, status="pending")
    r = await client.post("/api/creators/links", headers=headers, json={"targetUrl": "/products/aurora-ring"})
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_redirect_records_click_and_sets_cookies(client, db):
    creator = await create_creator(db)
    link = await create_link(db, creator, code="glowclick123")
    await db.commit()

    r = await client.get(
        "/r/glowclick123",
        params={"utm_campaign": "spring"},
        headers={"user-agent": "Mozilla/5.0 (iPhone) Mobile", "x-forwarded-for": "198.51.100.7"},
        follow_redirects=False,
    )
    assert r.status_code == 307
    assert r.headers["location"] == link.original_url
    assert "gg_ref_click" in r.cookies
    assert "gg_session" in r.cookies

    # same visitor again: counted, but not unique
    await client.get(
        "/r/glowclick123",
        headers={"x-forwarded-for": "198.51.100.7"},
        follow_redirects=False,
    )

    await db.refresh(link)
    await db.refresh(creator)
    assert link.click_count == 2
    assert link.unique_click_count == 1
    assert link.last_clicked_at is not None
    assert creator.total_clicks == 2

    click = await db.get(ReferralClick, uuid.UUID(r.cookies["gg_ref_click"]))
    assert click.device_type == "mobile"
    assert click.utm_campaign == "spring"


@pytest.mark.asyncio
async def test_redirect_unknown_or_inactive_link(client, db):
    creator = await create_creator(db)
    await create_link(db, creator, code="sleepinglink", is_active=False)
    await db.commit()

    r = await client.get("/r/sleepinglink", follow_redirects=False)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "LINK_NOT_FOUND"

    r = await client.get("/r/nope", follow_redirects=False)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_redirect_expired_link(client, db):
    creator = await create_creator(db)
    await create_link(db, creator, code="pastitsdate", expires_at=utcnow() - timedelta(minutes=1))
    await create_link(db, creator, code="stillgood01", expires_at=utcnow() + timedelta(days=1))
    await db.commit()

    r = await client.get("/r/pastitsdate", follow_redirects=False)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "LINK_NOT_FOUND"
    assert r.json()["error"]["message"] == "Referral link has expired"

    r = await client.get("/r/stillgood01", follow_redirects=False)
    assert r.status_code == 307


@pytest.mark.asyncio
async def test_conversion_books_commission_once(client, db, admin_headers):
    creator = await create_creator(db)
    link = await create_link(db, creator, code="convertme001")
    order = await create_order(db, total="250.00")
    await db.commit()

    r = await client.get("/r/convertme001", follow_redirects=False)
    click_id = r.cookies["gg_ref_click"]

    r = await client.post(
        "/api/referrals/conversions",
        headers=admin_headers,
        json={"orderId": str(order.id), "clickId": click_id},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["created"] is True
    assert data["calculation"]["isEligible"] is True
    tx = data["transaction"]
    assert tx["commissionAmount"] == 25.0
    assert tx["status"] == "pending"
    assert tx["type"] == "sale"
    assert tx["clickId"] == click_id

    await db.refresh(link)
    assert link.conversion_count == 1
    click = await db.get(ReferralClick, uuid.UUID(click_id))
    assert click.converted is True
    assert click.conversion_value == Decimal("250.00")

    r = await client.post(
        "/api/referrals/conversions",
        headers=admin_headers,
        json={"orderId": str(order.id), "linkCode": "convertme001"},
    )
    again = r.json()["data"]
    assert again["created"] is False
    assert again["calculation"] is None
    assert again["transaction"]["id"] == tx["id"]


@pytest.mark.asyncio
async def test_conversion_below_minimum_is_not_booked(client, db, admin_headers):
    creator = await create_creator(db)
    await create_link(db, creator, code="tinyorder001")
    order = await create_order(db, total="9.50")
    await db.commit()

    r = await client.post(
        "/api/referrals/conversions",
        headers=admin_headers,
        json={"orderId": str(order.id), "linkCode": "tinyorder001"},
    )
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["transaction"] is None
    assert data["created"] is False
    assert data["calculation"]["isEligible"] is False


@pytest.mark.asyncio
async def test_conversion_requires_a_source(client, db, admin_headers):
    order = await create_order(db)
    await db.commit()

    r = await client.post("/api/referrals/conversions", headers=admin_headers, json={"orderId": str(order.id)})
    assert r.status_code == 400

    r = await client.post(
        "/api/referrals/conversions",
        headers=admin_headers,
        json={"orderId": str(order.id), "clickId": str(uuid.uuid4())},
    )
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "CLICK_NOT_FOUND"


@pytest.mark.asyncio
async def test_links_are_private_to_their_creator(client, db):
    owner_creator = await create_creator(db)
    link = await create_link(db, owner_creator)
    _, other_headers = await _creator_with_headers(db)

    r = await client.put(f"/api/creators/links/{link.id}", headers=other_headers, json={"isActive": False})
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "LINK_NOT_FOUND"
