# tests/test_auth_and_envelope.py
from __future__ import annotations

import uuid

import pytest
from jose import jwt
from sqlalchemy import select

from glowglitch.core.config import settings
from glowglitch.core.pagination import PageParams
from glowglitch.core.security import create_access_token
from glowglitch.models.marketing import EmailEvent
from glowglitch.models.user import ROLE_ADMIN
from glowglitch.services import email as email_service

from factories import auth_headers, create_creator, create_user


@pytest.mark.asyncio
async def test_magic_code_login_flow(client):
    r = await client.post("/api/auth/request-code", json={"email": "  Nova@GlowGlitch.io "})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["meta"]["version"] == "1.0.0"
    code = body["data"]["code"]
    assert len(code) == 6

    r = await client.post("/api/auth/verify-code", json={"email": "nova@glowglitch.io", "code": code})
    assert r.status_code == 200
    token = r.json()["data"]["access_token"]

    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    me = r.json()["data"]
    assert me["email"] == "nova@glowglitch.io"
    assert me["role"] == "CUSTOMER"
    assert me["creator_id"] is None


class _Outbox:
    def __init__(self):
        self.messages = []

    async def deliver(self, message):
        self.messages.append(message)


@pytest.mark.asyncio
async def test_magic_code_is_emailed_not_echoed_in_production(client, db, monkeypatch):
    outbox = _Outbox()
    monkeypatch.setattr(email_service, "transport", outbox)
    monkeypatch.setattr(settings, "ENVIRONMENT", "production")

    r = await client.post("/api/auth/request-code", json={"email": "prod@glowglitch.io"})
    assert r.status_code == 200
    assert "code" not in r.json()["data"]

    assert len(outbox.messages) == 1
    message = outbox.messages[0]
    assert message.to == "prod@glowglitch.io"
    assert message.subject == email_service.LOGIN_CODE_SUBJECT
    code = message.html.split("<strong>")[1].split("</strong>")[0]
    assert len(code) == 6

    event = (await db.execute(select(EmailEvent).where(EmailEvent.recipient_email == "prod@glowglitch.io"))).scalar_one()
    assert event.source == "transactional"
    assert code not in str(event.event_metadata)

    r = await client.post("/api/auth/verify-code", json={"email": "prod@glowglitch.io", "code": code})
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_magic_code_is_single_use(client):
    r = await client.post("/api/auth/request-code", json={"email": "once@glowglitch.io"})
    code = r.json()["data"]["code"]

    r = await client.post("/api/auth/verify-code", json={"email": "once@glowglitch.io", "code": code})
    assert r.status_code == 200

    r = await client.post("/api/auth/verify-code", json={"email": "once@glowglitch.io", "code": code})
    assert r.status_code == 401
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"
    assert "requestId" in body["meta"]


@pytest.mark.asyncio
async def test_wrong_code_rejected(client):
    await client.post("/api/auth/request-code", json={"email": "wrong@glowglitch.io"})
    r = await client.post("/api/auth/verify-code", json={"email": "wrong@glowglitch.io", "code": "000000"})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "Invalid code"


@pytest.mark.asyncio
async def test_me_reports_creator_profile(client, db):
    owner = await create_user(db, role="CREATOR")
    creator = await create_creator(db, status="pending", user=owner)
    await db.commit()

    r = await client.get("/api/auth/me", headers=auth_headers(owner))
    assert r.status_code == 200
    me = r.json()["data"]
    assert me["creator_id"] == str(creator.id)
    assert me["creator_status"] == "pending"


@pytest.mark.asyncio
async def test_validation_error_envelope(client):
    r = await client.post("/api/auth/request-code", json={"email": "not-an-email"})
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["message"].startswith("email")


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    r = await client.get("/api/admin/creators")
    assert r.status_code in (401, 403)
    assert r.json()["error"]["code"] in ("UNAUTHORIZED", "FORBIDDEN")


@pytest.mark.asyncio
async def test_garbage_and_unknown_subject_tokens(client):
    r = await client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401

    token = create_access_token(str(uuid.uuid4()))
    r = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401
    assert r.json()["error"]["message"] == "User not found"


@pytest.mark.asyncio
async def test_non_admin_gets_forbidden(client, db):
    user = await create_user(db)
    await db.commit()

    r = await client.get("/api/admin/creators", headers=auth_headers(user))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_role_comes_from_the_database_not_the_token(client, db):
    user = await create_user(db)
    await db.commit()
    headers = auth_headers(user)

    claims = jwt.get_unverified_claims(headers["Authorization"].split(" ", 1)[1])
    assert set(claims) == {"sub", "exp", "iat"}

    r = await client.get("/api/admin/creators", headers=headers)
    assert r.status_code == 403

    user.role = ROLE_ADMIN
    await db.commit()

    r = await client.get("/api/admin/creators", headers=headers)
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_not_found_uses_domain_code(client, admin_headers):
    r = await client.get(f"/api/admin/creators/{uuid.uuid4()}", headers=admin_headers)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "CREATOR_NOT_FOUND"


@pytest.mark.asyncio
async def test_health_check(client):
    r = await client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_pagination_describe():
    page = PageParams(page=2, limit=10).describe(25).model_dump(by_alias=True)
    assert page == {
        "page": 2,
        "limit": 10,
        "total": 25,
        "totalPages": 3,
        "hasNextPage": True,
        "hasPrevPage": True,
    }

    empty = PageParams(page=1, limit=20).describe(0)
    assert empty.total_pages == 0
    assert empty.has_next_page is False
    assert empty.has_prev_page is False
