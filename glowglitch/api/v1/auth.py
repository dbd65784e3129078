# glowglitch/api/v1/auth.py
from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.core.config import settings
from glowglitch.core.errors import APIError
from glowglitch.core.responses import ok
from glowglitch.core.security import bearer_scheme, create_access_token, decode_access_token
from glowglitch.crud.creators import get_creator_by_user
from glowglitch.db.session import get_db
from glowglitch.models.user import User
from glowglitch.schemas.auth import MagicCodeRequest, MagicCodeVerify, MeResponse, TokenResponse
from glowglitch.services.email import EmailDeliveryError, send_login_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

MAGIC_CODE_EXPIRY_MINUTES = 10


def _should_return_magic_code_in_response() -> bool:
    """Never echo the code in production, whatever the flag says."""
    if settings.is_production:
        return False
    return settings.RETURN_MAGIC_CODE_IN_RESPONSE


async def purge_expired_magic_codes(db: AsyncSession) -> None:
    stmt = (
        update(User)
        .where(User.magic_code_expires_at.is_not(None))
        .where(User.magic_code_expires_at < utcnow())
        .values(magic_code=None, magic_code_expires_at=None)
    )
    await db.execute(stmt)


@router.post("/request-code")
async def request_code(payload: MagicCodeRequest, db: AsyncSession = Depends(get_db)):
    """
    Body: {"email": "user@example.com"}
    Generates a magic code (stored on user record) and emails it. Unknown
    emails get a customer account.
    """
    email = User.normalize_email(payload.email)

    await purge_expired_magic_codes(db)

    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if user is None:
        user = User(email=email, is_active=True)
        db.add(user)
        await db.flush()

    code = str(secrets.randbelow(900000) + 100000)  # 6 digits
    user.magic_code = code
    user.magic_code_expires_at = utcnow() + timedelta(minutes=MAGIC_CODE_EXPIRY_MINUTES)

    try:
        await send_login_code(
            db,
            to=user.email,
            code=code,
            expires_in_minutes=MAGIC_CODE_EXPIRY_MINUTES,
            recipient_id=user.id,
        )
    except EmailDeliveryError:
        logger.exception("Could not email sign-in code to user %s", user.id)
        raise APIError("EMAIL_DELIVERY_FAILED", "Could not send sign-in code", status.HTTP_502_BAD_GATEWAY)

    await db.commit()

    data = {"status": "ok", "expiresInMinutes": MAGIC_CODE_EXPIRY_MINUTES}
    if _should_return_magic_code_in_response():
        data["code"] = code
    return ok(data)


@router.post("/verify-code")
async def verify_code(payload: MagicCodeVerify, db: AsyncSession = Depends(get_db)):
    """
    Body: {"email":"user@example.com","code":"123456"}
    Returns: access_token
    """
    email = User.normalize_email(payload.email)
    code = payload.code.strip()

    await purge_expired_magic_codes(db)

    user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()

    if not user or not user.magic_code or not user.magic_code_expires_at:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if not secrets.compare_digest(user.magic_code, code):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid code")

    if user.magic_code_expires_at < utcnow():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Code expired")

    # One-time use; a successful login also proves the mailbox
    user.magic_code = None
    user.magic_code_expires_at = None
    user.email_verified = True
    await db.commit()

    token = create_access_token(subject=str(user.id))
    logger.info("User %s signed in", user.id)
    return ok(TokenResponse(access_token=token))


async def get_current_user(
    credentials=Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency for protected endpoints.
    """
    user_id = decode_access_token(credentials.credentials)

    try:
        user_uuid = uuid.UUID(str(user_id))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token subject")

    user = await db.get(User, user_uuid)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User inactive")

    return user


@router.get("/me")
async def me(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    creator = await get_creator_by_user(db, user.id)
    return ok(
        MeResponse(
            id=str(user.id),
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            full_name=user.full_name,
            creator_id=str(creator.id) if creator else None,
            creator_status=creator.status if creator else None,
        )
    )
