# glowglitch/api/v1/referrals.py
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.user import User
from glowglitch.schemas.commissions import TransactionOut
from glowglitch.schemas.referrals import ConversionRequest
from glowglitch.services.referrals import record_click, record_conversion, resolve_link

CLICK_COOKIE = "gg_ref_click"
SESSION_COOKIE = "gg_session"
CLICK_COOKIE_MAX_AGE = 30 * 24 * 60 * 60

# Public short links live outside /api.
redirect_router = APIRouter(tags=["referrals"])
router = APIRouter(prefix="/referrals", tags=["referrals"])


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


@redirect_router.get("/r/{code}")
async def follow_link(code: str, request: Request, db: AsyncSession = Depends(get_db)):
    link = await resolve_link(db, code)

    session_id = request.cookies.get(SESSION_COOKIE) or uuid.uuid4().hex
    click = await record_click(
        db,
        link,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        session_id=session_id,
        referrer=request.headers.get("referer"),
        utm={
            "source": request.query_params.get("utm_source"),
            "medium": request.query_params.get("utm_medium"),
            "campaign": request.query_params.get("utm_campaign"),
            "term": request.query_params.get("utm_term"),
            "content": request.query_params.get("utm_content"),
        },
    )
    await db.commit()

    response = RedirectResponse(link.original_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
    response.set_cookie(CLICK_COOKIE, str(click.id), max_age=CLICK_COOKIE_MAX_AGE, httponly=True, samesite="lax")
    response.set_cookie(SESSION_COOKIE, session_id, max_age=CLICK_COOKIE_MAX_AGE, httponly=True, samesite="lax")
    return response


@router.post("/conversions")
async def attribute_conversion(
    payload: ConversionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Server-to-server: attribute a placed order to a referral click."""
    result = await record_conversion(
        db,
        order_id=payload.order_id,
        click_id=payload.click_id,
        link_code=payload.link_code,
        custom_rate=payload.custom_rate,
    )
    await db.commit()

    calculation = result["calculation"]
    tx = result["transaction"]
    return ok(
        {
            "transaction": TransactionOut.model_validate(tx) if tx is not None else None,
            "created": result["created"],
            "calculation": (
                {
                    "rate": float(calculation.rate),
                    "amount": float(calculation.amount),
                    "isEligible": calculation.is_eligible,
                    "reason": calculation.reason,
                }
                if calculation is not None
                else None
            ),
        }
    )
