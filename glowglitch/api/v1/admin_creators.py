# glowglitch/api/v1/admin_creators.py
from __future__ import annotations

import logging
import uuid
from collections import Counter
from datetime import timedelta
from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import ValidationError
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.clock import utcnow
from glowglitch.core.commission import refresh_creator_metrics, to_cents
from glowglitch.core.errors import APIError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.payouts import check_payout_eligibility, process_payout_request, raise_for_failed_payout
from glowglitch.core.responses import ok
from glowglitch.crud.creators import (
    get_creator_or_404,
    sales_last_30_days,
    set_links_active,
    tier_for_sales,
)
from glowglitch.db.session import get_db
from glowglitch.models.commission import CommissionTransaction, CreatorPayout
from glowglitch.models.creator import Creator
from glowglitch.models.referral import ReferralClick, ReferralLink
from glowglitch.models.user import User
from glowglitch.schemas.commissions import TransactionOut
from glowglitch.schemas.creators import (
    CreatorActionRequest,
    CreatorBulkRequest,
    CreatorOut,
    CreatorProfileUpdate,
    CreatorStatus,
    CreatorStatusUpdate,
)
from glowglitch.schemas.payouts import PayoutOut
from glowglitch.schemas.referrals import ClickOut, LinkOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/creators", tags=["admin-creators"])

SORT_COLUMNS = {
    "createdAt": Creator.created_at,
    "displayName": Creator.display_name,
    "commissionRate": Creator.commission_rate,
    "totalSales": Creator.total_sales,
}

DETAIL_LINKS_LIMIT = 50
DETAIL_CLICKS_LIMIT = 100
DETAIL_TRANSACTIONS_LIMIT = 50
DETAIL_PAYOUTS_LIMIT = 20


def _money(value) -> float:
    return float(to_cents(Decimal(value or 0)))


def _validated(model, data: dict):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors(include_url=False, include_context=False)[0]
        field = ".".join(str(p) for p in first["loc"])
        raise APIError(
            "INVALID_INPUT",
            f"{field}: {first['msg']}" if field else first["msg"],
            details=exc.errors(include_url=False, include_context=False, include_input=False),
        )


def _decimal_from(updates: dict, key: str) -> Optional[Decimal]:
    raw = updates.get(key)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return Decimal(str(raw))
    except ArithmeticError:
        return None


# -----------------------------
# List + bulk
# -----------------------------
@router.get("")
async def list_creators(
    status_filter: Optional[CreatorStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=200),
    tier: Optional[Literal["bronze", "silver", "gold", "platinum"]] = None,
    sort_by: Literal["createdAt", "displayName", "commissionRate", "totalSales"] = Query("createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    filters = []
    if status_filter is not None:
        filters.append(Creator.status == status_filter)
    if search:
        term = f"%{search.strip()}%"
        filters.append(
            or_(Creator.display_name.ilike(term), Creator.email.ilike(term), Creator.creator_code.ilike(term))
        )

    sales = await sales_last_30_days(db)
    if tier is not None:
        if tier == "bronze":
            # creators without any recent sales are bronze too
            others = [cid for cid, total in sales.items() if tier_for_sales(total) != "bronze"]
            if others:
                filters.append(Creator.id.not_in(others))
        else:
            filters.append(Creator.id.in_([cid for cid, total in sales.items() if tier_for_sales(total) == tier]))

    column = SORT_COLUMNS[sort_by]
    order = column.asc() if sort_order == "asc" else column.desc()

    total = (await db.execute(select(func.count()).select_from(Creator).where(*filters))).scalar_one()
    creators = (
        await db.execute(
            select(Creator).where(*filters).order_by(order, Creator.id).offset(paging.offset).limit(paging.limit)
        )
    ).scalars().all()
    ids = [c.id for c in creators]

    link_stats = {}
    commission_stats = {}
    payout_stats = {}
    if ids:
        for creator_id, links, clicks, conversions in (
            await db.execute(
                select(
                    ReferralLink.creator_id,
                    func.count(ReferralLink.id),
                    func.coalesce(func.sum(ReferralLink.click_count), 0),
                    func.coalesce(func.sum(ReferralLink.conversion_count), 0),
                )
                .where(ReferralLink.creator_id.in_(ids))
                .group_by(ReferralLink.creator_id)
            )
        ).all():
            link_stats[creator_id] = {
                "totalLinks": int(links),
                "totalClicks": int(clicks or 0),
                "totalConversions": int(conversions or 0),
            }

        def _sum_status(name: str):
            return func.coalesce(
                func.sum(case((CommissionTransaction.status == name, CommissionTransaction.commission_amount), else_=0)),
                0,
            )

        for creator_id, pending, approved, paid, overall in (
            await db.execute(
                select(
                    CommissionTransaction.creator_id,
                    _sum_status("pending"),
                    _sum_status("approved"),
                    _sum_status("paid"),
                    func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
                )
                .where(CommissionTransaction.creator_id.in_(ids))
                .group_by(CommissionTransaction.creator_id)
            )
        ).all():
            commission_stats[creator_id] = {
                "pendingCommissions": _money(pending),
                "approvedCommissions": _money(approved),
                "paidCommissions": _money(paid),
                "totalCommissions": _money(overall),
            }

        for creator_id, paid_out, last_date in (
            await db.execute(
                select(
                    CreatorPayout.creator_id,
                    func.coalesce(func.sum(CreatorPayout.amount), 0),
                    func.max(CreatorPayout.payout_date),
                )
                .where(CreatorPayout.creator_id.in_(ids), CreatorPayout.status == "completed")
                .group_by(CreatorPayout.creator_id)
            )
        ).all():
            payout_stats[creator_id] = {"totalPayouts": _money(paid_out), "lastPayoutDate": last_date}

    enriched = []
    for creator in creators:
        stats = {
            "totalLinks": 0,
            "totalClicks": 0,
            "totalConversions": 0,
            "pendingCommissions": 0.0,
            "approvedCommissions": 0.0,
            "paidCommissions": 0.0,
            "totalCommissions": 0.0,
            "totalPayouts": 0.0,
            "lastPayoutDate": None,
        }
        stats.update(link_stats.get(creator.id, {}))
        stats.update(commission_stats.get(creator.id, {}))
        stats.update(payout_stats.get(creator.id, {}))
        monthly = sales.get(creator.id, Decimal("0"))
        enriched.append(
            {
                **CreatorOut.model_validate(creator).model_dump(mode="json", by_alias=True),
                "tier": tier_for_sales(monthly),
                "monthlySales": _money(monthly),
                "stats": stats,
            }
        )

    distribution = dict(
        (await db.execute(select(Creator.status, func.count(Creator.id)).group_by(Creator.status))).all()
    )

    return ok(
        {
            "creators": enriched,
            "metrics": {
                "statusDistribution": distribution,
                "totalCreators": total,
                "pendingApplications": distribution.get("pending", 0),
                "activeCreators": distribution.get("approved", 0),
            },
            "pagination": paging.describe(total),
        }
    )


@router.put("")
async def bulk_update(
    payload: CreatorBulkRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if not payload.action or not payload.creator_ids:
        raise APIError("INVALID_INPUT", "Action and creator IDs are required")

    ids = list(dict.fromkeys(payload.creator_ids))
    now = utcnow()
    action = payload.action

    if action == "approve":
        result = await db.execute(
            update(Creator)
            .where(Creator.id.in_(ids), Creator.status == "pending")
            .values(status="approved", approved_at=now, updated_at=now)
        )
        message = "Approved {} creators"
    elif action == "suspend":
        result = await db.execute(
            update(Creator)
            .where(Creator.id.in_(ids), Creator.status != "suspended")
            .values(
                status="suspended",
                suspended_at=now,
                notes=payload.updates.get("reason") or "Suspended by admin",
                updated_at=now,
            )
        )
        await set_links_active(db, ids, False)
        message = "Suspended {} creators"
    elif action == "reactivate":
        result = await db.execute(
            update(Creator)
            .where(Creator.id.in_(ids), Creator.status == "suspended")
            .values(status="approved", suspended_at=None, notes="Reactivated by admin", updated_at=now)
        )
        await set_links_active(db, ids, True)
        message = "Reactivated {} creators"
    elif action == "update-commission-rate":
        rate = _decimal_from(payload.updates, "commissionRate")
        if rate is None or rate <= 0 or rate > 50:
            raise APIError("INVALID_INPUT", "Invalid commission rate")
        result = await db.execute(
            update(Creator).where(Creator.id.in_(ids)).values(commission_rate=rate, updated_at=now)
        )
        message = "Updated commission rate for {} creators"
    elif action == "update-minimum-payout":
        minimum = _decimal_from(payload.updates, "minimumPayout")
        if minimum is None or minimum < 10:
            raise APIError("INVALID_INPUT", "Invalid minimum payout")
        result = await db.execute(
            update(Creator).where(Creator.id.in_(ids)).values(minimum_payout=minimum, updated_at=now)
        )
        message = "Updated minimum payout for {} creators"
    elif action == "export":
        creators = (await db.execute(select(Creator).where(Creator.id.in_(ids)))).scalars().all()
        return ok(
            {
                "exportData": [
                    {
                        "creatorCode": c.creator_code,
                        "displayName": c.display_name,
                        "email": c.email,
                        "status": c.status,
                        "commissionRate": float(c.commission_rate),
                        "totalClicks": c.total_clicks,
                        "totalSales": c.total_sales,
                        "totalCommission": float(c.total_commission),
                        "conversionRate": float(c.conversion_rate),
                        "createdAt": c.created_at,
                        "approvedAt": c.approved_at,
                    }
                    for c in creators
                ],
                "format": "csv",
                "filename": f"creators-export-{now.date().isoformat()}.csv",
            }
        )
    else:
        raise APIError("INVALID_ACTION", "Invalid action")

    await db.commit()
    modified = int(result.rowcount or 0)
    logger.info("Admin %s bulk %s: %s creator(s) modified", admin.email, action, modified)
    return ok({"modifiedCount": modified, "message": message.format(modified)})


# -----------------------------
# Detail + actions
# -----------------------------
@router.get("/{creator_id}")
async def creator_detail(
    creator_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    creator = await get_creator_or_404(db, creator_id)
    since = utcnow() - timedelta(days=30)

    links = (
        await db.execute(
            select(ReferralLink)
            .where(ReferralLink.creator_id == creator.id)
            .order_by(ReferralLink.created_at.desc())
            .limit(DETAIL_LINKS_LIMIT)
        )
    ).scalars().all()
    clicks = (
        await db.execute(
            select(ReferralClick)
            .where(ReferralClick.creator_id == creator.id)
            .order_by(ReferralClick.clicked_at.desc())
            .limit(DETAIL_CLICKS_LIMIT)
        )
    ).scalars().all()
    transactions = (
        await db.execute(
            select(CommissionTransaction)
            .where(CommissionTransaction.creator_id == creator.id)
            .order_by(CommissionTransaction.created_at.desc())
            .limit(DETAIL_TRANSACTIONS_LIMIT)
        )
    ).scalars().all()
    payouts = (
        await db.execute(
            select(CreatorPayout)
            .where(CreatorPayout.creator_id == creator.id)
            .order_by(CreatorPayout.payout_date.desc())
            .limit(DETAIL_PAYOUTS_LIMIT)
        )
    ).scalars().all()

    total_links, active_links, total_clicks, total_conversions = (
        await db.execute(
            select(
                func.count(ReferralLink.id),
                func.coalesce(func.sum(case((ReferralLink.is_active.is_(True), 1), else_=0)), 0),
                func.coalesce(func.sum(ReferralLink.click_count), 0),
                func.coalesce(func.sum(ReferralLink.conversion_count), 0),
            ).where(ReferralLink.creator_id == creator.id)
        )
    ).one()

    breakdown = {
        status: {"count": int(count), "total": _money(amount)}
        for status, count, amount in (
            await db.execute(
                select(
                    CommissionTransaction.status,
                    func.count(CommissionTransaction.id),
                    func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
                )
                .where(CommissionTransaction.creator_id == creator.id)
                .group_by(CommissionTransaction.status)
            )
        ).all()
    }

    paid_out, last_payout = (
        await db.execute(
            select(func.coalesce(func.sum(CreatorPayout.amount), 0), func.max(CreatorPayout.payout_date)).where(
                CreatorPayout.creator_id == creator.id, CreatorPayout.status == "completed"
            )
        )
    ).one()

    recent_clicks = (
        await db.execute(
            select(ReferralClick.clicked_at, ReferralClick.converted).where(
                ReferralClick.creator_id == creator.id, ReferralClick.clicked_at >= since
            )
        )
    ).all()
    recent_commissions = (
        await db.execute(
            select(CommissionTransaction.created_at, CommissionTransaction.commission_amount).where(
                CommissionTransaction.creator_id == creator.id,
                CommissionTransaction.created_at >= since,
            )
        )
    ).all()
    click_days: Counter = Counter()
    conversion_days: Counter = Counter()
    for clicked_at, converted in recent_clicks:
        day = clicked_at.date().isoformat()
        click_days[day] += 1
        if converted:
            conversion_days[day] += 1
    commission_days: dict[str, Decimal] = {}
    for created_at, amount in recent_commissions:
        day = created_at.date().isoformat()
        commission_days[day] = commission_days.get(day, Decimal("0")) + Decimal(amount)
    days = sorted(set(click_days) | set(commission_days))

    total_clicks = int(total_clicks or 0)
    total_conversions = int(total_conversions or 0)
    sales = await sales_last_30_days(db)

    return ok(
        {
            "creator": {
                **CreatorOut.model_validate(creator).model_dump(mode="json", by_alias=True),
                "tier": tier_for_sales(sales.get(creator.id, Decimal("0"))),
            },
            "summary": {
                "totalLinks": int(total_links or 0),
                "activeLinks": int(active_links or 0),
                "totalClicks": total_clicks,
                "totalConversions": total_conversions,
                "conversionRate": round(total_conversions / total_clicks * 100, 2) if total_clicks else 0,
                "commissionBreakdown": breakdown,
                "totalEarnings": breakdown.get("paid", {}).get("total", 0.0),
                "pendingEarnings": breakdown.get("approved", {}).get("total", 0.0),
                "totalPayouts": _money(paid_out),
                "lastPayoutDate": last_payout,
            },
            "performance30Days": [
                {
                    "date": day,
                    "clicks": click_days.get(day, 0),
                    "conversions": conversion_days.get(day, 0),
                    "commission": _money(commission_days.get(day)),
                }
                for day in days
            ],
            "links": [LinkOut.model_validate(link) for link in links],
            "recentClicks": [ClickOut.model_validate(click) for click in clicks],
            "transactions": [TransactionOut.model_validate(tx) for tx in transactions],
            "payouts": [PayoutOut.model_validate(p) for p in payouts],
        }
    )


@router.put("/{creator_id}")
async def creator_action(
    creator_id: uuid.UUID,
    payload: CreatorActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    creator = await get_creator_or_404(db, creator_id)
    updates = payload.updates
    now = utcnow()

    if payload.action == "update-profile":
        changes = _validated(CreatorProfileUpdate, updates).model_dump(exclude_unset=True)
        if not changes:
            raise APIError("INVALID_INPUT", "No valid fields to update")
        for field, value in changes.items():
            setattr(creator, field, value)
        message = "Creator profile updated successfully"

    elif payload.action == "update-status":
        change = _validated(CreatorStatusUpdate, updates)
        previous = creator.status
        creator.status = change.status
        if change.reason:
            creator.notes = change.reason
        if change.status == "approved" and previous == "pending":
            creator.approved_at = now
        elif change.status == "suspended":
            creator.suspended_at = now
            await set_links_active(db, [creator.id], False)
        elif change.status == "approved" and previous == "suspended":
            creator.suspended_at = None
            await set_links_active(db, [creator.id], True)
        message = f"Creator status updated to {change.status}"

    elif payload.action == "add-note":
        note = str(updates.get("note") or "").strip()
        if not note:
            raise APIError("INVALID_INPUT", "Note content required")
        entry = f"[{now.isoformat()}] {admin.email}: {note}"
        creator.notes = f"{creator.notes}\n{entry}" if creator.notes else entry
        message = "Note added successfully"

    elif payload.action == "trigger-payout":
        eligibility = await check_payout_eligibility(db, creator)
        if not eligibility.is_eligible:
            raise APIError("PAYOUT_NOT_ELIGIBLE", "Creator not eligible for payout")
        if not creator.payment_details:
            raise APIError("PAYMENT_INFO_MISSING", "Creator payment information not found")
        payout = await process_payout_request(
            db,
            creator,
            amount=eligibility.available_for_payout,
            transaction_ids=eligibility.transaction_ids,
        )
        await db.commit()
        raise_for_failed_payout(payout)
        logger.info("Admin %s triggered payout %s for creator %s", admin.email, payout.id, creator.id)
        return ok(
            {
                "message": "Payout processed successfully",
                "payoutId": str(payout.id),
                "amount": float(payout.amount),
            }
        )

    elif payload.action == "refresh-metrics":
        await refresh_creator_metrics(db, creator)
        message = "Creator metrics refreshed successfully"

    else:
        raise APIError("INVALID_ACTION", "Invalid action")

    creator.updated_at = now
    await db.commit()
    return ok({"message": message, "creator": CreatorOut.model_validate(creator)})
