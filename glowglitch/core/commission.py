# glowglitch/core/commission.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.models.commission import CommissionTransaction, CreatorPayout
from glowglitch.models.creator import Creator
from glowglitch.models.referral import ReferralClick

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

EARNED_STATUSES = ("approved", "paid")


@dataclass(frozen=True)
class CommissionTier:
    min_sales: Decimal
    max_sales: Optional[Decimal]  # exclusive upper bound; None = open-ended
    rate: Decimal  # percent


class COMMISSION_RULES:
    MIN_ORDER_AMOUNT = Decimal("10.00")
    MAX_COMMISSION_AMOUNT = Decimal("1000.00")
    APPROVAL_DELAY_HOURS = 24
    RETURN_PERIOD_DAYS = 30
    MIN_PAYOUT = {
        "paypal": Decimal("25.00"),
        "stripe": Decimal("10.00"),
        "bank": Decimal("50.00"),
    }
    TIERS = (
        CommissionTier(Decimal("0"), Decimal("1000"), Decimal("10")),
        CommissionTier(Decimal("1000"), Decimal("5000"), Decimal("12")),
        CommissionTier(Decimal("5000"), Decimal("10000"), Decimal("15")),
        CommissionTier(Decimal("10000"), None, Decimal("18")),
    )


@dataclass(frozen=True)
class CommissionCalculation:
    rate: Decimal
    amount: Decimal
    is_eligible: bool
    reason: Optional[str] = None


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def tier_rate(monthly_sales: Decimal) -> Decimal:
    sales = Decimal(monthly_sales or 0)
    for tier in COMMISSION_RULES.TIERS:
        if sales >= tier.min_sales and (tier.max_sales is None or sales < tier.max_sales):
            return tier.rate
    return COMMISSION_RULES.TIERS[0].rate


def calculate_commission(
    creator: Creator,
    order_amount: Decimal,
    monthly_sales: Decimal = Decimal("0"),
    custom_rate: Optional[Decimal] = None,
) -> CommissionCalculation:
    """
    Commission owed to `creator` for an order of `order_amount`.

    A custom rate wins outright. Otherwise the creator's own rate is used,
    raised to the volume tier rate when the tier pays more. The amount is
    capped per order and rounded half-up to cents.
    """
    zero = Decimal("0.00")
    if creator.status != "approved":
        return CommissionCalculation(zero, zero, False, "Creator not approved")

    order_amount = Decimal(order_amount)
    if order_amount < COMMISSION_RULES.MIN_ORDER_AMOUNT:
        return CommissionCalculation(
            zero,
            zero,
            False,
            f"Order amount below minimum ${COMMISSION_RULES.MIN_ORDER_AMOUNT}",
        )

    if custom_rate:
        rate = Decimal(custom_rate)
    else:
        rate = max(Decimal(creator.commission_rate or 0), tier_rate(monthly_sales))

    amount = order_amount * rate / Decimal(100)
    amount = min(amount, COMMISSION_RULES.MAX_COMMISSION_AMOUNT)

    return CommissionCalculation(rate=rate, amount=to_cents(amount), is_eligible=True)


def start_of_month(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def monthly_sales_for(db: AsyncSession, creator_id: uuid.UUID) -> Decimal:
    """Current-month order volume from approved/paid transactions."""
    stmt = select(func.coalesce(func.sum(CommissionTransaction.order_amount), 0)).where(
        CommissionTransaction.creator_id == creator_id,
        CommissionTransaction.status.in_(EARNED_STATUSES),
        CommissionTransaction.created_at >= start_of_month(),
    )
    return Decimal((await db.execute(stmt)).scalar_one() or 0)


async def create_sale_transaction(
    db: AsyncSession,
    *,
    creator: Creator,
    order_id: uuid.UUID,
    calculation: CommissionCalculation,
    order_amount: Decimal,
    link_id: Optional[uuid.UUID] = None,
    click_id: Optional[uuid.UUID] = None,
) -> tuple[CommissionTransaction, bool]:
    """
    Record a pending sale commission. One sale row per order: an existing
    row is returned unchanged. Returns (transaction, created).
    """
    existing = (
        await db.execute(
            select(CommissionTransaction).where(
                CommissionTransaction.order_id == order_id,
                CommissionTransaction.transaction_type == "sale",
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        return existing, False

    tx = CommissionTransaction(
        creator_id=creator.id,
        order_id=order_id,
        link_id=link_id,
        click_id=click_id,
        commission_rate=calculation.rate,
        order_amount=to_cents(order_amount),
        commission_amount=calculation.amount,
        status="pending",
        transaction_type="sale",
    )
    db.add(tx)
    await db.flush()
    return tx, True


async def refresh_creator_metrics(db: AsyncSession, creator: Creator) -> Creator:
    """Recompute the cached metrics columns from the click and commission ledgers."""
    clicks = (
        await db.execute(select(func.count()).select_from(ReferralClick).where(ReferralClick.creator_id == creator.id))
    ).scalar_one()

    sales, commission, last_sale = (
        await db.execute(
            select(
                func.count(CommissionTransaction.id),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
                func.max(CommissionTransaction.created_at),
            ).where(
                CommissionTransaction.creator_id == creator.id,
                CommissionTransaction.status.in_(EARNED_STATUSES),
            )
        )
    ).one()

    clicks = int(clicks or 0)
    sales = int(sales or 0)
    creator.total_clicks = clicks
    creator.total_sales = sales
    creator.total_commission = to_cents(Decimal(commission or 0))
    creator.conversion_rate = to_cents(Decimal(sales) / Decimal(clicks) * 100) if clicks else Decimal("0.00")
    creator.last_sale_date = last_sale
    await db.flush()
    return creator


async def approve_commissions(
    db: AsyncSession,
    transaction_ids: Sequence[uuid.UUID],
    admin_notes: Optional[str] = None,
) -> dict[str, int]:
    """
    pending -> approved for exactly the given ids.

    Ids that are unknown or not pending are counted as failed and left
    untouched. The caller commits.
    """
    approved = 0
    failed = 0
    touched_creators: set[uuid.UUID] = set()
    now = utcnow()

    for tx_id in dict.fromkeys(transaction_ids):
        tx = await db.get(CommissionTransaction, tx_id)
        if tx is None or tx.status != "pending":
            failed += 1
            continue
        tx.status = "approved"
        tx.processed_at = now
        if admin_notes:
            tx.notes = f"{tx.notes}\n{admin_notes}" if tx.notes else admin_notes
        approved += 1
        touched_creators.add(tx.creator_id)

    await db.flush()

    for creator_id in touched_creators:
        creator = await db.get(Creator, creator_id)
        if creator is not None:
            await refresh_creator_metrics(db, creator)

    logger.info("Approved %s commission transaction(s), %s failed", approved, failed)
    return {"approved": approved, "failed": failed}


async def handle_order_return(
    db: AsyncSession,
    order_id: uuid.UUID,
    return_amount: Decimal,
    reason: str,
) -> Optional[CommissionTransaction]:
    """
    Claw back commission for a (partial) return.

    Creates an approved `return` row with negative amounts proportional to
    return_amount / original order amount, capped so the return rows of an
    order never exceed its original order and commission amounts. Returns
    None when the order was never attributed or nothing is left to claw back.
    """
    original = (
        await db.execute(
            select(CommissionTransaction).where(
                CommissionTransaction.order_id == order_id,
                CommissionTransaction.transaction_type == "sale",
            )
        )
    ).scalar_one_or_none()
    if original is None or not original.order_amount:
        return None

    returned_orders, clawed_back = (
        await db.execute(
            select(
                func.coalesce(func.sum(CommissionTransaction.order_amount), 0),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
            ).where(
                CommissionTransaction.order_id == order_id,
                CommissionTransaction.transaction_type == "return",
            )
        )
    ).one()
    # return rows are negative; what is left can never go below zero
    order_left = max(Decimal(original.order_amount) + to_cents(Decimal(str(returned_orders or 0))), Decimal("0"))
    commission_left = max(Decimal(original.commission_amount) + to_cents(Decimal(str(clawed_back or 0))), Decimal("0"))
    if commission_left == 0 or order_left == 0:
        return None

    return_amount = min(Decimal(return_amount), order_left)
    ratio = return_amount / Decimal(original.order_amount)
    clawback = min(to_cents(Decimal(original.commission_amount) * ratio), commission_left)

    tx = CommissionTransaction(
        creator_id=original.creator_id,
        order_id=order_id,
        link_id=original.link_id,
        click_id=original.click_id,
        commission_rate=original.commission_rate,
        order_amount=-to_cents(return_amount),
        commission_amount=-clawback,
        status="approved",
        transaction_type="return",
        notes=reason,
        processed_at=utcnow(),
    )
    db.add(tx)
    await db.flush()

    creator = await db.get(Creator, original.creator_id)
    if creator is not None:
        await refresh_creator_metrics(db, creator)

    logger.info("Clawed back %s commission for order %s", clawback, order_id)
    return tx


async def commission_analytics(
    db: AsyncSession,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict[str, Any]:
    """Ledger totals for the admin commissions dashboard (defaults to the last 30 days)."""
    end = end or utcnow()
    start = start or end - timedelta(days=30)

    by_status_rows = (
        await db.execute(
            select(
                CommissionTransaction.status,
                func.count(CommissionTransaction.id),
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0),
            ).group_by(CommissionTransaction.status)
        )
    ).all()
    by_status = {
        status: {"count": int(count or 0), "total": float(to_cents(Decimal(total or 0)))}
        for status, count, total in by_status_rows
    }

    earned_in_period = (
        await db.execute(
            select(func.coalesce(func.sum(CommissionTransaction.commission_amount), 0)).where(
                CommissionTransaction.status.in_(EARNED_STATUSES),
                CommissionTransaction.created_at >= start,
                CommissionTransaction.created_at <= end,
            )
        )
    ).scalar_one()

    payouts_in_period = (
        await db.execute(
            select(func.coalesce(func.sum(CreatorPayout.amount), 0)).where(
                CreatorPayout.status == "completed",
                CreatorPayout.created_at >= start,
                CreatorPayout.created_at <= end,
            )
        )
    ).scalar_one()

    active_creators = (
        await db.execute(select(func.count()).select_from(Creator).where(Creator.status == "approved"))
    ).scalar_one()

    top_rows = (
        await db.execute(
            select(
                CommissionTransaction.creator_id,
                Creator.display_name,
                func.coalesce(func.sum(CommissionTransaction.commission_amount), 0).label("total"),
                func.count(CommissionTransaction.id),
            )
            .join(Creator, Creator.id == CommissionTransaction.creator_id)
            .where(
                CommissionTransaction.status.in_(EARNED_STATUSES),
                CommissionTransaction.created_at >= start,
                CommissionTransaction.created_at <= end,
            )
            .group_by(CommissionTransaction.creator_id, Creator.display_name)
            .order_by(func.sum(CommissionTransaction.commission_amount).desc())
            .limit(10)
        )
    ).all()

    total_count = sum(v["count"] for v in by_status.values())

    return {
        "byStatus": by_status,
        "totalTransactions": total_count,
        "totalCommissions": float(to_cents(Decimal(earned_in_period or 0))),
        "totalPayouts": float(to_cents(Decimal(payouts_in_period or 0))),
        "pendingCommissions": by_status.get("pending", {}).get("total", 0.0),
        "activeCreators": int(active_creators or 0),
        "topCreators": [
            {
                "creatorId": str(creator_id),
                "displayName": name,
                "totalCommissions": float(to_cents(Decimal(total or 0))),
                "totalSales": int(count or 0),
            }
            for creator_id, name, total, count in top_rows
        ],
    }
