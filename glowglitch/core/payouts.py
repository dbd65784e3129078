# glowglitch/core/payouts.py
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional, Sequence

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.core.commission import COMMISSION_RULES, to_cents
from glowglitch.core.config import settings
from glowglitch.core.errors import APIError
from glowglitch.models.commission import CommissionTransaction, CreatorPayout
from glowglitch.models.creator import Creator
from glowglitch.services.payments import PaymentError, get_gateway, missing_detail_fields

logger = logging.getLogger(__name__)


@dataclass
class PayoutEligibility:
    creator_id: uuid.UUID
    total_earnings: Decimal
    available_for_payout: Decimal
    minimum_payout: Decimal
    is_eligible: bool
    transaction_ids: list[uuid.UUID] = field(default_factory=list)
    # oldest first, same order as transaction_ids
    amounts: dict[uuid.UUID, Decimal] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "creatorId": str(self.creator_id),
            "totalEarnings": float(self.total_earnings),
            "availableForPayout": float(self.available_for_payout),
            "minimumPayout": float(self.minimum_payout),
            "isEligible": self.is_eligible,
            "transactionIds": [str(t) for t in self.transaction_ids],
        }


def method_minimum(method: str) -> Decimal:
    return COMMISSION_RULES.MIN_PAYOUT.get(method, Decimal("0"))


def parse_payment_details(method: str, raw: str) -> dict[str, Any]:
    """Decode a stored/submitted payment details string and check the method's required fields."""
    try:
        details = json.loads(raw or "")
    except (TypeError, ValueError):
        raise APIError("INVALID_PAYMENT_DETAILS", "Payment details must be a JSON object")
    if not isinstance(details, dict):
        raise APIError("INVALID_PAYMENT_DETAILS", "Payment details must be a JSON object")

    missing = missing_detail_fields(method, details)
    if missing:
        raise APIError(
            "INVALID_PAYMENT_DETAILS",
            f"Missing required {method} payment fields: {', '.join(missing)}",
            details={"missing": missing},
        )
    return details


async def check_payout_eligibility(db: AsyncSession, creator: Creator) -> PayoutEligibility:
    rows = (
        await db.execute(
            select(CommissionTransaction)
            .where(
                CommissionTransaction.creator_id == creator.id,
                CommissionTransaction.status == "approved",
                CommissionTransaction.paid_at.is_(None),
            )
            .order_by(CommissionTransaction.created_at.asc())
        )
    ).scalars().all()

    available = to_cents(sum((Decimal(t.commission_amount) for t in rows), Decimal("0")))
    minimum = max(Decimal(creator.minimum_payout or 0), method_minimum(creator.payment_method))

    return PayoutEligibility(
        creator_id=creator.id,
        total_earnings=Decimal(creator.total_commission or 0),
        available_for_payout=available,
        minimum_payout=minimum,
        is_eligible=available > 0 and available >= minimum,
        transaction_ids=[t.id for t in rows],
        amounts={t.id: Decimal(t.commission_amount) for t in rows},
    )


def select_transactions_for_amount(eligibility: PayoutEligibility, amount: Decimal) -> list[uuid.UUID]:
    """
    Oldest eligible transactions whose commissions add up to exactly `amount`.

    Raises INVALID_INPUT when no oldest-first run settles the amount, listing
    the amounts that can be paid out instead.
    """
    selected: list[uuid.UUID] = []
    running = Decimal("0")
    settleable: list[float] = []
    for tx_id in eligibility.transaction_ids:
        selected.append(tx_id)
        running = to_cents(running + eligibility.amounts[tx_id])
        if running == amount:
            return selected
        if running > 0:
            settleable.append(float(running))

    raise APIError(
        "INVALID_INPUT",
        "Payout amount must match the total of whole commission transactions",
        details={"settleableAmounts": sorted(set(settleable))},
    )


async def _set_transactions_paid(db: AsyncSession, ids: Sequence[uuid.UUID], payout_id: uuid.UUID) -> None:
    await db.execute(
        update(CommissionTransaction)
        .where(CommissionTransaction.id.in_(ids))
        .values(status="paid", paid_at=utcnow(), payout_id=payout_id)
    )


async def _revert_transactions(db: AsyncSession, ids: Sequence[uuid.UUID]) -> None:
    await db.execute(
        update(CommissionTransaction)
        .where(CommissionTransaction.id.in_(ids))
        .values(status="approved", paid_at=None, payout_id=None)
    )


async def process_payout_request(
    db: AsyncSession,
    creator: Creator,
    *,
    amount: Decimal,
    transaction_ids: Optional[Sequence[uuid.UUID]] = None,
    payment_method: Optional[str] = None,
    payment_details: Optional[str] = None,
) -> CreatorPayout:
    """
    Validate and execute a payout.

    Raises APIError for anything that makes the request invalid. A gateway
    failure is not raised: the transactions are reverted to approved and the
    returned payout is `failed` with the reason, so the caller can commit the
    audit trail before reporting the failure.
    """
    method = payment_method or creator.payment_method
    raw_details = payment_details if payment_details is not None else creator.payment_details

    eligibility = await check_payout_eligibility(db, creator)
    if not eligibility.is_eligible:
        raise APIError(
            "PAYOUT_NOT_ELIGIBLE",
            "Creator not eligible for payout",
            details={"available": float(eligibility.available_for_payout), "minimum": float(eligibility.minimum_payout)},
        )

    amount = to_cents(Decimal(amount))
    if amount <= 0:
        raise APIError("INVALID_INPUT", "Payout amount must be positive")
    if amount > eligibility.available_for_payout:
        raise APIError("INSUFFICIENT_BALANCE", "Payout amount exceeds available balance")

    minimum = method_minimum(method)
    if amount < minimum:
        raise APIError("PAYOUT_NOT_ELIGIBLE", f"Minimum payout for {method} is ${minimum}")

    if transaction_ids:
        selected = list(dict.fromkeys(transaction_ids))
        unknown = [str(t) for t in selected if t not in eligibility.amounts]
        if unknown:
            raise APIError(
                "INVALID_INPUT",
                "Some transactions are not eligible for payout",
                details={"transactionIds": unknown},
            )
        selected_total = to_cents(sum((eligibility.amounts[t] for t in selected), Decimal("0")))
        if selected_total != amount:
            raise APIError(
                "INVALID_INPUT",
                "Payout amount must equal the total of the selected transactions",
                details={"selectedTotal": float(selected_total)},
            )
    else:
        selected = select_transactions_for_amount(eligibility, amount)

    details = parse_payment_details(method, raw_details)

    payout = CreatorPayout(
        creator_id=creator.id,
        amount=amount,
        currency=settings.PAYOUT_CURRENCY,
        transaction_ids=[str(t) for t in selected],
        payment_method=method,
        payment_details=raw_details,
        status="processing",
        payout_date=utcnow(),
    )
    db.add(payout)
    await db.flush()

    await _set_transactions_paid(db, selected, payout.id)

    try:
        reference = await get_gateway(method).send_payout(amount=amount, currency=payout.currency, details=details)
    except PaymentError as exc:
        logger.warning("Payout %s for creator %s failed: %s", payout.id, creator.id, exc)
        await _revert_transactions(db, selected)
        payout.status = "failed"
        payout.failure_reason = str(exc)
        await db.flush()
        return payout

    payout.status = "completed"
    payout.completed_at = utcnow()
    payout.payment_reference = reference
    await db.flush()
    logger.info("Payout %s completed for creator %s (%s %s)", payout.id, creator.id, amount, payout.currency)
    return payout


def raise_for_failed_payout(payout: CreatorPayout) -> None:
    if payout.status == "failed":
        raise APIError(
            "PAYOUT_FAILED",
            payout.failure_reason or "Payout processing failed",
            status.HTTP_502_BAD_GATEWAY,
            details={"payoutId": str(payout.id)},
        )


async def cancel_payout(db: AsyncSession, payout: CreatorPayout) -> CreatorPayout:
    if payout.status != "pending":
        raise APIError(
            "INVALID_STATUS",
            f"Only pending payouts can be cancelled (current status: {payout.status})",
            status.HTTP_409_CONFLICT,
        )
    ids = [uuid.UUID(t) for t in payout.transaction_ids or []]
    if ids:
        await _revert_transactions(db, ids)
    payout.status = "cancelled"
    await db.flush()
    return payout
