# glowglitch/api/v1/admin_commissions.py
from __future__ import annotations

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.commission import approve_commissions, commission_analytics
from glowglitch.core.errors import APIError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator
from glowglitch.models.order import Order
from glowglitch.models.user import User
from glowglitch.schemas.commissions import ApproveCommissionsRequest, TransactionOut

router = APIRouter(prefix="/admin/commissions", tags=["admin-commissions"])


@router.get("")
async def list_commissions(
    status_filter: Optional[Literal["pending", "approved", "paid", "cancelled"]] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=200),
    creator_id: Optional[uuid.UUID] = Query(None, alias="creatorId"),
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    base = (
        select(CommissionTransaction, Creator.display_name, Creator.creator_code, Order.order_number)
        .join(Creator, Creator.id == CommissionTransaction.creator_id)
        .outerjoin(Order, Order.id == CommissionTransaction.order_id)
    )
    filters = []
    if status_filter is not None:
        filters.append(CommissionTransaction.status == status_filter)
    if creator_id is not None:
        filters.append(CommissionTransaction.creator_id == creator_id)
    if search:
        term = f"%{search.strip()}%"
        filters.append(
            or_(
                Creator.display_name.ilike(term),
                Creator.creator_code.ilike(term),
                Order.order_number.ilike(term),
                cast(CommissionTransaction.order_id, String).ilike(term),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(base.where(*filters).subquery()))
    ).scalar_one()
    rows = (
        await db.execute(
            base.where(*filters)
            .order_by(CommissionTransaction.created_at.desc(), CommissionTransaction.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).all()

    transactions = [
        {
            **TransactionOut.model_validate(tx).model_dump(mode="json", by_alias=True),
            "creatorName": name,
            "creatorCode": code,
            "orderNumber": order_number,
        }
        for tx, name, code, order_number in rows
    ]

    return ok(
        {
            "transactions": transactions,
            "analytics": await commission_analytics(db),
            "pagination": paging.describe(total),
        }
    )


@router.post("")
async def bulk_approve(
    payload: ApproveCommissionsRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if not payload.transaction_ids:
        raise APIError("INVALID_INPUT", "Transaction IDs array is required")

    result = await approve_commissions(db, payload.transaction_ids, payload.admin_notes)
    await db.commit()
    return ok(
        {
            **result,
            "message": f"Approved {result['approved']} transactions, {result['failed']} failed",
        }
    )
