# glowglitch/api/v1/admin_orders.py
from __future__ import annotations

import logging
import uuid
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core import orders as order_ops
from glowglitch.core.commission import to_cents
from glowglitch.core.errors import APIError, NotFoundError
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.order import ORDER_STATUSES, Order
from glowglitch.models.user import User
from glowglitch.schemas.orders import OrderActionRequest, OrderHistoryItem, OrderOut
from glowglitch.services.email import send_order_notification

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/orders", tags=["admin-orders"])

HISTORY_LIMIT = 10


async def _get_order_or_404(db: AsyncSession, order_id: uuid.UUID) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFoundError("ORDER_NOT_FOUND", "Order not found")
    return order


def _required(value, message: str):
    if value is None or (isinstance(value, str) and not value.strip()):
        raise APIError("INVALID_INPUT", message)
    return value


@router.get("/{order_id}")
async def get_order(
    order_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = await _get_order_or_404(db, order_id)

    same_customer = [Order.email == order.email]
    if order.user_id is not None:
        same_customer.append(Order.user_id == order.user_id)
    history = (
        await db.execute(
            select(Order).where(or_(*same_customer)).order_by(Order.created_at.desc()).limit(HISTORY_LIMIT)
        )
    ).scalars().all()

    spent = sum((Decimal(o.total or 0) for o in history), Decimal("0"))
    metrics = {
        "totalOrders": len(history),
        "totalSpent": float(to_cents(spent)),
        "averageOrderValue": float(to_cents(spent / len(history))) if history else 0,
        "firstOrderDate": history[-1].created_at if history else None,
        "lastOrderDate": history[0].created_at if history else None,
    }

    return ok(
        {
            "order": {
                **OrderOut.model_validate(order).model_dump(mode="json", by_alias=True),
                "adminMetadata": order_ops.admin_metadata(order),
                "customerMetrics": metrics,
                "customerOrderHistory": [OrderHistoryItem.model_validate(o) for o in history],
            }
        }
    )


@router.put("/{order_id}")
async def update_order(
    order_id: uuid.UUID,
    payload: OrderActionRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    order = await _get_order_or_404(db, order_id)
    admin_id = str(admin.id)
    action = payload.action
    notification = None

    if action == "update-status":
        new_status = _required(payload.status, "Status is required")
        if new_status not in ORDER_STATUSES:
            raise APIError("INVALID_INPUT", f"Unknown order status: {new_status}")
        order_ops.update_status(order, new_status, admin_id, payload.message)
        notification = ("status-update", {"message": payload.message})

    elif action == "add-tracking":
        order_ops.add_tracking(
            order,
            admin_id,
            tracking_number=_required(payload.tracking_number, "Tracking number is required"),
            carrier=_required(payload.carrier, "Carrier is required"),
            service=payload.service,
            estimated_delivery=payload.estimated_delivery,
        )
        notification = (
            "shipping",
            {
                "tracking_number": payload.tracking_number,
                "carrier": payload.carrier,
                "tracking_url": order.shipping.get("trackingUrl"),
                "estimated_delivery": payload.estimated_delivery,
            },
        )

    elif action == "process-refund":
        amount = _required(payload.amount, "Refund amount is required")
        reason = _required(payload.reason, "Refund reason is required")
        await order_ops.process_refund(db, order, admin_id, amount=amount, reason=reason, refund_id=payload.refund_id)
        notification = ("refund", {"refund_amount": float(amount), "reason": reason})

    elif action == "update-shipping":
        order_ops.update_shipping(
            order,
            admin_id,
            method=payload.method,
            cost=payload.cost,
            estimated_delivery=payload.estimated_delivery,
        )

    elif action == "add-note":
        order_ops.add_note(order, admin_id, note=payload.note or "", is_internal=payload.is_internal)

    elif action == "cancel-order":
        reason = _required(payload.reason, "Cancellation reason is required")
        order_ops.cancel_order(order, admin_id, reason=reason, refund_amount=payload.refund_amount)
        notification = (
            "cancellation",
            {"reason": reason, "refund_amount": float(payload.refund_amount) if payload.refund_amount else None},
        )

    else:
        raise APIError("INVALID_ACTION", "Invalid action specified")

    email_sent = False
    if notification is not None and payload.notify_customer:
        kind, context = notification
        email_sent = await send_order_notification(db, order, kind, context)

    await db.commit()
    logger.info("Admin %s applied %s to order %s", admin.email, action, order.order_number)
    return ok(
        {
            "order": OrderOut.model_validate(order),
            "emailSent": email_sent,
            "message": order_ops.ACTION_MESSAGES[action],
        }
    )
