# glowglitch/core/orders.py
from __future__ import annotations

import logging
import secrets
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import quote_plus

from fastapi import status
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.core.clock import utcnow
from glowglitch.core.commission import handle_order_return, to_cents
from glowglitch.core.errors import APIError
from glowglitch.models.order import Order

logger = logging.getLogger(__name__)

STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("confirmed", "cancelled", "payment-failed"),
    "confirmed": ("processing", "cancelled"),
    "processing": ("shipped", "cancelled"),
    "shipped": ("delivered", "returned"),
    "delivered": ("returned",),
    "payment-failed": ("pending", "cancelled"),
}

CANCELLABLE = ("pending", "confirmed")
REFUNDABLE = ("confirmed", "processing", "shipped", "delivered")

GROSS_MARGIN = Decimal("0.65")

TRACKING_URLS = {
    "UPS": "https://www.ups.com/track?track=yes&trackNums={n}",
    "FedEx": "https://www.fedex.com/fedextrack/?trknbr={n}",
    "USPS": "https://tools.usps.com/go/TrackConfirmAction?tLabels={n}",
    "DHL": "https://www.dhl.com/en/express/tracking.html?AWB={n}",
}

ACTION_MESSAGES = {
    "update-status": "Order status updated successfully",
    "add-tracking": "Tracking information added successfully",
    "process-refund": "Refund processed successfully",
    "update-shipping": "Shipping information updated successfully",
    "add-note": "Note added successfully",
    "cancel-order": "Order cancelled successfully",
}


def is_valid_transition(current: str, new: str) -> bool:
    return new in STATUS_TRANSITIONS.get(current, ())


def risk_score(order: Order) -> int:
    score = 0
    if order.is_guest:
        score += 10
    if Decimal(order.total or 0) > 5000:
        score += 15
    if order.payment_status == "failed":
        score += 20
    if order.user_id is None:
        score += 10
    return score


def risk_level(order: Order) -> str:
    score = risk_score(order)
    if score >= 30:
        return "high"
    if score >= 15:
        return "medium"
    return "low"


def profit_margin(order: Order) -> Decimal:
    return to_cents(Decimal(order.subtotal or 0) * GROSS_MARGIN)


def fulfillment_priority(order: Order) -> str:
    if (order.shipping or {}).get("method") == "express":
        return "urgent"
    if Decimal(order.total or 0) > 3000:
        return "high"
    if any(item.get("creator") for item in order.items or []):
        return "medium"
    return "low"


def tracking_url(carrier: str, tracking_number: str) -> str:
    template = TRACKING_URLS.get(carrier)
    if template:
        return template.format(n=tracking_number)
    return f"https://www.google.com/search?q={quote_plus(f'{carrier} tracking {tracking_number}')}"


def admin_metadata(order: Order) -> dict[str, Any]:
    return {
        "canBeCancelled": order.status in CANCELLABLE,
        "canBeRefunded": order.status in REFUNDABLE,
        "canBeShipped": order.status == "processing",
        "requiresAction": order.status == "pending" and order.payment_status == "failed",
        "riskLevel": risk_level(order),
        "profitMargin": float(profit_margin(order)),
        "fulfillmentPriority": fulfillment_priority(order),
    }


def _append_timeline(order: Order, event_status: str, message: str, admin_id: str) -> None:
    entry = {
        "status": event_status,
        "message": message,
        "createdAt": utcnow().isoformat(),
        "updatedBy": admin_id,
    }
    order.timeline = [*(order.timeline or []), entry]


def refunded_total(order: Order) -> Decimal:
    refunds = (order.payment or {}).get("refunds") or []
    return to_cents(sum((Decimal(str(r["amount"])) for r in refunds), Decimal("0")))


def _check_refundable(order: Order, amount: Decimal) -> None:
    remaining = to_cents(Decimal(order.total or 0)) - refunded_total(order)
    if amount > remaining:
        raise APIError(
            "REFUND_EXCEEDS_TOTAL",
            f"Refund of ${amount} exceeds the refundable amount of ${remaining}",
            details={"refundable": float(max(remaining, Decimal("0")))},
        )


def _add_refund(order: Order, amount: Decimal, reason: str, admin_id: str, refund_id: Optional[str] = None) -> Decimal:
    """Append a refund record and return the running refunded total."""
    payment = dict(order.payment or {})
    refunds = list(payment.get("refunds") or [])
    refunds.append(
        {
            "id": refund_id or f"refund_{secrets.token_hex(6)}",
            "amount": float(amount),
            "reason": reason,
            "createdAt": utcnow().isoformat(),
            "processedBy": admin_id,
        }
    )
    payment["refunds"] = refunds
    order.payment = payment
    return refunded_total(order)


def update_status(order: Order, new_status: str, admin_id: str, message: Optional[str] = None) -> Order:
    if not is_valid_transition(order.status, new_status):
        raise APIError(
            "INVALID_STATUS_TRANSITION",
            f"Invalid status transition from {order.status} to {new_status}",
            status.HTTP_409_CONFLICT,
        )

    order.status = new_status
    _append_timeline(order, new_status, message or f"Status updated to {new_status} by admin", admin_id)

    now = utcnow()
    if new_status == "shipped":
        order.shipping_status = "shipped"
        order.shipping = {**(order.shipping or {}), "shippedAt": now.isoformat()}
    elif new_status == "delivered":
        order.shipping_status = "delivered"
        order.delivered_at = now
        order.shipping = {**(order.shipping or {}), "deliveredAt": now.isoformat()}
    elif new_status == "cancelled":
        order.payment_status = "refunded"
    return order


def add_tracking(
    order: Order,
    admin_id: str,
    *,
    tracking_number: str,
    carrier: str,
    service: Optional[str] = None,
    estimated_delivery: Optional[str] = None,
) -> Order:
    shipping = {
        **(order.shipping or {}),
        "trackingNumber": tracking_number,
        "carrier": carrier,
        "service": service,
        "estimatedDelivery": estimated_delivery,
        "trackingUrl": tracking_url(carrier, tracking_number),
    }
    if order.status == "processing":
        order.status = "shipped"
        order.shipping_status = "shipped"
        shipping["shippedAt"] = utcnow().isoformat()
    order.shipping = shipping

    _append_timeline(order, "tracking-added", f"Tracking information added: {carrier} {tracking_number}", admin_id)
    return order


async def process_refund(
    db: AsyncSession,
    order: Order,
    admin_id: str,
    *,
    amount: Decimal,
    reason: str,
    refund_id: Optional[str] = None,
) -> Order:
    amount = to_cents(Decimal(amount))
    if amount <= 0:
        raise APIError("INVALID_INPUT", "Refund amount must be positive")
    if order.status not in REFUNDABLE and order.payment_status != "partially-refunded":
        raise APIError(
            "INVALID_STATUS_TRANSITION",
            f"Order cannot be refunded in status {order.status}",
            status.HTTP_409_CONFLICT,
        )

    _check_refundable(order, amount)
    refunded = _add_refund(order, amount, reason, admin_id, refund_id)
    if refunded >= Decimal(order.total or 0):
        order.payment_status = "refunded"
        order.status = "refunded"
    else:
        order.payment_status = "partially-refunded"

    _append_timeline(order, "refund-processed", f"Refund processed: ${amount} - {reason}", admin_id)

    clawback = await handle_order_return(db, order.id, amount, reason)
    if clawback is not None:
        logger.info("Order %s refund reversed %s commission", order.order_number, clawback.commission_amount)
    return order


def update_shipping(
    order: Order,
    admin_id: str,
    *,
    method: Optional[str] = None,
    cost: Optional[Decimal] = None,
    estimated_delivery: Optional[str] = None,
) -> Order:
    shipping = dict(order.shipping or {})
    if method is not None:
        shipping["method"] = method
    if cost is not None:
        shipping["cost"] = float(cost)
    if estimated_delivery is not None:
        shipping["estimatedDelivery"] = estimated_delivery
    order.shipping = shipping
    _append_timeline(order, "shipping-updated", "Shipping information updated by admin", admin_id)
    return order


def add_note(order: Order, admin_id: str, *, note: str, is_internal: bool = True) -> Order:
    if not note or not note.strip():
        raise APIError("INVALID_INPUT", "Note content required")
    order.admin_notes = [
        *(order.admin_notes or []),
        {"note": note.strip(), "isInternal": is_internal, "createdAt": utcnow().isoformat(), "createdBy": admin_id},
    ]
    _append_timeline(order, "note-added", "Internal note added" if is_internal else "Customer note added", admin_id)
    return order


def cancel_order(order: Order, admin_id: str, *, reason: str, refund_amount: Optional[Decimal] = None) -> Order:
    if order.status not in CANCELLABLE:
        raise APIError(
            "INVALID_STATUS_TRANSITION",
            "Order cannot be cancelled in current status",
            status.HTTP_409_CONFLICT,
        )
    if refund_amount and refund_amount > 0:
        refund_amount = to_cents(Decimal(refund_amount))
        _check_refundable(order, refund_amount)

    order.status = "cancelled"
    _append_timeline(order, "cancelled", f"Order cancelled by admin: {reason}", admin_id)

    if refund_amount and refund_amount > 0:
        _add_refund(order, refund_amount, f"Order cancellation: {reason}", admin_id)
        order.payment_status = "refunded"
    return order
