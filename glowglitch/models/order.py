# glowglitch/models/order.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from glowglitch.core.clock import utcnow
from glowglitch.db.base import Base
from glowglitch.db.types import JSONType, UTCDateTime, UUIDType

ORDER_STATUSES = (
    "pending",
    "payment-failed",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
    "refunded",
    "returned",
)
PAYMENT_STATUSES = ("pending", "processing", "completed", "failed", "refunded", "partially-refunded")
SHIPPING_STATUSES = ("pending", "preparing", "shipped", "in-transit", "delivered", "failed")


class Order(Base):
    """
    Storefront order.

    items, addresses, shipping, payment, timeline and admin_notes are JSON
    documents. They must be reassigned (not mutated in place) for the change
    to be persisted.
    """

    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_status_created", "user_id", "status", "created_at"),
        Index("ix_orders_status_created", "status", "created_at"),
        Index("ix_orders_payment_status", "payment_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    is_guest: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    shipping_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # [{productId, name, quantity, unitPrice, creator?}, ...]
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    billing_address: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    # {method, cost, carrier, service, trackingNumber, trackingUrl, estimatedDelivery, shippedAt, deliveredAt}
    shipping: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    # {method, refunds: [{id, amount, reason, createdAt, processedBy}]}
    payment: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    timeline: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    admin_notes: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    # Lifecycle email bookkeeping (trigger processing)
    followup_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_request_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)
