# glowglitch/schemas/orders.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import ConfigDict, Field

from glowglitch.schemas.common import APIModel, Money


class OrderOut(APIModel):
    id: uuid.UUID
    order_number: str
    user_id: Optional[uuid.UUID] = None
    email: str
    is_guest: bool
    status: str
    payment_status: str
    shipping_status: str
    subtotal: Money
    total: Money
    currency: str
    items: list[dict[str, Any]] = Field(default_factory=list)
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    billing_address: dict[str, Any] = Field(default_factory=dict)
    shipping: dict[str, Any] = Field(default_factory=dict)
    payment: dict[str, Any] = Field(default_factory=dict)
    timeline: list[dict[str, Any]] = Field(default_factory=list)
    admin_notes: list[dict[str, Any]] = Field(default_factory=list)
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderHistoryItem(APIModel):
    id: uuid.UUID
    order_number: str
    status: str
    total: Money
    created_at: datetime


class OrderActionRequest(APIModel):
    """Flat action body: {"action": "add-tracking", "trackingNumber": ..., "carrier": ...}."""

    model_config = ConfigDict(extra="ignore")

    action: Optional[str] = None

    # update-status
    status: Optional[str] = None
    message: Optional[str] = None
    notify_customer: bool = True

    # add-tracking
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    service: Optional[str] = None
    estimated_delivery: Optional[str] = None

    # process-refund / cancel-order
    amount: Optional[Decimal] = None
    reason: Optional[str] = None
    refund_id: Optional[str] = None
    refund_amount: Optional[Decimal] = None

    # update-shipping
    method: Optional[str] = None
    cost: Optional[Decimal] = Field(default=None, ge=0)

    # add-note
    note: Optional[str] = None
    is_internal: bool = True
