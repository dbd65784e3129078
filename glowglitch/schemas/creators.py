# glowglitch/schemas/creators.py
from __future__ import annotations

import json
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Union

from pydantic import Field, field_validator

from glowglitch.schemas.common import APIModel, Money

PaymentMethod = Literal["paypal", "bank", "stripe"]
CreatorStatus = Literal["pending", "approved", "suspended", "inactive"]


def mask_details(value: Optional[str]) -> str:
    return f"***{value[-4:]}" if value else ""


class CreatorApply(APIModel):
    display_name: str = Field(min_length=1, max_length=120)
    bio: Optional[str] = Field(default=None, max_length=500)
    profile_image: Optional[str] = None
    social_links: dict[str, str] = Field(default_factory=dict)
    payment_method: PaymentMethod = "paypal"
    # JSON object or its string encoding
    payment_details: Optional[Union[dict[str, Any], str]] = None

    @field_validator("display_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("Display name is required")
        return v

    def encoded_payment_details(self) -> str:
        if self.payment_details is None:
            return ""
        if isinstance(self.payment_details, dict):
            return json.dumps(self.payment_details)
        return self.payment_details


class CreatorOut(APIModel):
    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    creator_code: str
    display_name: str
    email: str
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    social_links: dict[str, Any] = Field(default_factory=dict)

    commission_rate: Money
    minimum_payout: Money
    payment_method: str
    payment_details: str = ""

    status: str

    total_clicks: int
    total_sales: int
    total_commission: Money
    conversion_rate: Money
    last_sale_date: Optional[datetime] = None

    email_notifications: bool
    public_profile: bool
    allow_direct_messages: bool

    approved_at: Optional[datetime] = None
    suspended_at: Optional[datetime] = None
    notes: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    @field_validator("payment_details")
    @classmethod
    def mask(cls, v: str) -> str:
        return mask_details(v)


class CreatorBulkRequest(APIModel):
    action: Optional[str] = None
    creator_ids: list[uuid.UUID] = Field(default_factory=list)
    updates: dict[str, Any] = Field(default_factory=dict)


class CreatorActionRequest(APIModel):
    action: Optional[str] = None
    updates: dict[str, Any] = Field(default_factory=dict)


class CreatorProfileUpdate(APIModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    bio: Optional[str] = Field(default=None, max_length=500)
    commission_rate: Optional[Decimal] = Field(default=None, ge=0, le=50)
    minimum_payout: Optional[Decimal] = Field(default=None, ge=10)
    notes: Optional[str] = None


class CreatorStatusUpdate(APIModel):
    status: CreatorStatus
    reason: Optional[str] = None
