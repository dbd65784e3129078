# glowglitch/schemas/referrals.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field, field_validator

from glowglitch.schemas.common import APIModel, Money
from glowglitch.services.referrals import mask_ip, truncate_user_agent


class UtmParams(APIModel):
    source: Optional[str] = Field(default=None, max_length=120)
    medium: Optional[str] = Field(default=None, max_length=120)
    campaign: Optional[str] = Field(default=None, max_length=120)
    term: Optional[str] = Field(default=None, max_length=120)
    content: Optional[str] = Field(default=None, max_length=120)


class LinkCreate(APIModel):
    # absolute http(s) URL or a storefront path like /products/aurora-ring
    target_url: str = Field(min_length=1, max_length=2000)
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=200)
    custom_alias: Optional[str] = None
    utm: Optional[UtmParams] = None
    product_id: Optional[uuid.UUID] = None
    expires_at: Optional[datetime] = None

    @field_validator("custom_alias")
    @classmethod
    def blank_alias_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class LinkUpdate(APIModel):
    title: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=200)
    is_active: Optional[bool] = None


class LinkOut(APIModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    product_id: Optional[uuid.UUID] = None
    link_code: str
    custom_alias: Optional[str] = None
    original_url: str
    short_url: str
    title: Optional[str] = None
    description: Optional[str] = None
    utm: dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    click_count: int
    unique_click_count: int
    conversion_count: int
    last_clicked_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ClickOut(APIModel):
    id: uuid.UUID
    link_id: uuid.UUID
    ip_address: str
    user_agent: str
    referrer: Optional[str] = None
    device_type: str
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    converted: bool
    order_id: Optional[uuid.UUID] = None
    conversion_value: Optional[Money] = None
    clicked_at: datetime

    @field_validator("ip_address")
    @classmethod
    def hide_last_octet(cls, v: str) -> str:
        return mask_ip(v)

    @field_validator("user_agent")
    @classmethod
    def shorten_user_agent(cls, v: str) -> str:
        return truncate_user_agent(v)


class ConversionRequest(APIModel):
    order_id: uuid.UUID
    click_id: Optional[uuid.UUID] = None
    link_code: Optional[str] = None
    custom_rate: Optional[Decimal] = Field(default=None, gt=0, le=50)
