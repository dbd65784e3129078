# glowglitch/schemas/marketing.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import Field

from glowglitch.schemas.common import APIModel, Money

CampaignType = Literal["newsletter", "promotional", "abandoned-cart", "welcome-series", "product-launch", "seasonal"]
CampaignStatus = Literal["draft", "scheduled", "active", "paused", "completed", "cancelled"]
SegmentType = Literal["behavioral", "demographic", "geographic", "psychographic", "transactional"]
TemplateCategory = Literal["marketing", "transactional", "automation", "newsletter"]
TemplateType = Literal["welcome", "promotional", "abandoned-cart", "order-confirmation", "newsletter", "custom"]
TriggerType = Literal[
    "welcome",
    "abandoned-cart",
    "post-purchase",
    "birthday",
    "re-engagement",
    "win-back",
    "product-reminder",
    "review-request",
]
TriggerEvent = Literal[
    "user_registered",
    "cart_abandoned",
    "order_completed",
    "order_delivered",
    "user_birthday",
    "last_purchase_30_days",
]
TriggerStatus = Literal["active", "inactive", "draft"]


# -----------------------------
# Campaigns
# -----------------------------
class CampaignContent(APIModel):
    html: str = ""
    text: str = ""
    preheader: str = ""


class CampaignCreate(APIModel):
    name: str = Field(min_length=1, max_length=200)
    type: CampaignType
    subject: str = Field(min_length=1, max_length=255)
    template_id: Optional[uuid.UUID] = None
    segment_ids: list[uuid.UUID] = Field(default_factory=list)
    content: CampaignContent = Field(default_factory=CampaignContent)
    scheduled_at: Optional[datetime] = None


class CampaignUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    status: Optional[CampaignStatus] = None
    subject: Optional[str] = Field(default=None, min_length=1, max_length=255)
    template_id: Optional[uuid.UUID] = None
    segment_ids: Optional[list[uuid.UUID]] = None
    content: Optional[CampaignContent] = None
    scheduled_at: Optional[datetime] = None


class CampaignOut(APIModel):
    id: uuid.UUID
    name: str
    campaign_type: str = Field(serialization_alias="type")
    status: str
    subject: str
    template_id: Optional[uuid.UUID] = None
    segment_ids: list[str] = Field(default_factory=list)
    content: dict[str, Any] = Field(default_factory=dict)
    scheduled_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    sent: int
    delivered: int
    opened: int
    clicked: int
    revenue: Money
    open_rate: float
    click_rate: float
    created_by: str
    created_at: datetime
    updated_at: datetime


# -----------------------------
# Segments
# -----------------------------
class SegmentRule(APIModel):
    field: str = Field(min_length=1)
    operator: str
    value: Any = None
    logic: Optional[Literal["AND", "OR"]] = None


class SegmentCreate(APIModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    type: SegmentType
    rules: list[SegmentRule] = Field(default_factory=list)
    is_active: bool = True


class SegmentUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[SegmentType] = None
    rules: Optional[list[SegmentRule]] = None
    is_active: Optional[bool] = None


class SegmentOut(APIModel):
    id: uuid.UUID
    name: str
    description: str
    segment_type: str = Field(serialization_alias="type")
    rules: list[dict[str, Any]] = Field(default_factory=list)
    conditions: str
    is_active: bool
    customer_count: int
    last_calculated: Optional[datetime] = None
    created_by: str
    created_at: datetime
    updated_at: datetime


# -----------------------------
# Templates
# -----------------------------
class TemplateVariable(APIModel):
    name: str
    type: Literal["text", "image", "url", "number", "boolean"] = "text"
    description: str = ""
    required: bool = True
    default_value: Optional[str] = None


class TemplateDesign(APIModel):
    layout: Optional[str] = None
    color_scheme: dict[str, str] = Field(default_factory=dict)
    typography: dict[str, str] = Field(default_factory=dict)


class TemplateCreate(APIModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: TemplateCategory
    type: TemplateType = "custom"
    design: TemplateDesign = Field(default_factory=TemplateDesign)
    html: str = Field(min_length=1)
    css: Optional[str] = None
    variables: Optional[list[TemplateVariable]] = None
    preview_data: dict[str, Any] = Field(default_factory=dict)
    thumbnail: str = ""
    is_active: bool = True


class TemplateUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[TemplateCategory] = None
    type: Optional[TemplateType] = None
    design: Optional[TemplateDesign] = None
    html: Optional[str] = Field(default=None, min_length=1)
    css: Optional[str] = None
    variables: Optional[list[TemplateVariable]] = None
    preview_data: Optional[dict[str, Any]] = None
    thumbnail: Optional[str] = None
    is_active: Optional[bool] = None


class TemplateSummaryOut(APIModel):
    id: uuid.UUID
    name: str
    description: str
    category: str
    template_type: str = Field(serialization_alias="type")
    design: dict[str, Any] = Field(default_factory=dict)
    variables: list[dict[str, Any]] = Field(default_factory=list)
    thumbnail: str
    usage_campaigns: int
    usage_triggers: int
    last_used_at: Optional[datetime] = None
    is_active: bool
    is_default: bool
    created_by: str
    created_at: datetime
    updated_at: datetime


class TemplateOut(TemplateSummaryOut):
    html: str
    css: str
    preview_data: dict[str, Any] = Field(default_factory=dict)


class TemplatePreviewRequest(APIModel):
    data: dict[str, Any] = Field(default_factory=dict)


# -----------------------------
# Triggers
# -----------------------------
class TriggerFrequency(APIModel):
    count: int = Field(ge=1)
    period: Literal["day", "week", "month"]


class TriggerCreate(APIModel):
    name: str = Field(min_length=1, max_length=200)
    description: str = ""
    type: TriggerType
    event: TriggerEvent
    status: TriggerStatus = "draft"
    delay_minutes: Optional[int] = Field(default=None, ge=0)
    template_id: Optional[uuid.UUID] = None
    subject: str = Field(default="", max_length=255)
    segment_ids: list[uuid.UUID] = Field(default_factory=list)
    max_frequency: Optional[TriggerFrequency] = None


class TriggerUpdate(APIModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[TriggerType] = None
    event: Optional[TriggerEvent] = None
    status: Optional[TriggerStatus] = None
    delay_minutes: Optional[int] = Field(default=None, ge=0)
    template_id: Optional[uuid.UUID] = None
    subject: Optional[str] = Field(default=None, max_length=255)
    segment_ids: Optional[list[uuid.UUID]] = None
    max_frequency: Optional[TriggerFrequency] = None


class TriggerOut(APIModel):
    id: uuid.UUID
    name: str
    description: str
    trigger_type: str = Field(serialization_alias="type")
    event: str
    status: str
    delay_minutes: Optional[int] = None
    template_id: Optional[uuid.UUID] = None
    subject: str
    segment_ids: list[str] = Field(default_factory=list)
    max_frequency: Optional[dict[str, Any]] = None
    triggered: int
    sent: int
    converted: int
    revenue: Money
    last_triggered: Optional[datetime] = None
    created_by: str
    created_at: datetime
    updated_at: datetime


class TriggerProcessRequest(APIModel):
    trigger_type: Optional[TriggerType] = None
    max_processing: int = Field(default=100, ge=1, le=1000)
    dry_run: bool = False
