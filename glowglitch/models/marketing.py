# glowglitch/models/marketing.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from glowglitch.core.clock import utcnow
from glowglitch.db.base import Base
from glowglitch.db.types import JSONType, UTCDateTime, UUIDType

CAMPAIGN_TYPES = ("newsletter", "promotional", "abandoned-cart", "welcome-series", "product-launch", "seasonal")
CAMPAIGN_STATUSES = ("draft", "scheduled", "active", "paused", "completed", "cancelled")

SEGMENT_TYPES = ("behavioral", "demographic", "geographic", "psychographic", "transactional")

TEMPLATE_CATEGORIES = ("marketing", "transactional", "automation", "newsletter")
TEMPLATE_TYPES = ("welcome", "promotional", "abandoned-cart", "order-confirmation", "newsletter", "custom")

TRIGGER_TYPES = (
    "welcome",
    "abandoned-cart",
    "post-purchase",
    "birthday",
    "re-engagement",
    "win-back",
    "product-reminder",
    "review-request",
)
TRIGGER_EVENTS = (
    "user_registered",
    "cart_abandoned",
    "order_completed",
    "order_delivered",
    "user_birthday",
    "last_purchase_30_days",
)
TRIGGER_STATUSES = ("active", "inactive", "draft")

EMAIL_EVENT_TYPES = ("sent", "delivered", "opened", "clicked", "bounced", "complained", "unsubscribed")


class EmailTemplate(Base):
    __tablename__ = "email_templates"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    template_type: Mapped[str] = mapped_column("type", String(32), nullable=False, default="custom")

    # {layout, colorScheme: {...}, typography: {...}}
    design: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    html: Mapped[str] = mapped_column(Text, nullable=False)
    css: Mapped[str] = mapped_column(Text, nullable=False, default="")
    # [{name, type, description, required, defaultValue?}]
    variables: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    thumbnail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    preview_data: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    usage_campaigns: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_triggers: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class CustomerSegment(Base):
    __tablename__ = "customer_segments"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    segment_type: Mapped[str] = mapped_column("type", String(20), nullable=False)

    # [{field, operator, value, logic?}]
    rules: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    conditions: Mapped[str] = mapped_column(Text, nullable=False, default="")

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    customer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_calculated: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class EmailCampaign(Base):
    __tablename__ = "email_campaigns"
    __table_args__ = (
        Index("ix_email_campaigns_status_updated", "status", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    campaign_type: Mapped[str] = mapped_column("type", String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    subject: Mapped[str] = mapped_column(String(255), nullable=False)

    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("email_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    segment_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    # {html, text, preheader}
    content: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    scheduled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    clicked: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def open_rate(self) -> float:
        return round(self.opened / self.delivered * 100, 2) if self.delivered else 0.0

    @property
    def click_rate(self) -> float:
        return round(self.clicked / self.delivered * 100, 2) if self.delivered else 0.0


class EmailTrigger(Base):
    __tablename__ = "email_triggers"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    trigger_type: Mapped[str] = mapped_column("type", String(32), nullable=False)
    event: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft", index=True)

    # None means the per-event default delay
    delay_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("email_templates.id", ondelete="SET NULL"),
        nullable=True,
    )
    subject: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    segment_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    # {count, period: day|week|month}
    max_frequency: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType, nullable=True)

    triggered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    converted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    revenue: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    last_triggered: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_by: Mapped[str] = mapped_column(String(64), nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class EmailEvent(Base):
    """Append-only delivery/engagement log that analytics is computed from."""

    __tablename__ = "email_events"
    __table_args__ = (
        Index("ix_email_events_type_occurred", "event_type", "occurred_at"),
        Index("ix_email_events_trigger_recipient", "trigger_id", "recipient_id", "occurred_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    campaign_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("email_campaigns.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    trigger_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("email_triggers.id", ondelete="SET NULL"),
        nullable=True,
    )
    recipient_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    recipient_email: Mapped[str] = mapped_column(String(320), nullable=False)

    # sent | delivered | opened | clicked | bounced | complained | unsubscribed
    event_type: Mapped[str] = mapped_column(String(16), nullable=False)
    # campaign | trigger | transactional
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="campaign")
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    event_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
