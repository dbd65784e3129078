# glowglitch/models/referral.py
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


class ReferralLink(Base):
    __tablename__ = "referral_links"
    __table_args__ = (
        Index("ix_referral_links_creator_created", "creator_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True,
    )

    link_code: Mapped[str] = mapped_column(String(12), nullable=False, unique=True, index=True)
    custom_alias: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, unique=True)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    short_url: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    utm: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_click_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    conversion_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_clicked_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ReferralClick(Base):
    __tablename__ = "referral_clicks"
    __table_args__ = (
        Index("ix_referral_clicks_link_session", "link_id", "session_id"),
        Index("ix_referral_clicks_creator_clicked", "creator_id", "clicked_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    link_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("referral_links.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
    )

    ip_address: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    user_agent: Mapped[str] = mapped_column(Text, nullable=False, default="")
    session_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    referrer: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    device_type: Mapped[str] = mapped_column(String(16), nullable=False, default="desktop")  # desktop | mobile | tablet

    utm_source: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    utm_medium: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    utm_campaign: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    utm_term: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    utm_content: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    converted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="SET NULL"),
        nullable=True,
    )
    conversion_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    clicked_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, index=True)
