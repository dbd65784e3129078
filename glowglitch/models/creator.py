# glowglitch/models/creator.py
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

CREATOR_STATUSES = ("pending", "approved", "suspended", "inactive")
PAYMENT_METHODS = ("paypal", "bank", "stripe")


class Creator(Base):
    """
    Affiliate / influencer account.

    commission_rate is a percentage (10 means 10%). The metrics columns are a
    cached projection of the click and commission ledgers; see
    core.commission.refresh_creator_metrics.
    """

    __tablename__ = "creators"
    __table_args__ = (
        Index("ix_creators_status", "status"),
        Index("ix_creators_total_sales", "total_sales"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    creator_code: Mapped[str] = mapped_column(String(8), nullable=False, unique=True, index=True)
    display_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    profile_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    social_links: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("10.00"))
    minimum_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("50.00"))

    # paypal | bank | stripe ; details is an opaque (JSON) string, never returned unmasked
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default="paypal")
    payment_details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # pending | approved | suspended | inactive
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    total_clicks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_commission: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    conversion_rate: Mapped[Decimal] = mapped_column(Numeric(7, 2), nullable=False, default=Decimal("0.00"))
    last_sale_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    email_notifications: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    public_profile: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    allow_direct_messages: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    suspended_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # admin notes

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def masked_payment_details(self) -> str:
        details = self.payment_details or ""
        return f"***{details[-4:]}" if details else ""
