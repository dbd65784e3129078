# glowglitch/models/commission.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from glowglitch.core.clock import utcnow
from glowglitch.db.base import Base
from glowglitch.db.types import JSONType, UTCDateTime, UUIDType

TRANSACTION_STATUSES = ("pending", "approved", "paid", "cancelled")
TRANSACTION_TYPES = ("sale", "return", "adjustment")
PAYOUT_STATUSES = ("pending", "processing", "completed", "failed", "cancelled")


class CommissionTransaction(Base):
    """
    Commission ledger row.

    Return rows carry negative order/commission amounts so that summing the
    ledger per creator yields the net position.
    """

    __tablename__ = "commission_transactions"
    __table_args__ = (
        Index("ix_commission_tx_creator_status", "creator_id", "status"),
        Index("ix_commission_tx_status_created", "status", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    link_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("referral_links.id", ondelete="SET NULL"),
        nullable=True,
    )
    click_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("referral_clicks.id", ondelete="SET NULL"),
        nullable=True,
    )
    payout_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("creator_payouts.id", ondelete="SET NULL"),
        nullable=True,
    )

    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    order_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # pending | approved | paid | cancelled
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    # sale | return | adjustment ("type" would shadow the builtin on the class)
    transaction_type: Mapped[str] = mapped_column("type", String(16), nullable=False, default="sale")

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    processed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)


class CreatorPayout(Base):
    __tablename__ = "creator_payouts"
    __table_args__ = (
        Index("ix_creator_payouts_creator_created", "creator_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    creator_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("creators.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    transaction_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    payment_details: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # pending | processing | completed | failed | cancelled
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending", index=True)

    payout_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def masked_payment_details(self) -> str:
        details = self.payment_details or ""
        return f"***{details[-4:]}" if details else ""
