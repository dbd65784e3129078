# glowglitch/models/user.py
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import Boolean, Date, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from glowglitch.core.clock import utcnow
from glowglitch.db.base import Base
from glowglitch.db.types import JSONType, UTCDateTime, UUIDType

ROLE_ADMIN = "ADMIN"
ROLE_CREATOR = "CREATOR"
ROLE_CUSTOMER = "CUSTOMER"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True, nullable=False)

    # Email-first magic code auth
    magic_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    magic_code_expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # ADMIN | CREATOR | CUSTOMER
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_CUSTOMER)

    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)  # ISO-3166-1 alpha-2
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    birthday: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    marketing_opt_in: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Denormalized purchase stats used by segmentation
    total_spent: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    order_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_purchase_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    tags: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)

    # Lifecycle email bookkeeping (trigger processing)
    welcome_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    winback_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    birthday_email_sent: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)  # YYYY-MM-DD

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def full_name(self) -> Optional[str]:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) or None

    @property
    def is_admin(self) -> bool:
        return (self.role or "").upper() == ROLE_ADMIN

    def segment_attributes(self) -> dict[str, Any]:
        """Flat view of the customer used when evaluating segment rules."""
        days_since = None
        if self.last_purchase_at is not None:
            days_since = (utcnow() - self.last_purchase_at).days
        return {
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "country": self.country,
            "city": self.city,
            "totalSpent": float(self.total_spent or 0),
            "orderCount": self.order_count or 0,
            "lastPurchase": self.last_purchase_at,
            "daysSinceLastPurchase": days_since,
            "tags": list(self.tags or []),
            "createdAt": self.created_at,
        }

    @staticmethod
    def normalize_email(value: str) -> str:
        return value.strip().lower()
