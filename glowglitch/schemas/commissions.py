# glowglitch/schemas/commissions.py
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field

from glowglitch.schemas.common import APIModel, Money


class TransactionOut(APIModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    order_id: uuid.UUID
    link_id: Optional[uuid.UUID] = None
    click_id: Optional[uuid.UUID] = None
    payout_id: Optional[uuid.UUID] = None
    commission_rate: Money
    order_amount: Money
    commission_amount: Money
    status: str
    transaction_type: str = Field(serialization_alias="type")
    notes: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None


class ApproveCommissionsRequest(APIModel):
    transaction_ids: list[uuid.UUID] = Field(default_factory=list)
    admin_notes: Optional[str] = Field(default=None, max_length=1000)
