# glowglitch/schemas/payouts.py
from __future__ import annotations

import json
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional, Union

from pydantic import Field, field_validator

from glowglitch.schemas.common import APIModel, Money
from glowglitch.schemas.creators import PaymentMethod, mask_details


class PayoutOut(APIModel):
    id: uuid.UUID
    creator_id: uuid.UUID
    amount: Money
    currency: str
    transaction_ids: list[str] = Field(default_factory=list)
    payment_method: str
    payment_details: str = ""
    status: str
    payout_date: datetime
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime

    @field_validator("payment_details")
    @classmethod
    def mask(cls, v: str) -> str:
        return mask_details(v)


class PayoutRequest(APIModel):
    amount: Decimal = Field(gt=0)
    transaction_ids: Optional[list[uuid.UUID]] = None
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[Union[dict[str, Any], str]] = None

    def encoded_payment_details(self) -> Optional[str]:
        if isinstance(self.payment_details, dict):
            return json.dumps(self.payment_details)
        return self.payment_details


class PayoutActionRequest(APIModel):
    action: Literal["cancel"]
