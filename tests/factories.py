# tests/factories.py
from __future__ import annotations

import uuid
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from glowglitch.core.clock import utcnow
from glowglitch.core.security import create_access_token
from glowglitch.models.commission import CommissionTransaction
from glowglitch.models.creator import Creator
from glowglitch.models.order import Order
from glowglitch.models.referral import ReferralLink
from glowglitch.models.user import ROLE_CREATOR, User


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id))
    return {"Authorization": f"Bearer {token}"}


async def create_user(db, email: Optional[str] = None, **fields) -> User:
    fields.setdefault("is_active", True)
    fields.setdefault("email_verified", True)
    fields.setdefault("marketing_opt_in", True)
    fields.setdefault("created_at", utcnow() - timedelta(days=1))
    user = User(email=(email or f"user-{uuid.uuid4().hex[:8]}@glowglitch.io").lower(), **fields)
    db.add(user)
    await db.flush()
    return user


async def create_creator(db, status: str = "approved", user: Optional[User] = None, **fields) -> Creator:
    user = user or await create_user(db, role=ROLE_CREATOR)
    fields.setdefault("display_name", "Luna Gold")
    fields.setdefault("payment_method", "paypal")
    fields.setdefault("payment_details", '{"email": "payouts@glowglitch.io"}')
    creator = Creator(
        user_id=user.id,
        creator_code=uuid.uuid4().hex[:8].upper(),
        email=user.email,
        status=status,
        **fields,
    )
    db.add(creator)
    await db.flush()
    return creator


async def create_order(db, total: str = "250.00", **fields) -> Order:
    fields.setdefault("email", "buyer@glowglitch.io")
    fields.setdefault("status", "confirmed")
    fields.setdefault("payment_status", "completed")
    order = Order(
        order_number=f"GG-{uuid.uuid4().hex[:10].upper()}",
        subtotal=Decimal(total),
        total=Decimal(total),
        items=[{"productId": "p1", "name": "Aurora Ring", "quantity": 1, "unitPrice": float(total)}],
        **fields,
    )
    db.add(order)
    await db.flush()
    return order


async def create_link(db, creator: Creator, code: Optional[str] = None, **fields) -> ReferralLink:
    code = code or uuid.uuid4().hex[:12]
    link = ReferralLink(
        creator_id=creator.id,
        link_code=code,
        original_url=f"https://glowglitch.com/products/aurora-ring?ref={creator.creator_code}",
        short_url=f"https://glowglitch.com/r/{code}",
        **fields,
    )
    db.add(link)
    await db.flush()
    return link


async def create_commission(
    db,
    creator: Creator,
    amount: str = "30.00",
    status: str = "approved",
    order: Optional[Order] = None,
    **fields,
) -> CommissionTransaction:
    order = order or await create_order(db, total=str(Decimal(amount) * 10))
    tx = CommissionTransaction(
        creator_id=creator.id,
        order_id=order.id,
        commission_rate=Decimal("10"),
        order_amount=Decimal(order.total),
        commission_amount=Decimal(amount),
        status=status,
        transaction_type="sale",
        **fields,
    )
    db.add(tx)
    await db.flush()
    return tx
