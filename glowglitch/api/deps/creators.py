from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.v1.auth import get_current_user
from glowglitch.crud.creators import get_creator_by_user
from glowglitch.db.session import get_db
from glowglitch.models.creator import Creator
from glowglitch.models.user import User


async def require_creator(
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Creator:
    """Creator profile of the caller. Suspended and inactive creators are locked out of self-service."""
    creator = await get_creator_by_user(db, user.id)
    if creator is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Creator profile required")
    if creator.status in {"suspended", "inactive"}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Creator account is {creator.status}")
    return creator


async def require_approved_creator(creator: Creator = Depends(require_creator)) -> Creator:
    if creator.status != "approved":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Creator account is pending approval")
    return creator
