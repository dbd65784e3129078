# glowglitch/schemas/catalog.py
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import Field, field_validator

from glowglitch.schemas.common import APIModel, Money

ProductCategory = Literal["rings", "necklaces", "earrings", "bracelets"]


def _normalize_materials(value: Optional[list[str]]) -> Optional[list[str]]:
    if value is None:
        return None
    return list(dict.fromkeys(m.strip().lower() for m in value if m and m.strip()))


class ProductBase(APIModel):
    name: str = Field(..., min_length=1, max_length=255)
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
    category: ProductCategory
    materials: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    image_url: Optional[str] = None

    price: Decimal = Field(..., gt=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("materials")
    @classmethod
    def validate_materials(cls, v: list[str]) -> list[str]:
        return _normalize_materials(v) or []


class ProductCreate(ProductBase):
    creator_id: Optional[uuid.UUID] = None
    is_active: bool = True


class ProductUpdate(APIModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[ProductCategory] = None
    materials: Optional[list[str]] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    price: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    is_active: Optional[bool] = None
    creator_id: Optional[uuid.UUID] = None

    @field_validator("materials")
    @classmethod
    def validate_materials(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        return _normalize_materials(v)


class ProductOut(APIModel):
    id: uuid.UUID
    name: str
    slug: str
    category: str
    materials: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    image_url: Optional[str] = None
    price: Money
    currency: str
    is_active: bool
    creator_id: Optional[uuid.UUID] = None

    created_at: datetime
    updated_at: datetime
