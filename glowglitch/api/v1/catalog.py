# glowglitch/api/v1/catalog.py
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from glowglitch.api.deps.admin import require_admin
from glowglitch.core.errors import ConflictError, NotFoundError
from glowglitch.core.pagination import PageParams, page_params
from glowglitch.core.responses import ok
from glowglitch.db.session import get_db
from glowglitch.models.product import Product
from glowglitch.models.user import User
from glowglitch.schemas.catalog import ProductCategory, ProductCreate, ProductOut, ProductUpdate

router = APIRouter(prefix="/products", tags=["catalog"])
admin_router = APIRouter(prefix="/admin/products", tags=["admin-catalog"])

SORTS = {
    "newest": (Product.created_at.desc(),),
    "price-asc": (Product.price.asc(),),
    "price-desc": (Product.price.desc(),),
    "name": (Product.name.asc(),),
}


@router.get("")
async def list_products(
    category: Optional[ProductCategory] = None,
    material: Optional[List[str]] = Query(None),
    min_price: Optional[Decimal] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(None, alias="maxPrice", ge=0),
    search: Optional[str] = Query(None, max_length=200),
    sort: Literal["newest", "price-asc", "price-desc", "name"] = "newest",
    paging: PageParams = Depends(page_params),
    db: AsyncSession = Depends(get_db),
):
    filters = [Product.is_active.is_(True)]
    if category is not None:
        filters.append(Product.category == category)
    if material:
        # materials is a JSON array of lowercase strings; match any requested one
        as_text = cast(Product.materials, String)
        wanted = {m.strip().lower() for m in material if m.strip()}
        if wanted:
            filters.append(or_(*(as_text.contains(f'"{m}"', autoescape=True) for m in sorted(wanted))))
    if min_price is not None:
        filters.append(Product.price >= min_price)
    if max_price is not None:
        filters.append(Product.price <= max_price)
    if search:
        term = search.strip()
        filters.append(
            or_(Product.name.icontains(term, autoescape=True), Product.description.icontains(term, autoescape=True))
        )

    total = (await db.execute(select(func.count()).select_from(Product).where(*filters))).scalar_one()
    products = (
        await db.execute(
            select(Product)
            .where(*filters)
            .order_by(*SORTS[sort], Product.id)
            .offset(paging.offset)
            .limit(paging.limit)
        )
    ).scalars().all()

    return ok({"products": [ProductOut.model_validate(p) for p in products], "pagination": paging.describe(total)})


@router.get("/{slug}")
async def get_product(slug: str, db: AsyncSession = Depends(get_db)):
    product = (
        await db.execute(select(Product).where(Product.slug == slug, Product.is_active.is_(True)))
    ).scalars().first()
    if not product:
        raise NotFoundError("PRODUCT_NOT_FOUND", "Product not found")
    return ok({"product": ProductOut.model_validate(product)})


async def _get_product_or_404(db: AsyncSession, product_id: uuid.UUID) -> Product:
    product = await db.get(Product, product_id)
    if not product:
        raise NotFoundError("PRODUCT_NOT_FOUND", "Product not found")
    return product


@admin_router.post("", status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = Product(**payload.model_dump())
    db.add(product)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("SLUG_TAKEN", f"Product slug '{payload.slug}' already exists")
    return ok({"product": ProductOut.model_validate(product)})


@admin_router.patch("/{product_id}")
async def update_product(
    product_id: uuid.UUID,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = await _get_product_or_404(db, product_id)

    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(product, field, value)

    await db.commit()
    return ok({"product": ProductOut.model_validate(product)})


@admin_router.delete("/{product_id}")
async def delete_product(
    product_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin),
):
    product = await _get_product_or_404(db, product_id)
    await db.delete(product)
    await db.commit()
    return ok({"message": "Product deleted"})
