# tests/test_catalog.py
from __future__ import annotations

import pytest

from factories import auth_headers, create_user


def _product(**overrides):
    body = {
        "name": "Aurora Ring",
        "slug": "aurora-ring",
        "category": "rings",
        "materials": ["Gold", " diamond ", "gold"],
        "description": "Lab-grown diamond solitaire",
        "price": 1250,
    }
    body.update(overrides)
    return body


async def _seed(client, headers):
    products = [
        _product(),
        _product(name="Halo Hoops", slug="halo-hoops", category="earrings", materials=["silver"], price=180, description="Everyday hoops"),
        _product(name="Comet Chain", slug="comet-chain", category="necklaces", materials=["silver", "moissanite"], price=420, description="Tennis chain"),
        _product(name="Vault Piece", slug="vault-piece", category="rings", materials=["platinum"], price=9000, is_active=False),
    ]
    for body in products:
        r = await client.post("/api/admin/products", headers=headers, json=body)
        assert r.status_code == 201


@pytest.mark.asyncio
async def test_create_product_normalizes_materials(client, admin_headers):
    r = await client.post("/api/admin/products", headers=admin_headers, json=_product())
    assert r.status_code == 201
    product = r.json()["data"]["product"]
    assert product["materials"] == ["gold", "diamond"]
    assert product["price"] == 1250.0
    assert product["currency"] == "USD"
    assert product["isActive"] is True

    r = await client.post("/api/admin/products", headers=admin_headers, json=_product(name="Another Aurora"))
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "SLUG_TAKEN"


@pytest.mark.asyncio
async def test_create_product_validation(client, admin_headers):
    r = await client.post("/api/admin/products", headers=admin_headers, json=_product(slug="Not A Slug"))
    assert r.status_code == 422

    r = await client.post("/api/admin/products", headers=admin_headers, json=_product(category="anklets"))
    assert r.status_code == 422

    r = await client.post("/api/admin/products", headers=admin_headers, json=_product(price=0))
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_catalog_requires_admin_for_writes(client, db):
    shopper = await create_user(db)
    await db.commit()

    r = await client.post("/api/admin/products", headers=auth_headers(shopper), json=_product())
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_public_listing_filters(client, admin_headers):
    await _seed(client, admin_headers)

    r = await client.get("/api/products", params={"sort": "price-asc"})
    data = r.json()["data"]
    assert [p["slug"] for p in data["products"]] == ["halo-hoops", "comet-chain", "aurora-ring"]
    assert data["pagination"]["total"] == 3

    r = await client.get("/api/products", params={"material": "silver", "sort": "price-asc"})
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["halo-hoops", "comet-chain"]

    r = await client.get("/api/products", params=[("material", "diamond"), ("material", "moissanite"), ("sort", "name")])
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["aurora-ring", "comet-chain"]

    r = await client.get("/api/products", params={"minPrice": 200, "maxPrice": 2000, "sort": "price-desc"})
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["aurora-ring", "comet-chain"]

    r = await client.get("/api/products", params={"category": "earrings"})
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["halo-hoops"]

    r = await client.get("/api/products", params={"search": "tennis"})
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["comet-chain"]


@pytest.mark.asyncio
async def test_product_by_slug_hides_inactive(client, admin_headers):
    await _seed(client, admin_headers)

    r = await client.get("/api/products/halo-hoops")
    assert r.status_code == 200
    assert r.json()["data"]["product"]["name"] == "Halo Hoops"

    r = await client.get("/api/products/vault-piece")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "PRODUCT_NOT_FOUND"


@pytest.mark.asyncio
async def test_update_and_delete_product(client, admin_headers):
    r = await client.post("/api/admin/products", headers=admin_headers, json=_product())
    product_id = r.json()["data"]["product"]["id"]

    r = await client.patch(
        f"/api/admin/products/{product_id}",
        headers=admin_headers,
        json={"price": 1100, "materials": ["Rose Gold"], "isActive": False},
    )
    assert r.status_code == 200
    updated = r.json()["data"]["product"]
    assert updated["price"] == 1100.0
    assert updated["materials"] == ["rose gold"]
    assert updated["isActive"] is False
    assert updated["slug"] == "aurora-ring"

    r = await client.get("/api/products/aurora-ring")
    assert r.status_code == 404

    r = await client.delete(f"/api/admin/products/{product_id}", headers=admin_headers)
    assert r.status_code == 200

    r = await client.delete(f"/api/admin/products/{product_id}", headers=admin_headers)
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_filters_treat_wildcards_literally(client, admin_headers):
    await _seed(client, admin_headers)

    r = await client.get("/api/products", params={"material": "%"})
    assert r.json()["data"]["pagination"]["total"] == 0

    r = await client.get("/api/products", params={"material": "_old"})
    assert r.json()["data"]["products"] == []

    r = await client.get("/api/products", params={"search": "_"})
    assert r.json()["data"]["pagination"]["total"] == 0

    r = await client.get("/api/products", params={"material": "gold"})
    assert [p["slug"] for p in r.json()["data"]["products"]] == ["aurora-ring"]
