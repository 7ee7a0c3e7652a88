"""Review routes: USER owns its reviews, ADMIN may only view and delete, product rating follows the mean."""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import create_user, login
from storefront.db.session import async_session_maker
from storefront.models.product import Product
from storefront.models.review import Review


async def _product(name: str = "Kettle") -> int:
    async with async_session_maker() as session:
        product = Product(name=name, price=10, stock=1)
        session.add(product)
        await session.commit()
        return product.id


async def _rating(product_id: int) -> float:
    async with async_session_maker() as session:
        r = await session.execute(select(Product.rating).where(Product.id == product_id))
        return float(r.scalar_one())


@pytest.mark.asyncio
async def test_user_creates_and_updates_review(client: AsyncClient, user_session, test_user):
    product_id = await _product()
    created = await client.post(
        "/review", json={"productId": product_id, "rating": 4, "comment": "Boils fast"}, headers=user_session
    )
    assert created.status_code == 201
    data = created.json()
    assert data["user_id"] == test_user[0]
    assert data["product_id"] == product_id
    assert data["rating"] == 4
    assert await _rating(product_id) == 4.0

    updated = await client.patch(f"/review/{product_id}", json={"rating": 2}, headers=user_session)
    assert updated.status_code == 200
    assert updated.json()["rating"] == 2
    assert updated.json()["comment"] == "Boils fast"
    assert await _rating(product_id) == 2.0


@pytest.mark.asyncio
async def test_duplicate_review_conflicts(client: AsyncClient, user_session):
    product_id = await _product()
    body = {"productId": product_id, "rating": 5}
    assert (await client.post("/review", json=body, headers=user_session)).status_code == 201
    again = await client.post("/review", json=body, headers=user_session)
    assert again.status_code == 409
    assert again.json()["message"] == "Review already exists for this user and product"


@pytest.mark.asyncio
async def test_rating_is_mean_of_reviews(client: AsyncClient, clean_db):
    product_id = await _product()
    first = await create_user("a@test.com", username="a")
    second = await create_user("b@test.com", username="b")
    async with async_session_maker() as session:
        session.add_all(
            [
                Review(user_id=first.id, product_id=product_id, rating=5),
                Review(user_id=second.id, product_id=product_id, rating=4),
            ]
        )
        await session.commit()

    third = await create_user("c@test.com", username="c")
    headers = await login(client, third.email)
    created = await client.post("/review", json={"productId": product_id, "rating": 1}, headers=headers)
    assert created.status_code == 201
    assert await _rating(product_id) == pytest.approx(3.33)


@pytest.mark.asyncio
async def test_admin_cannot_create_review(client: AsyncClient, admin_session):
    product_id = await _product()
    resp = await client.post("/review", json={"productId": product_id, "rating": 3}, headers=admin_session)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You don't have permission to access this resource"


@pytest.mark.asyncio
async def test_create_requires_csrf(client: AsyncClient, user_session):
    product_id = await _product()
    resp = await client.post("/review", json={"productId": product_id, "rating": 3})
    assert resp.status_code == 403
    assert resp.json()["message"] == "CSRF token validation failed"


@pytest.mark.asyncio
async def test_reviews_require_session(client: AsyncClient, clean_db):
    product_id = await _product()
    assert (await client.get(f"/review/{product_id}")).status_code == 401


@pytest.mark.asyncio
async def test_rating_out_of_range(client: AsyncClient, user_session):
    product_id = await _product()
    resp = await client.post("/review", json={"productId": product_id, "rating": 6}, headers=user_session)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_unknown_product(client: AsyncClient, user_session):
    assert (await client.get("/review/999999")).status_code == 404
    resp = await client.post("/review", json={"productId": 999999, "rating": 3}, headers=user_session)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Product not found"


@pytest.mark.asyncio
async def test_list_returns_newest_five(client: AsyncClient, admin_session):
    product_id = await _product()
    base = datetime(2026, 1, 1)
    users = [await create_user(f"r{i}@test.com", username=f"r{i}") for i in range(7)]
    async with async_session_maker() as session:
        for i, user in enumerate(users):
            session.add(
                Review(user_id=user.id, product_id=product_id, rating=3, created_at=base + timedelta(days=i))
            )
        await session.commit()

    resp = await client.get(f"/review/{product_id}")
    assert resp.status_code == 200
    reviews = resp.json()
    assert len(reviews) == 5
    assert [r["created_at"][:10] for r in reviews] == [
        "2026-01-07",
        "2026-01-06",
        "2026-01-05",
        "2026-01-04",
        "2026-01-03",
    ]


@pytest.mark.asyncio
async def test_delete_own_review(client: AsyncClient, user_session):
    product_id = await _product()
    await client.post("/review", json={"productId": product_id, "rating": 5}, headers=user_session)

    deleted = await client.delete(f"/review/{product_id}", headers=user_session)
    assert deleted.status_code == 200
    assert deleted.json() == {"message": "Deleted successfully"}
    assert await _rating(product_id) == 0.0

    again = await client.delete(f"/review/{product_id}", headers=user_session)
    assert again.status_code == 404
    assert again.json()["message"] == "Review not found"


@pytest.mark.asyncio
async def test_update_missing_review(client: AsyncClient, user_session):
    product_id = await _product()
    resp = await client.patch(f"/review/{product_id}", json={"rating": 1}, headers=user_session)
    assert resp.status_code == 404
