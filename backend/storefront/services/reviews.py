"""Product reviews: one per user and product, with the product's mean rating kept in step."""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import ConflictError, NotFoundError
from storefront.models.product import Product
from storefront.models.review import Review
from storefront.schemas.review import ReviewCreate, ReviewUpdate

logger = logging.getLogger(__name__)

REVIEWS_PER_PAGE = 5
DUPLICATE_REVIEW = "Review already exists for this user and product"


async def _require_product(session: AsyncSession, product_id: int) -> Product:
    r = await session.execute(select(Product).where(Product.id == product_id))
    product = r.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def _own_review(session: AsyncSession, user_id: int, product_id: int) -> Review:
    r = await session.execute(
        select(Review).where(Review.user_id == user_id, Review.product_id == product_id)
    )
    review = r.scalar_one_or_none()
    if review is None:
        raise NotFoundError("Review not found")
    return review


async def _recalculate_rating(session: AsyncSession, product: Product) -> None:
    avg = (
        await session.execute(select(func.avg(Review.rating)).where(Review.product_id == product.id))
    ).scalar_one()
    product.rating = Decimal(str(avg or 0)).quantize(Decimal("0.01"))
    await session.flush()


async def list_reviews(session: AsyncSession, product_id: int) -> list[Review]:
    """Newest reviews first, capped at REVIEWS_PER_PAGE."""
    await _require_product(session, product_id)
    r = await session.execute(
        select(Review)
        .where(Review.product_id == product_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(REVIEWS_PER_PAGE)
    )
    return list(r.scalars().all())


async def add_review(session: AsyncSession, user_id: int, body: ReviewCreate) -> Review:
    product = await _require_product(session, body.product_id)
    r = await session.execute(
        select(Review.id).where(Review.user_id == user_id, Review.product_id == product.id)
    )
    if r.scalar_one_or_none() is not None:
        raise ConflictError(DUPLICATE_REVIEW)
    review = Review(user_id=user_id, product_id=product.id, rating=body.rating, comment=body.comment)
    session.add(review)
    try:
        await session.flush()
    except IntegrityError as e:
        raise ConflictError(DUPLICATE_REVIEW) from e
    await _recalculate_rating(session, product)
    await session.refresh(review)
    logger.info("Review added for product %s by user %s", product.id, user_id)
    return review


async def update_review(session: AsyncSession, user_id: int, product_id: int, body: ReviewUpdate) -> Review:
    product = await _require_product(session, product_id)
    review = await _own_review(session, user_id, product_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        if value is None and key == "rating":
            continue
        setattr(review, key, value)
    await session.flush()
    await _recalculate_rating(session, product)
    await session.refresh(review)
    return review


async def delete_review(session: AsyncSession, user_id: int, product_id: int) -> None:
    product = await _require_product(session, product_id)
    review = await _own_review(session, user_id, product_id)
    await session.delete(review)
    await session.flush()
    await _recalculate_rating(session, product)
