"""Product catalog queries and mutations."""

from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import ConflictError, NotFoundError
from storefront.models.product import Product
from storefront.schemas.product import ProductCreate, ProductSearch, ProductUpdate

PAGE_SIZE = 10
LIKE_ESCAPE = "\\"
REQUIRED_FIELDS = frozenset({"name", "price", "stock"})


def _escape_like(term: str) -> str:
    """Make % and _ in user input match literally."""
    return term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


async def _get(session: AsyncSession, product_id: int) -> Product:
    r = await session.execute(select(Product).where(Product.id == product_id))
    product = r.scalar_one_or_none()
    if product is None:
        raise NotFoundError("Product not found")
    return product


async def _flush_unique(session: AsyncSession) -> None:
    try:
        await session.flush()
    except IntegrityError as e:
        raise ConflictError("A product with this name already exists") from e


async def list_page(session: AsyncSession, page: int, *, hidden: bool = False) -> tuple[list[Product], int]:
    """Return (products on 1-based page, total count) for visible or hidden products."""
    total = (
        await session.execute(select(func.count()).select_from(Product).where(Product.is_hidden.is_(hidden)))
    ).scalar_one()
    r = await session.execute(
        select(Product)
        .where(Product.is_hidden.is_(hidden))
        .order_by(Product.id)
        .offset((page - 1) * PAGE_SIZE)
        .limit(PAGE_SIZE)
    )
    return list(r.scalars().all()), total


async def search(session: AsyncSession, params: ProductSearch) -> list[Product]:
    stmt = select(Product).where(Product.is_hidden.is_(False))
    if params.query:
        stmt = stmt.where(Product.name.ilike(f"%{_escape_like(params.query)}%", escape=LIKE_ESCAPE))
    if params.category:
        stmt = stmt.where(Product.category == params.category)
    if params.min_price is not None:
        stmt = stmt.where(Product.price >= params.min_price)
    if params.max_price is not None:
        stmt = stmt.where(Product.price <= params.max_price)
    r = await session.execute(stmt.order_by(Product.id).limit(PAGE_SIZE * 5))
    return list(r.scalars().all())


async def create_product(session: AsyncSession, body: ProductCreate) -> Product:
    r = await session.execute(select(Product.id).where(Product.name == body.name))
    if r.scalar_one_or_none() is not None:
        raise ConflictError("A product with this name already exists")
    product = Product(**body.model_dump())
    session.add(product)
    await _flush_unique(session)
    await session.refresh(product)
    return product


async def update_product(session: AsyncSession, product_id: int, body: ProductUpdate) -> Product:
    product = await _get(session, product_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        if value is None and key in REQUIRED_FIELDS:
            continue
        setattr(product, key, value)
    await _flush_unique(session)
    await session.refresh(product)
    return product


async def delete_product(session: AsyncSession, product_id: int) -> None:
    product = await _get(session, product_id)
    await session.delete(product)
    await session.flush()


async def set_hidden(session: AsyncSession, product_id: int, hidden: bool) -> Product:
    product = await _get(session, product_id)
    product.is_hidden = hidden
    await session.flush()
    await session.refresh(product)
    return product
