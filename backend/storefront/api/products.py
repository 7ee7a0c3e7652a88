"""Product catalog: public paging and search, admin mutations behind the permission guard."""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import require_permission
from storefront.core.permissions import Action, Resource
from storefront.db.session import get_db
from storefront.schemas.auth import CurrentUser
from storefront.schemas.product import (
    ProductCreate,
    ProductPage,
    ProductResponse,
    ProductSearch,
    ProductUpdate,
)
from storefront.services import products as product_service

router = APIRouter(prefix="/product", tags=["product"])

Session = Annotated[AsyncSession, Depends(get_db)]

# (MAX_PAGE - 1) * PAGE_SIZE must fit a 64-bit OFFSET
MAX_PAGE = 100_000


def _page(items, page: int, total: int) -> ProductPage:
    size = product_service.PAGE_SIZE
    return ProductPage(
        items=[ProductResponse.model_validate(p) for p in items],
        page=page,
        page_size=size,
        total=total,
        has_more=page * size < total,
    )


@router.get("/page/{page}", response_model=ProductPage, summary="List visible products")
async def get_page(session: Session, page: Annotated[int, Path(ge=1, le=MAX_PAGE)]) -> ProductPage:
    items, total = await product_service.list_page(session, page)
    return _page(items, page, total)


@router.post("/search", response_model=list[ProductResponse], summary="Search visible products")
async def search_products(session: Session, body: ProductSearch) -> list[ProductResponse]:
    return [ProductResponse.model_validate(p) for p in await product_service.search(session, body)]


@router.get(
    "/hidden",
    response_model=ProductPage,
    summary="List hidden products",
    responses={401: {"description": "Not authenticated"}, 403: {"description": "Not permitted"}},
)
async def get_hidden(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.HIDE))],
    page: Annotated[int, Query(le=MAX_PAGE)] = 1,
) -> ProductPage:
    items, total = await product_service.list_page(session, max(page, 1), hidden=True)
    return _page(items, max(page, 1), total)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=201,
    summary="Create product",
    responses={403: {"description": "Not permitted"}, 409: {"description": "Duplicate name"}},
)
async def create_product(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.CREATE))],
    body: ProductCreate,
) -> ProductResponse:
    return ProductResponse.model_validate(await product_service.create_product(session, body))


@router.patch("/hide/{product_id}", response_model=ProductResponse, summary="Hide product")
async def hide_product(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.HIDE))],
    product_id: int,
) -> ProductResponse:
    return ProductResponse.model_validate(await product_service.set_hidden(session, product_id, True))


@router.patch("/restore/{product_id}", response_model=ProductResponse, summary="Restore hidden product")
async def restore_product(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.UPDATE))],
    product_id: int,
) -> ProductResponse:
    return ProductResponse.model_validate(await product_service.set_hidden(session, product_id, False))


@router.patch("/{product_id}", response_model=ProductResponse, summary="Update product")
async def update_product(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.UPDATE))],
    product_id: int,
    body: ProductUpdate,
) -> ProductResponse:
    return ProductResponse.model_validate(await product_service.update_product(session, product_id, body))


@router.delete("/{product_id}", summary="Delete product")
async def delete_product(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.PRODUCT, Action.DELETE))],
    product_id: int,
) -> dict:
    await product_service.delete_product(session, product_id)
    return {"deleted": product_id}
