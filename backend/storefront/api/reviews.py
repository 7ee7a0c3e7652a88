"""Product reviews: every route runs session → CSRF → permission; writes touch only the caller's review."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.deps import require_permission
from storefront.core.permissions import Action, Resource
from storefront.db.session import get_db
from storefront.schemas.auth import CurrentUser
from storefront.schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from storefront.services import reviews as review_service

router = APIRouter(prefix="/review", tags=["review"])

Session = Annotated[AsyncSession, Depends(get_db)]


@router.get("/{product_id}", response_model=list[ReviewResponse], summary="Latest reviews for a product")
async def get_reviews(
    session: Session,
    _user: Annotated[CurrentUser, Depends(require_permission(Resource.REVIEW, Action.VIEW))],
    product_id: int,
) -> list[ReviewResponse]:
    return [ReviewResponse.model_validate(r) for r in await review_service.list_reviews(session, product_id)]


@router.post(
    "",
    response_model=ReviewResponse,
    status_code=201,
    summary="Review a product",
    responses={403: {"description": "Not permitted"}, 409: {"description": "Already reviewed"}},
)
async def add_review(
    session: Session,
    user: Annotated[CurrentUser, Depends(require_permission(Resource.REVIEW, Action.CREATE))],
    body: ReviewCreate,
) -> ReviewResponse:
    return ReviewResponse.model_validate(await review_service.add_review(session, user.id, body))


@router.patch("/{product_id}", response_model=ReviewResponse, summary="Update own review")
async def update_review(
    session: Session,
    user: Annotated[CurrentUser, Depends(require_permission(Resource.REVIEW, Action.UPDATE))],
    product_id: int,
    body: ReviewUpdate,
) -> ReviewResponse:
    return ReviewResponse.model_validate(
        await review_service.update_review(session, user.id, product_id, body)
    )


@router.delete("/{product_id}", summary="Delete own review")
async def delete_review(
    session: Session,
    user: Annotated[CurrentUser, Depends(require_permission(Resource.REVIEW, Action.DELETE))],
    product_id: int,
) -> dict:
    await review_service.delete_review(session, user.id, product_id)
    return {"message": "Deleted successfully"}
