"""Pydantic schemas for the product catalog API."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    stock: int = Field(0, ge=0)
    category: str | None = Field(None, max_length=100)


class ProductUpdate(BaseModel):
    """Partial update; omitted fields keep their value."""

    name: str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    price: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    stock: int | None = Field(None, ge=0)
    category: str | None = Field(None, max_length=100)


class ProductSearch(BaseModel):
    query: str | None = Field(None, max_length=200)
    category: str | None = Field(None, max_length=100)
    min_price: Decimal | None = Field(None, ge=0)
    max_price: Decimal | None = Field(None, ge=0)


class ProductResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    price: Decimal
    stock: int
    category: str | None
    is_hidden: bool
    rating: Decimal = Decimal("0")


class ProductPage(BaseModel):
    items: list[ProductResponse]
    page: int
    page_size: int
    total: int
    has_more: bool
