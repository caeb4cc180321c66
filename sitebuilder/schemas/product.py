# sitebuilder/schemas/product.py
import re
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from sitebuilder.models.enums import DiscountType, ProductAttributeType, ProductStatus

SLUG_RE = re.compile(r"^[a-z0-9؀-ۿ]+(?:-[a-z0-9؀-ۿ]+)*$")


def validate_slug(v: str) -> str:
    v = v.strip().lower()
    if not SLUG_RE.match(v):
        raise ValueError("slug may only contain letters, digits and single hyphens")
    return v


class VariantIn(SQLModel):
    name: str = Field(min_length=1, max_length=255)
    price: int = Field(ge=0)
    stock: int = Field(default=0, ge=0)


class VariantUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    price: int | None = Field(default=None, ge=0)
    stock: int | None = Field(default=None, ge=0)


class CouponIn(SQLModel):
    """
    Product coupon. type accepts "value" as a synonym of "fixed".
    """

    quantity: int = Field(ge=0)
    type: DiscountType
    value: int = Field(ge=0)
    expiry_date: datetime

    @field_validator("value")
    @classmethod
    def percentage_bound(cls, v: int, info) -> int:
        if info.data.get("type") == DiscountType.PERCENTAGE and v > 100:
            raise ValueError("percentage cannot exceed 100")
        return v


class AttributeIn(SQLModel):
    type: ProductAttributeType = ProductAttributeType.ATTRIBUTE
    name: str = Field(min_length=1, max_length=100)
    value: str | None = Field(default=None, max_length=255)


class ProductCreate(SQLModel):
    """
    Payload for creating a product with its variants.

    Backend derives:
      - user_id from the site owner
      - counters (selling/visited/review/rate) start at 0
    """

    model_config = ConfigDict(extra="forbid")

    site_id: int
    name: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: ProductStatus = ProductStatus.ACTIVE
    weight: int = Field(default=0, ge=0)
    free_send: bool = False
    variants: list[VariantIn] = Field(min_length=1)
    coupon: CouponIn | None = None
    attributes: list[AttributeIn] = []
    category_ids: list[int] = []

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str) -> str:
        return validate_slug(v)

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v


class ProductUpdate(SQLModel):
    """
    Partial update. coupon: omitted = unchanged, null = remove.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=255)
    slug: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: ProductStatus | None = None
    weight: int | None = Field(default=None, ge=0)
    free_send: bool | None = None
    coupon: CouponIn | None = None
    attributes: list[AttributeIn] | None = None
    category_ids: list[int] | None = None

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_slug(v)


class VariantRead(SQLModel):
    id: int
    product_id: int
    name: str
    price: int
    stock: int
    version: datetime


class CouponRead(SQLModel):
    id: int
    quantity: int
    type: DiscountType
    value: int
    expiry_date: datetime


class AttributeRead(SQLModel):
    type: ProductAttributeType
    name: str
    value: str | None


class ProductRead(SQLModel):
    id: int
    site_id: int
    name: str
    slug: str
    description: str | None
    status: ProductStatus
    weight: int
    free_send: bool
    selling_count: int
    visited_count: int
    review_count: int
    rate: float
    created_at: datetime
    updated_at: datetime


class ProductDetailRead(ProductRead):
    variants: list[VariantRead]
    coupon: CouponRead | None
    attributes: list[AttributeRead]
    category_ids: list[int]


class ProductPage(SQLModel):
    items: list[ProductDetailRead]
    total_count: int
    page: int
    page_size: int
