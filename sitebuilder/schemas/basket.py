# sitebuilder/schemas/basket.py
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field


class BasketItemIn(SQLModel):
    """
    One line of PUT /basket.

    product_variant_id may be omitted for products with a single variant;
    the first variant is used.
    """

    product_id: int
    product_variant_id: int | None = None
    quantity: int = Field(gt=0)


class BasketUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    items: list[BasketItemIn]
    code: str | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class BasketItemRead(SQLModel):
    id: int
    product_id: int
    product_variant_id: int
    quantity: int
    raw_price: int
    just_coupon_price: int
    final_raw_price: int
    just_discount_price: int
    final_price_with_coupon_discount: int
    out_of_stock: bool = False
    version: datetime


class BasketRead(SQLModel):
    """
    Current basket of the customer on a site.

    Empty baskets are returned with id=None and no items.
    """

    id: int | None
    site_id: int
    customer_id: int
    discount_id: int | None
    discount_rejection: str | None = None
    items: list[BasketItemRead]
    total_raw_price: int
    total_coupon_discount: int
    total_discount: int
    total_price_with_coupon_discount: int
    currency: str
