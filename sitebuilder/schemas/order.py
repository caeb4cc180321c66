# sitebuilder/schemas/order.py
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from sitebuilder.models.enums import Courier, GatewayKind, OrderStatus


# ----- Pricing preview -----


class PriceItemIn(SQLModel):
    basket_item_id: int | None = None
    product_id: int
    product_variant_id: int | None = None
    quantity: int = Field(gt=0)


class PriceRequest(SQLModel):
    """
    Payload for POST /order/price.

    customer_id is optional; when given it must match the token.
    """

    model_config = ConfigDict(extra="forbid")

    site_id: int
    customer_id: int | None = None
    code: str | None = None
    items: list[PriceItemIn]
    is_order_verify: bool = False

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class PricedItemRead(SQLModel):
    basket_item_id: int | None
    product_id: int
    product_variant_id: int
    quantity: int
    unit_price: int
    raw_price: int
    just_coupon_price: int
    final_raw_price: int
    just_discount_price: int
    final_price_with_coupon_discount: int
    out_of_stock: bool


class PriceTotals(SQLModel):
    total_raw_price: int
    total_coupon_discount: int
    total_final_raw_price: int
    total_discount: int
    total_price_with_coupon_discount: int


class PriceResponse(SQLModel):
    items: list[PricedItemRead]
    totals: PriceTotals
    currency: str
    discount_id: int | None = None
    discount_rejection: str | None = None


# ----- Checkout -----


class BasketVersion(SQLModel):
    basket_item_id: int
    version: datetime


class OrderRequestCreate(SQLModel):
    """
    Payload for POST /order/request.

    basket_versions: the version of every basket item as the client last
    saw it; a mismatch rejects the checkout with 409 BasketChanged.
    """

    model_config = ConfigDict(extra="forbid")

    gateway: GatewayKind
    final_front_return_url: str = Field(min_length=1)
    site_id: int
    address_id: int
    courier: Courier = Courier.POST
    description: str | None = None
    basket_versions: list[BasketVersion] = []

    @field_validator("description")
    @classmethod
    def normalize_description(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v or None


class PaymentRedirectResponse(SQLModel):
    redirect_url: str
    tracking_number: int


# ----- Order views -----


class OrderItemRead(SQLModel):
    id: int
    order_id: int
    product_id: int
    product_variant_id: int
    coupon_id: int | None
    quantity: int
    raw_price: int
    just_coupon_price: int
    final_raw_price: int
    just_discount_price: int
    final_price_with_coupon_discount: int


class OrderRead(SQLModel):
    id: int
    site_id: int
    customer_id: int
    address_id: int
    discount_id: int | None
    gateway: GatewayKind
    courier: Courier
    description: str | None
    status: OrderStatus
    failure_reason: str | None
    total_raw_price: int
    total_coupon_discount: int
    total_discount: int
    total_price_with_coupon_discount: int
    courier_price: int
    total_final_price: int
    total_weight: int
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime


class OrderWithItemsRead(OrderRead):
    items: list[OrderItemRead]


class OrderPage(SQLModel):
    items: list[OrderRead]
    total_count: int
    page: int
    page_size: int


class AbandonResult(SQLModel):
    abandoned_order_ids: list[int]
