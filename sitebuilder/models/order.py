# sitebuilder/models/order.py
from datetime import datetime

from sqlalchemy import BigInteger
from sqlmodel import Field

from sitebuilder.models.base import TimestampMixin
from sitebuilder.models.enums import Courier, GatewayKind, OrderStatus


class Order(TimestampMixin, table=True):
    """
    Immutable snapshot of a priced basket at checkout time.

    Lifecycle:
      draft -> awaiting_payment -> paid -> committed
      draft | awaiting_payment -> failed
      awaiting_payment -> abandoned   (timeout / customer cancel)
      awaiting_payment -> needs_reconciliation (paid, commit failed)

    total_final_price = total_price_with_coupon_discount + courier_price
    and is the amount charged through the gateway.
    """

    __tablename__ = "orders"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    address_id: int = Field(foreign_key="addresses.id")
    discount_id: int | None = Field(default=None, foreign_key="discounts.id")

    gateway: GatewayKind
    courier: Courier = Field(default=Courier.POST)
    description: str | None = Field(default=None)

    status: OrderStatus = Field(default=OrderStatus.DRAFT, index=True)
    failure_reason: str | None = Field(default=None)

    total_raw_price: int = Field(default=0, sa_type=BigInteger)
    total_coupon_discount: int = Field(default=0, sa_type=BigInteger)
    total_discount: int = Field(default=0, sa_type=BigInteger)
    total_price_with_coupon_discount: int = Field(default=0, sa_type=BigInteger)
    courier_price: int = Field(default=0, sa_type=BigInteger)
    total_final_price: int = Field(default=0, sa_type=BigInteger)
    # grams
    total_weight: int = Field(default=0)

    paid_at: datetime | None = Field(default=None)


class OrderItem(TimestampMixin, table=True):
    """
    Line item of an order; same price breakdown as the basket item it
    was copied from. coupon_id is set when the product's coupon
    contributed to just_coupon_price.
    """

    __tablename__ = "order_items"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="orders.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    product_variant_id: int = Field(foreign_key="product_variants.id")
    coupon_id: int | None = Field(default=None, foreign_key="coupons.id")
    quantity: int = Field(gt=0)

    raw_price: int = Field(default=0, sa_type=BigInteger)
    just_coupon_price: int = Field(default=0, sa_type=BigInteger)
    final_raw_price: int = Field(default=0, sa_type=BigInteger)
    just_discount_price: int = Field(default=0, sa_type=BigInteger)
    final_price_with_coupon_discount: int = Field(default=0, sa_type=BigInteger)
