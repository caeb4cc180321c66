# sitebuilder/models/basket.py
from datetime import datetime

from sqlalchemy import BigInteger
from sqlmodel import Field, UniqueConstraint

from sitebuilder.core.clock import utcnow
from sitebuilder.models.base import TimestampMixin


class Basket(TimestampMixin, table=True):
    """
    Pre-checkout basket. Exactly one per (customer, site).

    Totals are the sums of the item fields as of the last pricing run.
    """

    __tablename__ = "baskets"
    __table_args__ = (UniqueConstraint("customer_id", "site_id"),)

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    discount_id: int | None = Field(default=None, foreign_key="discounts.id")

    total_raw_price: int = Field(default=0, sa_type=BigInteger)
    total_coupon_discount: int = Field(default=0, sa_type=BigInteger)
    total_discount: int = Field(default=0, sa_type=BigInteger)
    total_price_with_coupon_discount: int = Field(default=0, sa_type=BigInteger)


class BasketItem(TimestampMixin, table=True):
    """
    Line of a basket.

    version is refreshed on every pricing run; checkout compares it with
    the value the client last observed.
    """

    __tablename__ = "basket_items"

    id: int | None = Field(default=None, primary_key=True)
    basket_id: int = Field(foreign_key="baskets.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    product_variant_id: int = Field(foreign_key="product_variants.id", index=True)
    quantity: int = Field(gt=0)

    raw_price: int = Field(default=0, sa_type=BigInteger)
    just_coupon_price: int = Field(default=0, sa_type=BigInteger)
    final_raw_price: int = Field(default=0, sa_type=BigInteger)
    just_discount_price: int = Field(default=0, sa_type=BigInteger)
    final_price_with_coupon_discount: int = Field(default=0, sa_type=BigInteger)

    version: datetime = Field(default_factory=utcnow)
