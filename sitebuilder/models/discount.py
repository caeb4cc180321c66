# sitebuilder/models/discount.py
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint
from sqlmodel import SQLModel, Field, UniqueConstraint

from sitebuilder.core.clock import utcnow
from sitebuilder.models.base import TimestampMixin, SoftDeleteMixin
from sitebuilder.models.enums import DiscountType


class Discount(TimestampMixin, SoftDeleteMixin, table=True):
    """
    Site-level discount code.

    A customer may redeem a given discount at most once; the unique
    constraint on CustomerDiscount enforces it at commit time.
    """

    __tablename__ = "discounts"
    __table_args__ = (
        UniqueConstraint("site_id", "code"),
        CheckConstraint("quantity >= 0", name="ck_discount_quantity_non_negative"),
    )

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id")
    code: str = Field(max_length=50, index=True)
    quantity: int = Field(default=0, ge=0)
    type: DiscountType
    value: int = Field(ge=0, sa_type=BigInteger)
    expiry_date: datetime
    version: datetime = Field(default_factory=utcnow)


class CustomerDiscount(SQLModel, table=True):
    """
    Redemption record: customer_id used discount_id in order_id.
    """

    __tablename__ = "customer_discounts"
    __table_args__ = (UniqueConstraint("customer_id", "discount_id"),)

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    discount_id: int = Field(foreign_key="discounts.id", index=True)
    order_id: int | None = Field(default=None, foreign_key="orders.id")
    created_at: datetime = Field(default_factory=utcnow)
