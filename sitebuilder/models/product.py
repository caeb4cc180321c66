# sitebuilder/models/product.py
from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint
from sqlmodel import SQLModel, Field, UniqueConstraint

from sitebuilder.core.clock import utcnow
from sitebuilder.models.base import TimestampMixin, SoftDeleteMixin
from sitebuilder.models.enums import (
    DiscountType,
    ProductAttributeType,
    ProductStatus,
)


class Product(TimestampMixin, SoftDeleteMixin, table=True):
    """
    Catalog entry of a site.

    - Owns >= 1 ProductVariant (price/stock live on the variant).
    - Owns 0..1 Coupon.
    - slug is unique within a site.
    """

    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("site_id", "slug"),)

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)

    name: str = Field(max_length=255, index=True)
    slug: str = Field(max_length=255, index=True)
    description: str | None = Field(default=None)

    status: ProductStatus = Field(default=ProductStatus.ACTIVE, index=True)

    # grams
    weight: int = Field(default=0, ge=0)
    free_send: bool = Field(default=False)

    selling_count: int = Field(default=0, ge=0)
    visited_count: int = Field(default=0, ge=0)
    review_count: int = Field(default=0, ge=0)
    rate: float = Field(default=0, ge=0)


class ProductVariant(TimestampMixin, table=True):
    """
    Purchasable variant of a product.

    stock is only ever decremented through a conditional UPDATE
    (see ProductRepository.decrease_stock); the CHECK constraint is the
    last line of defence against underflow.
    """

    __tablename__ = "product_variants"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_variant_stock_non_negative"),)

    id: int | None = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    name: str = Field(max_length=255)
    price: int = Field(ge=0, sa_type=BigInteger)
    stock: int = Field(default=0, ge=0)
    version: datetime = Field(default_factory=utcnow)


class Coupon(TimestampMixin, table=True):
    """
    Product-level coupon. At most one per product.

    Valid iff quantity > 0 and now < expiry_date.
    """

    __tablename__ = "coupons"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_coupon_quantity_non_negative"),)

    id: int | None = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", unique=True, index=True)
    quantity: int = Field(default=0, ge=0)
    type: DiscountType
    value: int = Field(ge=0, sa_type=BigInteger)
    expiry_date: datetime
    version: datetime = Field(default_factory=utcnow)


class ProductAttribute(SQLModel, table=True):
    """
    Free-form attribute or badge attached to a product.

    Backs the `product_attributes` and `badges` list filters.
    """

    __tablename__ = "product_attributes"

    id: int | None = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    type: ProductAttributeType = Field(default=ProductAttributeType.ATTRIBUTE, index=True)
    name: str = Field(max_length=100, index=True)
    value: str | None = Field(default=None, max_length=255)


class ProductCategoryLink(SQLModel, table=True):
    __tablename__ = "product_category_links"

    product_id: int = Field(foreign_key="products.id", primary_key=True)
    category_id: int = Field(primary_key=True, index=True)
