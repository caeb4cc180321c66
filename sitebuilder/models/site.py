# sitebuilder/models/site.py
from sqlmodel import Field, UniqueConstraint

from sitebuilder.models.base import TimestampMixin, SoftDeleteMixin


class Site(TimestampMixin, SoftDeleteMixin, table=True):
    """
    Tenant-owned storefront. Owns pages, products, discounts, customers.
    """

    __tablename__ = "sites"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    name: str = Field(max_length=100)
    domain: str = Field(max_length=255, unique=True, index=True)


class Customer(TimestampMixin, table=True):
    """
    End-shopper of a single site.

    Identity: "sub" claim of tokens with typ="customer"; the token's
    site_id must match Customer.site_id.
    """

    __tablename__ = "customers"
    __table_args__ = (UniqueConstraint("site_id", "email"),)

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    email: str = Field(max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)


class Address(TimestampMixin, SoftDeleteMixin, table=True):
    __tablename__ = "addresses"

    id: int | None = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    full_address: str
    city: str = Field(default="", max_length=100)
    postal_code: str = Field(default="", max_length=20)
    phone: str | None = Field(default=None, max_length=20)
