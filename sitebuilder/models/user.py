# sitebuilder/models/user.py
from datetime import datetime

from sqlalchemy import BigInteger
from sqlmodel import SQLModel, Field

from sitebuilder.models.base import TimestampMixin
from sitebuilder.models.enums import UserRole


class Plan(TimestampMixin, table=True):
    """
    Subscription plan a tenant can upgrade to.

    Upgrading grants the plan's credit allotments and sets
    plan_expired_at = now + duration_days.
    """

    __tablename__ = "plans"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(max_length=100, unique=True)
    price: int = Field(default=0, ge=0, sa_type=BigInteger)
    duration_days: int = Field(default=30, gt=0)

    sms_credits: int = Field(default=0, ge=0)
    email_credits: int = Field(default=0, ge=0)
    ai_credits: int = Field(default=0, ge=0)
    ai_image_credits: int = Field(default=0, ge=0)
    storage_mb_credits: int = Field(default=0, ge=0)


class User(TimestampMixin, table=True):
    """
    Tenant (site owner) or platform admin.

    Identity:
      - id matches the "sub" claim of tokens with typ="user",
        issued by the identity service.

    Role:
      - "user" | "admin"

    Credits are consumed by sibling services (SMS, email, AI); this service
    only tops them up after a verified payment.
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)

    email: str = Field(
        unique=True,
        index=True,
        max_length=255,
    )
    name: str = Field(default="", max_length=100)
    phone: str | None = Field(default=None, max_length=20)

    role: UserRole = Field(
        default=UserRole.USER,
        index=True,
        description="Application role: user | admin",
    )

    # Credit ledger
    sms_credits: int = Field(default=0, ge=0)
    email_credits: int = Field(default=0, ge=0)
    ai_credits: int = Field(default=0, ge=0)
    ai_image_credits: int = Field(default=0, ge=0)
    storage_mb_credits: int = Field(default=0, ge=0)
    storage_mb_credits_expire_at: datetime | None = Field(default=None)

    # Plan
    plan_id: int | None = Field(default=None, foreign_key="plans.id")
    plan_expired_at: datetime | None = Field(default=None)
