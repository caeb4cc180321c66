# sitebuilder/schemas/user.py
from datetime import datetime

from sqlmodel import SQLModel

from sitebuilder.models.enums import UserRole


class UserRead(SQLModel):
    """Tenant profile with credit balances and current plan."""

    id: int
    email: str
    name: str
    role: UserRole
    sms_credits: int
    email_credits: int
    ai_credits: int
    ai_image_credits: int
    storage_mb_credits: int
    storage_mb_credits_expire_at: datetime | None
    plan_id: int | None
    plan_expired_at: datetime | None
    created_at: datetime


class PlanRead(SQLModel):
    id: int
    name: str
    price: int
    duration_days: int
    sms_credits: int
    email_credits: int
    ai_credits: int
    ai_image_credits: int
    storage_mb_credits: int


class SiteRead(SQLModel):
    id: int
    user_id: int
    name: str
    domain: str
    created_at: datetime
