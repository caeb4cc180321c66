# sitebuilder/schemas/discount.py
from datetime import datetime

from pydantic import ConfigDict, field_validator, model_validator
from sqlmodel import SQLModel, Field

from sitebuilder.core.clock import ensure_utc, utcnow
from sitebuilder.models.enums import DiscountType


class DiscountCreate(SQLModel):
    """
    Site discount code.

    - code: trimmed, case preserved, unique within the site
    - type: "percentage" | "fixed" ("value" accepted for fixed)
    - expiry_date must be in the future
    """

    model_config = ConfigDict(extra="forbid")

    site_id: int
    code: str = Field(min_length=1, max_length=50)
    quantity: int = Field(ge=0)
    type: DiscountType
    value: int = Field(ge=0)
    expiry_date: datetime

    @field_validator("code")
    @classmethod
    def strip_code(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("field cannot be empty")
        return v

    @field_validator("expiry_date")
    @classmethod
    def in_future(cls, v: datetime) -> datetime:
        if ensure_utc(v) <= utcnow():
            raise ValueError("expiry_date must be in the future")
        return v

    @model_validator(mode="after")
    def percentage_bound(self):
        if self.type == DiscountType.PERCENTAGE and self.value > 100:
            raise ValueError("percentage cannot exceed 100")
        return self


class DiscountUpdate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    code: str | None = Field(default=None, min_length=1, max_length=50)
    quantity: int | None = Field(default=None, ge=0)
    type: DiscountType | None = None
    value: int | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None

    @field_validator("expiry_date")
    @classmethod
    def in_future(cls, v: datetime | None) -> datetime | None:
        if v is not None and ensure_utc(v) <= utcnow():
            raise ValueError("expiry_date must be in the future")
        return v


class DiscountRead(SQLModel):
    id: int
    site_id: int
    code: str
    quantity: int
    type: DiscountType
    value: int
    expiry_date: datetime
    created_at: datetime
    updated_at: datetime


class DiscountPage(SQLModel):
    items: list[DiscountRead]
    total_count: int
    page: int
    page_size: int
