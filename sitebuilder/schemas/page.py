# sitebuilder/schemas/page.py
from datetime import datetime

from pydantic import ConfigDict, field_validator
from sqlmodel import SQLModel, Field

from sitebuilder.models.enums import HeaderFooterType, UsageKind
from sitebuilder.schemas.product import validate_slug


class PageCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    site_id: int
    slug: str = Field(min_length=1, max_length=255)
    title: str = Field(min_length=1, max_length=255)
    body: str = ""
    header_id: int | None = None
    footer_id: int | None = None

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str) -> str:
        return validate_slug(v)


class PageUpdate(SQLModel):
    """
    Partial update; header_id/footer_id set to null detach them.
    """

    model_config = ConfigDict(extra="forbid")

    slug: str | None = Field(default=None, min_length=1, max_length=255)
    title: str | None = Field(default=None, min_length=1, max_length=255)
    body: str | None = None
    header_id: int | None = None
    footer_id: int | None = None

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str | None) -> str | None:
        if v is None:
            return v
        return validate_slug(v)


class PageRead(SQLModel):
    id: int
    site_id: int
    slug: str
    title: str
    body: str
    header_id: int | None
    footer_id: int | None
    created_at: datetime
    updated_at: datetime


class PageSummary(SQLModel):
    id: int
    title: str
    slug: str
    site_id: int


class PageListResponse(SQLModel):
    items: list[PageRead]
    total_count: int
    page: int
    page_size: int


class PagesUsingResponse(SQLModel):
    pages: list[PageSummary]


class UsageSync(SQLModel):
    """
    Payload for POST /pages/{id}/usages.

    page_id, when given, must equal the path id.
    """

    model_config = ConfigDict(extra="forbid")

    entity_ids: list[int]
    type: UsageKind
    site_id: int
    page_id: int | None = None


class ArticleCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    site_id: int
    title: str = Field(min_length=1, max_length=255)
    slug: str = Field(min_length=1, max_length=255)
    body: str = ""

    @field_validator("slug")
    @classmethod
    def slug_format(cls, v: str) -> str:
        return validate_slug(v)


class ArticleRead(SQLModel):
    id: int
    site_id: int
    title: str
    slug: str
    body: str
    created_at: datetime
    updated_at: datetime


class HeaderFooterCreate(SQLModel):
    model_config = ConfigDict(extra="forbid")

    site_id: int
    title: str = Field(min_length=1, max_length=255)
    type: HeaderFooterType
    body: str = ""


class HeaderFooterRead(SQLModel):
    id: int
    site_id: int
    title: str
    type: HeaderFooterType
    body: str
    created_at: datetime
    updated_at: datetime


class ArticlePage(SQLModel):
    items: list[ArticleRead]
    total_count: int
    page: int
    page_size: int


class HeaderFooterPage(SQLModel):
    items: list[HeaderFooterRead]
    total_count: int
    page: int
    page_size: int
