# sitebuilder/models/page.py
from sqlmodel import SQLModel, Field, UniqueConstraint

from sitebuilder.models.base import TimestampMixin, SoftDeleteMixin
from sitebuilder.models.enums import HeaderFooterType


class Page(TimestampMixin, SoftDeleteMixin, table=True):
    """
    Composed page of a site. slug is unique within a site.

    header_id / footer_id reference HeaderFooter rows; every save keeps
    the header/footer usage edges in sync with them.
    """

    __tablename__ = "pages"
    __table_args__ = (UniqueConstraint("site_id", "slug"),)

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    slug: str = Field(max_length=255, index=True)
    title: str = Field(max_length=255)
    body: str = Field(default="")
    header_id: int | None = Field(default=None, foreign_key="header_footers.id")
    footer_id: int | None = Field(default=None, foreign_key="header_footers.id")


class Article(TimestampMixin, SoftDeleteMixin, table=True):
    __tablename__ = "articles"
    __table_args__ = (UniqueConstraint("site_id", "slug"),)

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=255)
    slug: str = Field(max_length=255)
    body: str = Field(default="")


class HeaderFooter(TimestampMixin, SoftDeleteMixin, table=True):
    __tablename__ = "header_footers"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    title: str = Field(max_length=255)
    type: HeaderFooterType
    body: str = Field(default="")


# ---------------------------------------------------------
# Usage edges
#
# One row per (page, entity, site). site_id always equals both the
# page's and the entity's site_id; PageUsageService is the only writer.
# ---------------------------------------------------------


class PageArticleUsage(SQLModel, table=True):
    __tablename__ = "page_article_usages"
    __table_args__ = (UniqueConstraint("page_id", "article_id", "site_id"),)

    id: int | None = Field(default=None, primary_key=True)
    page_id: int = Field(foreign_key="pages.id", index=True)
    article_id: int = Field(foreign_key="articles.id", index=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id")


class PageProductUsage(SQLModel, table=True):
    __tablename__ = "page_product_usages"
    __table_args__ = (UniqueConstraint("page_id", "product_id", "site_id"),)

    id: int | None = Field(default=None, primary_key=True)
    page_id: int = Field(foreign_key="pages.id", index=True)
    product_id: int = Field(foreign_key="products.id", index=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id")


class PageHeaderFooterUsage(SQLModel, table=True):
    __tablename__ = "page_header_footer_usages"
    __table_args__ = (UniqueConstraint("page_id", "header_footer_id", "site_id"),)

    id: int | None = Field(default=None, primary_key=True)
    page_id: int = Field(foreign_key="pages.id", index=True)
    header_footer_id: int = Field(foreign_key="header_footers.id", index=True)
    site_id: int = Field(foreign_key="sites.id", index=True)
    user_id: int = Field(foreign_key="users.id")
