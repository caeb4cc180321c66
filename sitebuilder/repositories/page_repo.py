# sitebuilder/repositories/page_repo.py
from typing import Any

from sqlalchemy import delete
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.enums import UsageKind
from sitebuilder.models.page import (
    Article,
    HeaderFooter,
    Page,
    PageArticleUsage,
    PageHeaderFooterUsage,
    PageProductUsage,
)
from sitebuilder.models.product import Product
from sitebuilder.repositories.base import directed, paginate
from sitebuilder.schemas.common import PaginationParams


class ContentRepository:
    """
    Data access layer for pages, articles and header/footers.
    """

    def get(self, session: Session, model: type, entity_id: int) -> Any | None:
        row = session.get(model, entity_id)
        if row is None or row.is_deleted:
            return None
        return row

    def get_page_by_slug(
        self,
        session: Session,
        site_id: int,
        slug: str,
        include_deleted: bool = False,
    ) -> Page | None:
        stmt = select(Page).where(Page.site_id == site_id, Page.slug == slug)
        if not include_deleted:
            stmt = stmt.where(Page.is_deleted == False)  # noqa: E712
        return session.exec(stmt).first()

    def list_for_site(
        self,
        session: Session,
        model: type,
        site_id: int,
        params: PaginationParams,
    ) -> tuple[list[Any], int]:
        stmt = select(model).where(
            model.site_id == site_id,
            model.is_deleted == False,  # noqa: E712
        )
        if params.search:
            stmt = stmt.where(model.title.ilike(f"%{params.search}%"))
        stmt = stmt.order_by(directed(model.updated_at, params), directed(model.id, params))
        return paginate(session, stmt, params)

    def save(self, session: Session, row: Any) -> Any:
        row.updated_at = utcnow()
        session.add(row)
        session.flush()
        session.refresh(row)
        return row

    def soft_delete(self, session: Session, row: Any) -> None:
        now = utcnow()
        row.is_deleted = True
        row.deleted_at = now
        row.updated_at = now
        session.add(row)
        session.flush()


# kind -> (edge table, entity column on the edge, entity table)
USAGE_TABLES: dict[UsageKind, tuple[type, str, type]] = {
    UsageKind.ARTICLE: (PageArticleUsage, "article_id", Article),
    UsageKind.PRODUCT: (PageProductUsage, "product_id", Product),
    UsageKind.HEADER_FOOTER: (PageHeaderFooterUsage, "header_footer_id", HeaderFooter),
}


class PageUsageRepository:
    """
    Edge tables linking pages to the articles / products / header-footers
    they reference. Hard deletes only; an edge has no history.
    """

    def list_entity_ids(self, session: Session, page_id: int, kind: UsageKind) -> list[int]:
        edge, column, _ = USAGE_TABLES[kind]
        entity_col = getattr(edge, column)
        stmt = select(entity_col).where(edge.page_id == page_id).order_by(entity_col)
        return list(session.exec(stmt).all())

    def replace_for_page(
        self,
        session: Session,
        page: Page,
        kind: UsageKind,
        entity_ids: list[int],
        user_id: int,
    ) -> None:
        edge, column, _ = USAGE_TABLES[kind]
        session.execute(
            delete(edge)
            .where(edge.page_id == page.id, edge.site_id == page.site_id)
            .execution_options(synchronize_session=False)
        )
        session.add_all(
            edge(
                page_id=page.id,
                site_id=page.site_id,
                user_id=user_id,
                **{column: entity_id},
            )
            for entity_id in dict.fromkeys(entity_ids)
        )
        session.flush()

    def delete_for_page(self, session: Session, page_id: int) -> None:
        for edge, _, _ in USAGE_TABLES.values():
            session.execute(
                delete(edge)
                .where(edge.page_id == page_id)
                .execution_options(synchronize_session=False)
            )

    def delete_for_entity(
        self,
        session: Session,
        kind: UsageKind,
        entity_id: int,
        site_id: int,
    ) -> int:
        edge, column, _ = USAGE_TABLES[kind]
        result = session.execute(
            delete(edge)
            .where(getattr(edge, column) == entity_id, edge.site_id == site_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def find_pages_using(
        self,
        session: Session,
        kind: UsageKind,
        entity_ids: list[int],
        site_id: int,
    ) -> list[Page]:
        if not entity_ids:
            return []
        edge, column, _ = USAGE_TABLES[kind]
        page_ids = select(edge.page_id).where(
            getattr(edge, column).in_(entity_ids),
            edge.site_id == site_id,
        )
        stmt = (
            select(Page)
            .where(
                Page.id.in_(page_ids),
                Page.site_id == site_id,
                Page.is_deleted == False,  # noqa: E712
            )
            .order_by(Page.id)
        )
        return list(session.exec(stmt).all())

    def get_entities(
        self,
        session: Session,
        kind: UsageKind,
        entity_ids: list[int],
    ) -> dict[int, Any]:
        if not entity_ids:
            return {}
        _, _, model = USAGE_TABLES[kind]
        stmt = select(model).where(model.id.in_(entity_ids))
        return {row.id: row for row in session.exec(stmt).all()}
