# sitebuilder/services/content_service.py
import logging

from sqlmodel import Session, select

from sitebuilder.core.errors import Conflict, NotFound
from sitebuilder.models.enums import UsageKind
from sitebuilder.models.page import Article, HeaderFooter, Page
from sitebuilder.models.user import User
from sitebuilder.repositories.page_repo import ContentRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.common import PaginationParams
from sitebuilder.schemas.page import (
    ArticleCreate,
    ArticlePage,
    ArticleRead,
    HeaderFooterCreate,
    HeaderFooterPage,
    HeaderFooterRead,
    PageCreate,
    PageListResponse,
    PageRead,
    PageUpdate,
)
from sitebuilder.services.access import ensure_site_access
from sitebuilder.services.page_usage_service import PageUsageService

logger = logging.getLogger(__name__)


class ContentService:
    """
    Business logic for pages, articles and header/footers.

    Responsibilities:
      - Page create/update with slug uniqueness per site; the page's
        header/footer references are synced into the usage graph on
        every save.
      - Soft delete of pages, articles and header/footers; their usage
        edges are hard deleted in the same transaction.
    """

    def __init__(
        self,
        content_repo: ContentRepository,
        user_repo: UserRepository,
        usage: PageUsageService,
    ):
        self.content_repo = content_repo
        self.user_repo = user_repo
        self.usage = usage

    # -------- Pages --------

    def create_page(self, session: Session, user: User, payload: PageCreate) -> Page:
        site = ensure_site_access(self.user_repo, session, user, payload.site_id)
        self._ensure_page_slug_free(session, site.id, payload.slug)

        page = self.content_repo.save(
            session,
            Page(user_id=site.user_id, **payload.model_dump()),
        )
        self._sync_header_footer(session, user, page)
        session.commit()
        session.refresh(page)
        logger.info("Page %s created on site %s", page.id, site.id)
        return page

    def update_page(self, session: Session, user: User, page_id: int, payload: PageUpdate) -> Page:
        page = self._owned(session, user, Page, page_id)
        data = payload.model_dump(exclude_unset=True)

        if data.get("slug") and data["slug"] != page.slug:
            self._ensure_page_slug_free(session, page.site_id, data["slug"])

        for field in ("slug", "title", "body"):
            if data.get(field) is not None:
                setattr(page, field, data[field])
        for field in ("header_id", "footer_id"):
            if field in data:
                setattr(page, field, data[field])

        page = self.content_repo.save(session, page)
        self._sync_header_footer(session, user, page)
        session.commit()
        session.refresh(page)
        return page

    def delete_page(self, session: Session, user: User, page_id: int) -> None:
        page = self._owned(session, user, Page, page_id)
        self.content_repo.soft_delete(session, page)
        self.usage.on_page_deleted(session, page.id)
        session.commit()
        logger.info("Page %s deleted", page_id)

    def get_page(self, session: Session, page_id: int) -> Page:
        page = self.content_repo.get(session, Page, page_id)
        if page is None:
            raise NotFound("Page not found")
        return page

    def list_pages(self, session: Session, site_id: int, params: PaginationParams) -> PageListResponse:
        pages, total = self.content_repo.list_for_site(session, Page, site_id, params)
        return PageListResponse(
            items=[PageRead.model_validate(p, from_attributes=True) for p in pages],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    # -------- Articles --------

    def create_article(self, session: Session, user: User, payload: ArticleCreate) -> Article:
        site = ensure_site_access(self.user_repo, session, user, payload.site_id)
        taken = session.exec(
            select(Article.id).where(Article.site_id == site.id, Article.slug == payload.slug)
        ).first()
        if taken is not None:
            raise Conflict("Slug already exists on this site", fields={"slug": payload.slug})
        article = self.content_repo.save(session, Article(user_id=site.user_id, **payload.model_dump()))
        session.commit()
        session.refresh(article)
        return article

    def list_articles(self, session: Session, site_id: int, params: PaginationParams) -> ArticlePage:
        articles, total = self.content_repo.list_for_site(session, Article, site_id, params)
        return ArticlePage(
            items=[ArticleRead.model_validate(a, from_attributes=True) for a in articles],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    def delete_article(self, session: Session, user: User, article_id: int) -> None:
        article = self._owned(session, user, Article, article_id)
        self.content_repo.soft_delete(session, article)
        self.usage.on_entity_deleted(session, UsageKind.ARTICLE, article.id, article.site_id)
        session.commit()

    # -------- Header / footers --------

    def create_header_footer(
        self,
        session: Session,
        user: User,
        payload: HeaderFooterCreate,
    ) -> HeaderFooter:
        site = ensure_site_access(self.user_repo, session, user, payload.site_id)
        row = self.content_repo.save(session, HeaderFooter(user_id=site.user_id, **payload.model_dump()))
        session.commit()
        session.refresh(row)
        return row

    def list_header_footers(
        self,
        session: Session,
        site_id: int,
        params: PaginationParams,
    ) -> HeaderFooterPage:
        rows, total = self.content_repo.list_for_site(session, HeaderFooter, site_id, params)
        return HeaderFooterPage(
            items=[HeaderFooterRead.model_validate(r, from_attributes=True) for r in rows],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    def delete_header_footer(self, session: Session, user: User, header_footer_id: int) -> None:
        """
        Soft delete; pages that referenced it lose the reference and the
        usage edges go away.
        """
        row = self._owned(session, user, HeaderFooter, header_footer_id)
        self.content_repo.soft_delete(session, row)
        self.usage.on_entity_deleted(session, UsageKind.HEADER_FOOTER, row.id, row.site_id)
        for page in session.exec(
            select(Page).where(
                Page.site_id == row.site_id,
                (Page.header_id == row.id) | (Page.footer_id == row.id),
            )
        ).all():
            if page.header_id == row.id:
                page.header_id = None
            if page.footer_id == row.id:
                page.footer_id = None
            self.content_repo.save(session, page)
        session.commit()

    # -------- Helpers --------

    def _owned(self, session: Session, user: User, model: type, entity_id: int):
        row = self.content_repo.get(session, model, entity_id)
        if row is None:
            raise NotFound(f"{model.__name__} not found")
        ensure_site_access(self.user_repo, session, user, row.site_id)
        return row

    def _ensure_page_slug_free(self, session: Session, site_id: int, slug: str) -> None:
        if self.content_repo.get_page_by_slug(session, site_id, slug, include_deleted=True) is not None:
            raise Conflict("Slug already exists on this site", fields={"slug": slug})

    def _sync_header_footer(self, session: Session, user: User, page: Page) -> None:
        ids = [i for i in (page.header_id, page.footer_id) if i is not None]
        self.usage.sync(
            session,
            user,
            page.id,
            page.site_id,
            UsageKind.HEADER_FOOTER,
            ids,
            commit=False,
        )
