# sitebuilder/services/page_usage_service.py
import logging

from sqlmodel import Session

from sitebuilder.core.errors import Forbidden, NotFound, SiteMismatch
from sitebuilder.models.enums import UsageKind, UserRole
from sitebuilder.models.page import Page
from sitebuilder.models.user import User
from sitebuilder.repositories.page_repo import ContentRepository, PageUsageRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.services.access import ensure_site_access

logger = logging.getLogger(__name__)


class PageUsageService:
    """
    Owner of the page usage graph (Page <-> Article / Product / HeaderFooter).

    Invariants:
      - an edge's site_id equals both its page's and its entity's site_id
      - at most one edge per (page, entity, site)
      - edges of deleted entities and pages are removed

    Callers never write edges directly; they go through sync() or the
    deletion hooks.
    """

    def __init__(
        self,
        usage_repo: PageUsageRepository,
        content_repo: ContentRepository,
        user_repo: UserRepository,
    ):
        self.usage_repo = usage_repo
        self.content_repo = content_repo
        self.user_repo = user_repo

    def sync(
        self,
        session: Session,
        user: User,
        page_id: int,
        site_id: int,
        kind: UsageKind,
        entity_ids: list[int],
        commit: bool = True,
    ) -> None:
        """
        Replace the page's edges of `kind` with exactly `entity_ids`.

        Steps:
          1. Page must exist; caller must own it (or be admin).
          2. Page and every entity must live on `site_id` (else SiteMismatch);
             unknown or deleted entities are 404.
          3. Delete the page's edges of this kind, insert the new set.
        """
        page = self.content_repo.get(session, Page, page_id)
        if page is None:
            raise NotFound("Page not found")
        self._ensure_page_owner(session, user, page)
        if page.site_id != site_id:
            raise SiteMismatch("Page belongs to another site", page_id=page.id)

        wanted = list(dict.fromkeys(entity_ids))
        self._check_entities(session, kind, wanted, site_id)

        self.usage_repo.replace_for_page(session, page, kind, wanted, user.id)
        if commit:
            session.commit()
        logger.info("Page %s now uses %s %s", page.id, kind.value, wanted)

    def find_pages_using(
        self,
        session: Session,
        user: User,
        kind: UsageKind,
        entity_ids: list[int],
        site_id: int,
    ) -> list[Page]:
        """Non-deleted pages of the site that use any of the entities."""
        ensure_site_access(self.user_repo, session, user, site_id)
        return self.usage_repo.find_pages_using(session, kind, list(dict.fromkeys(entity_ids)), site_id)

    def on_entity_deleted(
        self,
        session: Session,
        kind: UsageKind,
        entity_id: int,
        site_id: int,
    ) -> int:
        """Hard delete the edges of a (soft) deleted entity. Caller commits."""
        return self.usage_repo.delete_for_entity(session, kind, entity_id, site_id)

    def on_page_deleted(self, session: Session, page_id: int) -> None:
        """Hard delete every edge of a (soft) deleted page. Caller commits."""
        self.usage_repo.delete_for_page(session, page_id)

    def _check_entities(
        self,
        session: Session,
        kind: UsageKind,
        entity_ids: list[int],
        site_id: int,
    ) -> None:
        found = self.usage_repo.get_entities(session, kind, entity_ids)
        missing = [eid for eid in entity_ids if eid not in found or found[eid].is_deleted]
        if missing:
            raise NotFound(f"Unknown {kind.value} ids", entity_ids=missing)
        foreign = [eid for eid in entity_ids if found[eid].site_id != site_id]
        if foreign:
            raise SiteMismatch(entity_ids=foreign)

    def _ensure_page_owner(self, session: Session, user: User, page: Page) -> None:
        if user.role == UserRole.ADMIN or page.user_id == user.id:
            return
        site = self.user_repo.get_site(session, page.site_id)
        if site is None or site.user_id != user.id:
            raise Forbidden("You do not own this page")
