# sitebuilder/routers/pages.py
from fastapi import APIRouter, Depends, Query, Response, status
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.core.container import content_repo, usage_repo, user_repo
from sitebuilder.core.errors import ValidationFailed
from sitebuilder.database import get_session
from sitebuilder.models.enums import UsageKind
from sitebuilder.models.user import User
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.page import (
    PageCreate,
    PageListResponse,
    PageRead,
    PageSummary,
    PagesUsingResponse,
    PageUpdate,
    UsageSync,
)
from sitebuilder.services.content_service import ContentService
from sitebuilder.services.page_usage_service import PageUsageService

router = APIRouter(prefix="/pages", tags=["Pages"])

usage_service = PageUsageService(usage_repo, content_repo, user_repo)
service = ContentService(content_repo, user_repo, usage_service)


def _parse_ids(raw: list[str]) -> list[int]:
    """Accept ?entity_ids=1,2&entity_ids=3 as well as repeated params."""
    try:
        return [int(part) for value in raw for part in value.split(",") if part.strip()]
    except ValueError:
        raise ValidationFailed("entity_ids must be integers", fields={"entity_ids": raw})


# -------- Usage graph --------
# Declared before /{page_id} so "usages" is not parsed as a page id.


@router.get("/usages", response_model=PagesUsingResponse)
def pages_using(
    type: UsageKind,
    site_id: int,
    entity_ids: list[str] = Query(default=[]),
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Reverse lookup: which pages of the site use any of the entities.
    """
    pages = usage_service.find_pages_using(
        session, current_user, type, _parse_ids(entity_ids), site_id
    )
    return PagesUsingResponse(
        pages=[PageSummary.model_validate(p, from_attributes=True) for p in pages]
    )


@router.post("/{page_id}/usages", status_code=status.HTTP_204_NO_CONTENT)
def sync_usages(
    page_id: int,
    payload: UsageSync,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Replace the page's usages of one entity type with exactly `entity_ids`.

    Errors:
      - 403: caller does not own the page
      - 400 SiteMismatch: page or an entity lives on another site
      - 400: header_footer usages, which follow the page's header_id
        and footer_id and are changed by updating the page
      - 404: unknown page or entity
    """
    if payload.page_id is not None and payload.page_id != page_id:
        raise ValidationFailed("page_id does not match the path", fields={"page_id": payload.page_id})
    if payload.type == UsageKind.HEADER_FOOTER:
        raise ValidationFailed(
            "header_footer usages follow the page's header_id and footer_id",
            fields={"type": payload.type.value},
        )
    usage_service.sync(session, current_user, page_id, payload.site_id, payload.type, payload.entity_ids)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# -------- Pages --------


@router.get("/site/{site_id}", response_model=PageListResponse)
def list_pages(
    site_id: int,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
):
    return service.list_pages(session, site_id, params)


@router.get("/{page_id}", response_model=PageRead)
def get_page(page_id: int, session: Session = Depends(get_session)):
    return service.get_page(session, page_id)


@router.post("", response_model=PageRead, status_code=status.HTTP_201_CREATED)
def create_page(
    payload: PageCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.create_page(session, current_user, payload)


@router.patch("/{page_id}", response_model=PageRead)
def update_page(
    page_id: int,
    payload: PageUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Partial update; header_id / footer_id changes are reflected in the
    page's header_footer usages.
    """
    return service.update_page(session, current_user, page_id, payload)


@router.delete("/{page_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_page(
    page_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    service.delete_page(session, current_user, page_id)
