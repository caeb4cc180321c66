# sitebuilder/routers/header_footers.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.database import get_session
from sitebuilder.models.user import User
from sitebuilder.routers.pages import service
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.page import HeaderFooterCreate, HeaderFooterPage, HeaderFooterRead

router = APIRouter(prefix="/header-footers", tags=["Header/Footers"])


@router.get("/site/{site_id}", response_model=HeaderFooterPage)
def list_header_footers(
    site_id: int,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
):
    return service.list_header_footers(session, site_id, params)


@router.post("", response_model=HeaderFooterRead, status_code=status.HTTP_201_CREATED)
def create_header_footer(
    payload: HeaderFooterCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.create_header_footer(session, current_user, payload)


@router.delete("/{header_footer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_header_footer(
    header_footer_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Soft delete; pages referencing it as header or footer lose the
    reference and their usages.
    """
    service.delete_header_footer(session, current_user, header_footer_id)
