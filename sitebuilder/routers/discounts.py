# sitebuilder/routers/discounts.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from sitebuilder.core.auth import require_user
from sitebuilder.core.container import discount_repo, user_repo
from sitebuilder.database import get_session
from sitebuilder.models.user import User
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.discount import DiscountCreate, DiscountPage, DiscountRead, DiscountUpdate
from sitebuilder.services.discount_service import DiscountService

router = APIRouter(prefix="/discounts", tags=["Discounts"])

service = DiscountService(discount_repo, user_repo)


@router.get("/site/{site_id}", response_model=DiscountPage)
def list_discounts(
    site_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    params: PaginationParams = Depends(pagination_params),
):
    """
    List a site's discount codes (site owner or admin).
    """
    return service.list_discounts(session, current_user, site_id, params)


@router.post("", response_model=DiscountRead, status_code=status.HTTP_201_CREATED)
def create_discount(
    payload: DiscountCreate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.create_discount(session, current_user, payload)


@router.get("/{discount_id}", response_model=DiscountRead)
def get_discount(
    discount_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.get_discount(session, current_user, discount_id)


@router.patch("/{discount_id}", response_model=DiscountRead)
def update_discount(
    discount_id: int,
    payload: DiscountUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return service.update_discount(session, current_user, discount_id, payload)


@router.delete("/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_discount(
    discount_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Soft delete. The code keeps its slot on the site and cannot be reused.
    """
    service.delete_discount(session, current_user, discount_id)
