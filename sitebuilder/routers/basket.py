# sitebuilder/routers/basket.py
from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from sitebuilder.core.auth import require_customer
from sitebuilder.core.container import basket_repo, pricing_service
from sitebuilder.database import get_session
from sitebuilder.models.site import Customer
from sitebuilder.schemas.basket import BasketRead, BasketUpdate
from sitebuilder.services.basket_service import BasketService

router = APIRouter(prefix="/basket", tags=["Basket"])

service = BasketService(basket_repo, pricing_service)


@router.get("", response_model=BasketRead)
def get_my_basket(
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
):
    """
    Current basket of the customer on the token's site, priced against
    current prices and stock. Item versions are not refreshed.
    """
    return service.get_basket(session, customer)


@router.put("", response_model=BasketRead)
def replace_my_basket(
    payload: BasketUpdate,
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
):
    """
    Replace the basket contents (and discount code). Every item gets a
    new version; checkout must send these versions back.
    """
    return service.update_basket(session, customer, payload)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_my_basket(
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
):
    service.clear_basket(session, customer)
