# sitebuilder/routers/order.py
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from sitebuilder.core.auth import require_admin, require_customer, require_user
from sitebuilder.core.container import get_order_service
from sitebuilder.database import get_session
from sitebuilder.models.enums import OrderStatus
from sitebuilder.models.site import Customer
from sitebuilder.models.user import User
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.order import (
    AbandonResult,
    OrderPage,
    OrderRead,
    OrderRequestCreate,
    OrderWithItemsRead,
    PaymentRedirectResponse,
    PriceRequest,
    PriceResponse,
)
from sitebuilder.services.order_service import OrderService

router = APIRouter(prefix="/order", tags=["Orders"])


def _client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


# -------- Customer-facing endpoints --------


@router.post("/price", response_model=PriceResponse)
def price(
    payload: PriceRequest,
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    """
    Price a set of lines (coupon + optional discount code) for the
    storefront. Read-only; an unusable code is reported in
    `discount_rejection` instead of failing the request.
    """
    return service.price_preview(session, customer, payload)


@router.post("/request", response_model=PaymentRedirectResponse)
def create_order_request(
    payload: OrderRequestCreate,
    request: Request,
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    """
    Checkout the customer's basket and return the gateway redirect.

    Errors:
      - 409 BasketChanged: basket edited or repriced since the client read it
      - 409 OutOfStock
      - 502 GatewayUnavailable: the order is marked failed
    """
    return service.create_order_request(session, customer, payload, _client_ip(request))


@router.get("/me", response_model=OrderPage)
def list_my_orders(
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
    params: PaginationParams = Depends(pagination_params),
    service: OrderService = Depends(get_order_service),
):
    return service.list_customer_orders(session, customer, params)


@router.get("/me/{order_id}", response_model=OrderWithItemsRead)
def get_my_order(
    order_id: int,
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    return service.get_customer_order(session, customer, order_id)


@router.post("/me/{order_id}/cancel", response_model=OrderRead)
def cancel_my_order(
    order_id: int,
    session: Session = Depends(get_session),
    customer: Customer = Depends(require_customer),
    service: OrderService = Depends(get_order_service),
):
    """
    Abandon an order that is still awaiting payment.
    """
    return service.cancel_order(session, customer, order_id)


# -------- Site owner endpoints --------


@router.get("/sites/{site_id}", response_model=OrderPage)
def list_site_orders(
    site_id: int,
    status: OrderStatus | None = None,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    params: PaginationParams = Depends(pagination_params),
    service: OrderService = Depends(get_order_service),
):
    return service.list_site_orders(session, current_user, site_id, params, status)


@router.get("/sites/{site_id}/{order_id}", response_model=OrderWithItemsRead)
def get_site_order(
    site_id: int,
    order_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_site_order(session, current_user, site_id, order_id)


# -------- Admin endpoints --------


@router.get(
    "/admin",
    response_model=OrderPage,
    dependencies=[Depends(require_admin)],
)
def list_all_orders(
    status: OrderStatus | None = None,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
    service: OrderService = Depends(get_order_service),
):
    """
    List orders of every site (admin only).
    """
    return service.list_all_orders(session, params, status)


@router.post(
    "/admin/abandon-expired",
    response_model=AbandonResult,
    dependencies=[Depends(require_admin)],
)
def abandon_expired_orders(
    session: Session = Depends(get_session),
    service: OrderService = Depends(get_order_service),
):
    """
    Abandon orders that stayed awaiting_payment longer than
    ORDER_PAYMENT_TIMEOUT_MINUTES. Meant for a periodic job.
    """
    return AbandonResult(abandoned_order_ids=service.abandon_expired_orders(session))
