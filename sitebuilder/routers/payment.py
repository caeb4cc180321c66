# sitebuilder/routers/payment.py
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session

from sitebuilder.core.auth import require_admin, require_user
from sitebuilder.core.container import get_credit_service, payment_repo, user_repo
from sitebuilder.database import get_session
from sitebuilder.models.enums import PaymentStatus
from sitebuilder.models.user import User
from sitebuilder.schemas.common import PaginationParams, pagination_params
from sitebuilder.schemas.order import PaymentRedirectResponse
from sitebuilder.schemas.payment import (
    CreditChargeRequest,
    GatewayRead,
    GatewayUpsert,
    PaymentPage,
    PlanUpgradeRequest,
)
from sitebuilder.services.credit_service import CreditService
from sitebuilder.services.payment_service import GatewayService

router = APIRouter(prefix="/payment", tags=["Payments"])

gateway_service = GatewayService(payment_repo, user_repo)


# -------- Site gateway accounts --------


@router.put("/gateways/{site_id}", response_model=GatewayRead)
def upsert_gateway(
    site_id: int,
    payload: GatewayUpsert,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    """
    Store one provider's credentials for the site and (de)activate it.

    Credential values are never returned; only the configured field names.
    """
    return gateway_service.create_or_update_gateway(session, current_user, site_id, payload)


@router.get("/gateways/{site_id}", response_model=GatewayRead)
def get_gateway(
    site_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
):
    return gateway_service.get_gateway(session, current_user, site_id)


# -------- Tenant platform payments --------


@router.post("/credits/charge", response_model=PaymentRedirectResponse)
def charge_credits(
    payload: CreditChargeRequest,
    request: Request,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    service: CreditService = Depends(get_credit_service),
):
    client_ip = request.client.host if request.client else None
    return service.request_credit_charge(session, current_user, payload, client_ip)


@router.post("/plans/upgrade", response_model=PaymentRedirectResponse)
def upgrade_plan(
    payload: PlanUpgradeRequest,
    request: Request,
    session: Session = Depends(get_session),
    current_user: User = Depends(require_user),
    service: CreditService = Depends(get_credit_service),
):
    client_ip = request.client.host if request.client else None
    return service.request_plan_upgrade(session, current_user, payload, client_ip)


# -------- Admin endpoints --------


@router.get(
    "/payments",
    response_model=PaymentPage,
    dependencies=[Depends(require_admin)],
)
def list_payments(
    status: PaymentStatus | None = None,
    session: Session = Depends(get_session),
    params: PaginationParams = Depends(pagination_params),
):
    """
    List payments of every flow (admin only).
    """
    return gateway_service.list_payments(session, params, status)
