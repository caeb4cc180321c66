# sitebuilder/services/payment_service.py
import logging

from sqlmodel import Session

from sitebuilder.core.errors import GatewayUnavailable, NotFound, ValidationFailed
from sitebuilder.core.gateway_client import (
    GatewayRegistry,
    GatewayUnavailableError,
    GatewayVerifyResult,
    missing_credentials,
)
from sitebuilder.models.enums import CallVerifyUrl, PaymentStatus
from sitebuilder.models.payment import Gateway
from sitebuilder.models.user import User
from sitebuilder.repositories.payment_repo import PaymentRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.common import PaginationParams
from sitebuilder.schemas.payment import GatewayRead, GatewayUpsert, PaymentPage, PaymentRead
from sitebuilder.services.access import ensure_site_access
from sitebuilder.services.payment_flow import (
    PaymentHandler,
    VerifyOutcome,
    parse_tracking_number,
)

logger = logging.getLogger(__name__)


class GatewayService:
    """
    Per-site gateway accounts and the admin view of payments.
    """

    def __init__(self, payment_repo: PaymentRepository, user_repo: UserRepository):
        self.payment_repo = payment_repo
        self.user_repo = user_repo

    def create_or_update_gateway(
        self,
        session: Session,
        user: User,
        site_id: int,
        payload: GatewayUpsert,
    ) -> GatewayRead:
        """
        Store credentials for one provider and toggle its activation.

        A provider can only be activated when all its required credential
        fields are present (after merging with what is already stored).
        """
        site = ensure_site_access(self.user_repo, session, user, site_id)
        gateway = self.payment_repo.get_gateway_for_site(session, site_id)
        if gateway is None:
            gateway = Gateway(site_id=site_id, user_id=site.user_id)

        kind = payload.kind.value
        credentials = dict(gateway.credentials)
        merged = {**credentials.get(kind, {}), **payload.credentials}

        if payload.is_active:
            missing = missing_credentials(payload.kind, merged)
            if missing:
                raise ValidationFailed(
                    f"Missing credentials for {kind}",
                    fields={name: "required" for name in missing},
                )

        credentials[kind] = merged
        active = [k for k in gateway.active_kinds if k != kind]
        if payload.is_active:
            active.append(kind)

        # JSON columns are only flushed when reassigned
        gateway.credentials = credentials
        gateway.active_kinds = sorted(active)
        gateway = self.payment_repo.save_gateway(session, gateway)
        session.commit()
        session.refresh(gateway)
        logger.info(
            "Gateway %s %s for site %s",
            kind,
            "activated" if payload.is_active else "deactivated",
            site_id,
        )
        return self._to_read(gateway)

    def get_gateway(self, session: Session, user: User, site_id: int) -> GatewayRead:
        ensure_site_access(self.user_repo, session, user, site_id)
        gateway = self.payment_repo.get_gateway_for_site(session, site_id)
        if gateway is None:
            raise NotFound("Gateway is not configured for this site")
        return self._to_read(gateway)

    def list_payments(
        self,
        session: Session,
        params: PaginationParams,
        status: PaymentStatus | None = None,
    ) -> PaymentPage:
        payments, total = self.payment_repo.list_all(session, params, status)
        return PaymentPage(
            items=[PaymentRead.model_validate(p, from_attributes=True) for p in payments],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    def _to_read(self, gateway: Gateway) -> GatewayRead:
        return GatewayRead(
            id=gateway.id,
            site_id=gateway.site_id,
            active_kinds=list(gateway.active_kinds),
            configured_fields={
                kind: sorted(fields) for kind, fields in gateway.credentials.items()
            },
            updated_at=gateway.updated_at,
        )


class VerifyService:
    """
    Gateway callback entry point.

    Steps:
      1. Find the payment by tracking_number; the tag in the URL must be
         the one stored on the payment.
      2. Already settled (not pending) => return the prior outcome.
      3. Verify with the gateway, no transaction open. Transport failure
         leaves the payment pending (the gateway retries) => 502.
      4. Claim the payment with a conditional UPDATE (pending -> active or
         inactive). Losing the claim => someone else settled it; return
         the prior outcome.
      5. Hand over to the flow's handler, which commits.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        gateways: GatewayRegistry,
        handlers: dict[CallVerifyUrl, PaymentHandler],
    ):
        self.payment_repo = payment_repo
        self.gateways = gateways
        self.handlers = handlers

    def verify_payment(
        self,
        session: Session,
        call_verify_url: CallVerifyUrl,
        params: dict,
    ) -> VerifyOutcome:
        tracking_number = parse_tracking_number(params)
        payment = self.payment_repo.get_by_tracking_number(session, tracking_number)
        if payment is None:
            raise NotFound("Payment not found")
        if payment.call_verify_url != call_verify_url:
            raise ValidationFailed(
                "Callback does not match the payment flow",
                fields={"call_verify_url": call_verify_url.value},
            )

        handler = self.handlers[call_verify_url]
        if payment.status != PaymentStatus.PENDING:
            logger.info("Duplicate callback for payment %s ignored", tracking_number)
            return handler.prior_outcome(session, payment)

        account_config = handler.account_config(session, payment)
        # Nothing we read so far needs to stay locked across the HTTP call.
        session.commit()

        try:
            result = self.gateways.adapter_for(payment.gateway).verify(
                gateway=payment.gateway,
                account_config=account_config,
                callback_params=params,
            )
        except GatewayUnavailableError as e:
            logger.warning("Verify of payment %s failed: %s", tracking_number, e)
            raise GatewayUnavailable()

        return self._settle(session, payment, handler, result)

    def _settle(
        self,
        session: Session,
        payment,
        handler: PaymentHandler,
        result: GatewayVerifyResult,
    ) -> VerifyOutcome:
        new_status = PaymentStatus.ACTIVE if result.success else PaymentStatus.INACTIVE
        claimed = self.payment_repo.transition_from_pending(
            session,
            payment.id,
            new_status,
            transaction_code=result.transaction_code,
            message=result.message,
        )
        if not claimed:
            session.rollback()
            logger.info("Payment %s was settled concurrently", payment.tracking_number)
            return handler.prior_outcome(session, payment)

        logger.info(
            "Payment %s verified: %s",
            payment.tracking_number,
            "success" if result.success else "failure",
        )
        if result.success:
            return handler.on_success(session, payment, result)
        return handler.on_failure(session, payment, result)
