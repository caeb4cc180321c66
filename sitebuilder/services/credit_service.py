# sitebuilder/services/credit_service.py
import logging
from datetime import timedelta
from typing import Any

from sqlmodel import Session

from sitebuilder.core.clock import ensure_utc, utcnow
from sitebuilder.core.config import get_settings
from sitebuilder.core.errors import GatewayUnavailable, NotFound, ValidationFailed
from sitebuilder.core.gateway_client import GatewayRegistry, GatewayUnavailableError
from sitebuilder.models.enums import CallVerifyUrl, CreditKind, GatewayKind, PaymentStatus, UserType
from sitebuilder.models.payment import Payment
from sitebuilder.models.user import User
from sitebuilder.repositories.payment_repo import PaymentRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.order import PaymentRedirectResponse
from sitebuilder.schemas.payment import CreditChargeRequest, PlanUpgradeRequest
from sitebuilder.services.payment_flow import (
    PaymentHandler,
    build_callback_url,
    new_tracking_number,
    platform_account_config,
)

logger = logging.getLogger(__name__)
settings = get_settings()

_CREDIT_FIELDS = {
    CreditKind.SMS: "sms_credits",
    CreditKind.EMAIL: "email_credits",
    CreditKind.AI: "ai_credits",
    CreditKind.AI_IMAGE: "ai_image_credits",
    CreditKind.STORAGE_MB: "storage_mb_credits",
}


def credit_charge_amount(credits: dict[CreditKind, int]) -> int:
    return sum(settings.CREDIT_UNIT_PRICES[kind.value] * count for kind, count in credits.items())


def add_credits(user: User, credits: dict[CreditKind, int]) -> None:
    """
    Add credit counts to the user's balances. Storage credits expire
    STORAGE_CREDIT_DAYS after the latest top-up.
    """
    for kind, count in credits.items():
        attr = _CREDIT_FIELDS[kind]
        setattr(user, attr, getattr(user, attr) + count)
    if credits.get(CreditKind.STORAGE_MB):
        user.storage_mb_credits_expire_at = utcnow() + timedelta(days=settings.STORAGE_CREDIT_DAYS)


class CreditService:
    """
    Platform payments made by tenants: credit top-ups and plan upgrades.

    Both create a pending Payment (no order) and redirect the tenant to
    the gateway; the effect is applied on callback by the handlers below.
    """

    def __init__(
        self,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        gateways: GatewayRegistry,
    ):
        self.payment_repo = payment_repo
        self.user_repo = user_repo
        self.gateways = gateways

    def request_credit_charge(
        self,
        session: Session,
        user: User,
        payload: CreditChargeRequest,
        client_ip: str | None,
    ) -> PaymentRedirectResponse:
        credits = {kind: count for kind, count in payload.credits.items() if count > 0}
        if not credits:
            raise ValidationFailed(
                "At least one credit count must be positive",
                fields={"credits": "empty"},
            )
        return self._start(
            session,
            user,
            payload.gateway,
            credit_charge_amount(credits),
            CallVerifyUrl.CHARGE_CREDIT_VERIFY,
            {"credits": {kind.value: count for kind, count in credits.items()}},
            payload.final_front_return_url,
            client_ip,
        )

    def request_plan_upgrade(
        self,
        session: Session,
        user: User,
        payload: PlanUpgradeRequest,
        client_ip: str | None,
    ) -> PaymentRedirectResponse:
        plan = self.user_repo.get_plan(session, payload.plan_id)
        if plan is None:
            raise NotFound("Plan not found")
        return self._start(
            session,
            user,
            payload.gateway,
            plan.price,
            CallVerifyUrl.UPGRADE_PLAN_VERIFY,
            {"plan_id": plan.id},
            payload.final_front_return_url,
            client_ip,
        )

    def _start(
        self,
        session: Session,
        user: User,
        kind: GatewayKind,
        amount: int,
        tag: CallVerifyUrl,
        order_data: dict[str, Any],
        return_url: str,
        client_ip: str | None,
    ) -> PaymentRedirectResponse:
        payment = self.payment_repo.create(
            session,
            Payment(
                user_id=user.id,
                user_type=UserType.USER,
                tracking_number=new_tracking_number(),
                gateway=kind,
                amount=amount,
                status=PaymentStatus.PENDING,
                order_data=order_data,
                client_ip=client_ip,
                return_url=return_url,
                call_verify_url=tag,
            ),
        )
        session.commit()
        session.refresh(payment)

        try:
            requested = self.gateways.adapter_for(kind).request(
                amount=payment.amount,
                tracking_number=payment.tracking_number,
                gateway=kind,
                account_config=platform_account_config(kind),
                return_url=build_callback_url(tag, payment.tracking_number),
                client_ip=client_ip,
            )
        except GatewayUnavailableError as e:
            logger.warning("Gateway request failed for payment %s: %s", payment.tracking_number, e)
            self.payment_repo.transition_from_pending(
                session, payment.id, PaymentStatus.INACTIVE, message=str(e)
            )
            session.commit()
            raise GatewayUnavailable()

        payment.provider_token = requested.provider_token
        self.payment_repo.update(session, payment)
        session.commit()
        logger.info(
            "Payment %s (%s) started for user %s, amount %s",
            payment.tracking_number,
            tag.value,
            user.id,
            amount,
        )
        return PaymentRedirectResponse(
            redirect_url=requested.redirect_url,
            tracking_number=payment.tracking_number,
        )


class CreditChargeHandler(PaymentHandler):
    """charge_credit_verify: add the purchased credits to the tenant."""

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    def on_success(self, session, payment, result):
        user = self.user_repo.get_by_id(session, payment.user_id)
        if user is None:
            raise NotFound("User for payment not found")
        credits = {
            CreditKind(kind): int(count)
            for kind, count in payment.order_data.get("credits", {}).items()
        }
        add_credits(user, credits)
        self.user_repo.update(session, user)
        session.commit()
        logger.info("Credits %s added to user %s", payment.order_data.get("credits"), user.id)
        return self.prior_outcome(session, payment)


class PlanUpgradeHandler(PaymentHandler):
    """
    upgrade_plan_verify: switch the tenant to the plan.

    The plan's credits are added on every upgrade; storage credits only
    when the tenant had no plan before.
    """

    def __init__(self, user_repo: UserRepository):
        self.user_repo = user_repo

    def on_success(self, session, payment, result):
        user = self.user_repo.get_by_id(session, payment.user_id)
        plan = self.user_repo.get_plan(session, payment.order_data.get("plan_id"))
        if user is None or plan is None:
            raise NotFound("User or plan for payment not found")

        had_plan = user.plan_id is not None
        credits = {
            CreditKind.SMS: plan.sms_credits,
            CreditKind.EMAIL: plan.email_credits,
            CreditKind.AI: plan.ai_credits,
            CreditKind.AI_IMAGE: plan.ai_image_credits,
        }
        if not had_plan:
            credits[CreditKind.STORAGE_MB] = plan.storage_mb_credits

        now = utcnow()
        start = now
        if user.plan_id == plan.id and user.plan_expired_at and ensure_utc(user.plan_expired_at) > now:
            # Renewing the same plan extends it instead of resetting.
            start = ensure_utc(user.plan_expired_at)
        user.plan_id = plan.id
        user.plan_expired_at = start + timedelta(days=plan.duration_days)
        add_credits(user, {k: v for k, v in credits.items() if v > 0})
        self.user_repo.update(session, user)
        session.commit()
        logger.info("User %s upgraded to plan %s", user.id, plan.id)
        return self.prior_outcome(session, payment)
