# sitebuilder/services/payment_flow.py
"""
Pieces shared by every flow that sends a customer or tenant to a gateway
and resumes on the callback (orders, credit top-ups, plan upgrades).
"""
import secrets
import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from sqlmodel import Session

from sitebuilder.core.config import get_settings
from sitebuilder.core.errors import ValidationFailed
from sitebuilder.core.gateway_client import GatewayVerifyResult
from sitebuilder.models.enums import CallVerifyUrl, GatewayKind, PaymentStatus
from sitebuilder.models.payment import Payment

settings = get_settings()


def new_tracking_number() -> int:
    """
    Unique, roughly monotonic payment id shared with the gateway.

    Microseconds since the epoch with the last three digits replaced by a
    random suffix; fits a signed 64-bit column until year 2262.
    """
    return (time.time_ns() // 1_000) * 1_000 + secrets.randbelow(1_000)


def build_callback_url(call_verify_url: CallVerifyUrl, tracking_number: int) -> str:
    base = settings.PUBLIC_BASE_URL.rstrip("/")
    query = urlencode({"tracking_number": tracking_number})
    return f"{base}/payment/callback/{call_verify_url.value}?{query}"


def platform_account_config(kind: GatewayKind) -> dict[str, Any]:
    """Credentials for payments collected by the platform itself."""
    return dict(settings.PLATFORM_GATEWAY_CREDENTIALS.get(kind.value, {}))


def parse_tracking_number(params: dict[str, Any]) -> int:
    raw = params.get("tracking_number")
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(
            "Callback is missing a valid tracking_number",
            fields={"tracking_number": "required integer"},
        )


@dataclass
class VerifyOutcome:
    """What the callback tells the browser on its way back to the front end."""

    success: bool
    tracking_number: int
    status: str
    return_url: str

    def redirect_url(self) -> str:
        separator = "&" if "?" in self.return_url else "?"
        query = urlencode(
            {
                "success": "true" if self.success else "false",
                "tracking_number": self.tracking_number,
                "status": self.status,
            }
        )
        return f"{self.return_url}{separator}{query}"


class PaymentHandler:
    """
    Flow-specific side of payment verification.

    VerifyService has already claimed the pending payment (status is now
    active or inactive) inside the open transaction when these run; the
    handler finishes the transaction and commits.
    """

    def account_config(self, session: Session, payment: Payment) -> dict[str, Any]:
        return platform_account_config(payment.gateway)

    def on_success(
        self,
        session: Session,
        payment: Payment,
        result: GatewayVerifyResult,
    ) -> VerifyOutcome:
        raise NotImplementedError

    def on_failure(
        self,
        session: Session,
        payment: Payment,
        result: GatewayVerifyResult,
    ) -> VerifyOutcome:
        session.commit()
        return self.prior_outcome(session, payment)

    def prior_outcome(self, session: Session, payment: Payment) -> VerifyOutcome:
        session.refresh(payment)
        return VerifyOutcome(
            success=payment.status == PaymentStatus.ACTIVE,
            tracking_number=payment.tracking_number,
            status=payment.status.value,
            return_url=payment.return_url,
        )
