# sitebuilder/models/payment.py
from typing import Any

from sqlalchemy import BigInteger, Column, JSON
from sqlmodel import Field

from sitebuilder.models.base import TimestampMixin
from sitebuilder.models.enums import (
    CallVerifyUrl,
    GatewayKind,
    PaymentStatus,
    UserType,
)


class Payment(TimestampMixin, table=True):
    """
    One attempt to collect money through an external gateway.

    - tracking_number is shared with the gateway and is the idempotency
      key of the callback.
    - order_data is the envelope that survives the redirect round-trip
      (order id, credit counts, plan id ...).
    - call_verify_url names the flow that resumes on callback.
    - status only ever leaves "pending" through a conditional UPDATE
      (PaymentRepository.transition_from_pending).
    """

    __tablename__ = "payments"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int | None = Field(default=None, foreign_key="sites.id", index=True)
    order_id: int | None = Field(default=None, foreign_key="orders.id", index=True)
    user_id: int | None = Field(default=None, foreign_key="users.id", index=True)
    customer_id: int | None = Field(default=None, foreign_key="customers.id", index=True)
    user_type: UserType

    tracking_number: int = Field(sa_type=BigInteger, unique=True, index=True)
    gateway: GatewayKind
    amount: int = Field(ge=0, sa_type=BigInteger)
    status: PaymentStatus = Field(default=PaymentStatus.PENDING, index=True)

    provider_token: str | None = Field(default=None)
    transaction_code: str | None = Field(default=None)
    message: str | None = Field(default=None)

    order_data: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    client_ip: str | None = Field(default=None, max_length=64)
    return_url: str
    call_verify_url: CallVerifyUrl


class Gateway(TimestampMixin, table=True):
    """
    Per-site gateway account configuration.

    credentials: {kind: {field: value}}, validated against
    REQUIRED_CREDENTIALS in sitebuilder.core.gateway_client.
    active_kinds: kinds the site accepts at checkout.
    """

    __tablename__ = "gateways"

    id: int | None = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="sites.id", unique=True, index=True)
    user_id: int = Field(foreign_key="users.id")
    credentials: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
    )
    active_kinds: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
