# sitebuilder/schemas/payment.py
from datetime import datetime
from typing import Any

from pydantic import ConfigDict
from sqlmodel import SQLModel, Field

from sitebuilder.models.enums import (
    CallVerifyUrl,
    CreditKind,
    GatewayKind,
    PaymentStatus,
    UserType,
)


class GatewayUpsert(SQLModel):
    """
    Payload for PUT /payment/gateways/{site_id}.

    credentials are validated against the provider's required fields
    only when the kind is being activated.
    """

    model_config = ConfigDict(extra="forbid")

    kind: GatewayKind
    credentials: dict[str, Any] = {}
    is_active: bool = True


class GatewayRead(SQLModel):
    id: int
    site_id: int
    active_kinds: list[str]
    # credential field names per kind; secrets are never echoed back
    configured_fields: dict[str, list[str]]
    updated_at: datetime


class CreditChargeRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    gateway: GatewayKind
    credits: dict[CreditKind, int]
    final_front_return_url: str = Field(min_length=1)


class PlanUpgradeRequest(SQLModel):
    model_config = ConfigDict(extra="forbid")

    gateway: GatewayKind
    plan_id: int
    final_front_return_url: str = Field(min_length=1)


class PaymentRead(SQLModel):
    id: int
    site_id: int | None
    order_id: int | None
    user_id: int | None
    customer_id: int | None
    user_type: UserType
    tracking_number: int
    gateway: GatewayKind
    amount: int
    status: PaymentStatus
    transaction_code: str | None
    message: str | None
    call_verify_url: CallVerifyUrl
    created_at: datetime
    updated_at: datetime


class PaymentPage(SQLModel):
    items: list[PaymentRead]
    total_count: int
    page: int
    page_size: int
