# sitebuilder/core/container.py
from functools import lru_cache

from fastapi import Depends

from sitebuilder.core.gateway_client import GatewayRegistry
from sitebuilder.core.messaging import EventPublisher, RabbitEventPublisher
from sitebuilder.models.enums import CallVerifyUrl
from sitebuilder.repositories.basket_repo import BasketRepository
from sitebuilder.repositories.discount_repo import DiscountRepository
from sitebuilder.repositories.order_repo import OrderRepository
from sitebuilder.repositories.page_repo import ContentRepository, PageUsageRepository
from sitebuilder.repositories.payment_repo import PaymentRepository
from sitebuilder.repositories.product_repo import ProductRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.services.credit_service import (
    CreditChargeHandler,
    CreditService,
    PlanUpgradeHandler,
)
from sitebuilder.services.order_service import OrderPaymentHandler, OrderService
from sitebuilder.services.payment_service import VerifyService
from sitebuilder.services.pricing_service import PricingService

# ---------------------------------------------------------
# Stateless repositories, shared by every request.
# ---------------------------------------------------------

order_repo = OrderRepository()
basket_repo = BasketRepository()
product_repo = ProductRepository()
discount_repo = DiscountRepository()
payment_repo = PaymentRepository()
user_repo = UserRepository()
content_repo = ContentRepository()
usage_repo = PageUsageRepository()

pricing_service = PricingService(product_repo, discount_repo)


# ---------------------------------------------------------
# External collaborators. Tests replace these through
# app.dependency_overrides.
# ---------------------------------------------------------


@lru_cache
def get_event_publisher() -> EventPublisher:
    return RabbitEventPublisher.from_settings()


@lru_cache
def get_gateway_registry() -> GatewayRegistry:
    return GatewayRegistry.from_settings()


def get_order_service(
    gateways: GatewayRegistry = Depends(get_gateway_registry),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> OrderService:
    return OrderService(
        order_repo,
        basket_repo,
        product_repo,
        payment_repo,
        user_repo,
        pricing_service,
        gateways,
        publisher,
    )


def get_credit_service(
    gateways: GatewayRegistry = Depends(get_gateway_registry),
) -> CreditService:
    return CreditService(payment_repo, user_repo, gateways)


def get_verify_service(
    gateways: GatewayRegistry = Depends(get_gateway_registry),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> VerifyService:
    """
    One handler per callback tag; the tag is stored on the payment when
    the flow starts and comes back in the callback path.
    """
    handlers = {
        CallVerifyUrl.CREATE_ORDER_VERIFY: OrderPaymentHandler(
            order_repo,
            product_repo,
            discount_repo,
            payment_repo,
            user_repo,
            publisher,
        ),
        CallVerifyUrl.CHARGE_CREDIT_VERIFY: CreditChargeHandler(user_repo),
        CallVerifyUrl.UPGRADE_PLAN_VERIFY: PlanUpgradeHandler(user_repo),
    }
    return VerifyService(payment_repo, gateways, handlers)
