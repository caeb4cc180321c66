# sitebuilder/services/order_service.py
import logging
from datetime import timedelta

from sqlmodel import Session

from sitebuilder.core.clock import ensure_utc, utcnow
from sitebuilder.core.config import get_settings
from sitebuilder.core.errors import (
    BasketChanged,
    BasketInvalid,
    Conflict,
    CouponExhausted,
    DiscountAlreadyRedeemed,
    DiscountExhausted,
    Forbidden,
    GatewayUnavailable,
    NotFound,
    OutOfStock,
    ValidationFailed,
)
from sitebuilder.core.gateway_client import (
    GatewayRegistry,
    GatewayUnavailableError,
    GatewayVerifyResult,
)
from sitebuilder.core.messaging import EventPublisher
from sitebuilder.models.basket import Basket, BasketItem
from sitebuilder.models.enums import (
    CallVerifyUrl,
    GatewayKind,
    OrderStatus,
    PaymentStatus,
    UserType,
)
from sitebuilder.models.order import Order, OrderItem
from sitebuilder.models.payment import Payment
from sitebuilder.models.product import Product
from sitebuilder.models.site import Customer
from sitebuilder.models.user import User
from sitebuilder.repositories.basket_repo import BasketRepository
from sitebuilder.repositories.discount_repo import DiscountRepository
from sitebuilder.repositories.exceptions import (
    AlreadyRedeemedError,
    InsufficientStockError,
    QuantityExhaustedError,
)
from sitebuilder.repositories.order_repo import OrderRepository
from sitebuilder.repositories.payment_repo import PaymentRepository
from sitebuilder.repositories.product_repo import ProductRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.common import PaginationParams
from sitebuilder.schemas.order import (
    OrderItemRead,
    OrderPage,
    OrderRead,
    OrderRequestCreate,
    OrderWithItemsRead,
    PaymentRedirectResponse,
    PriceRequest,
    PriceResponse,
    PriceTotals,
    PricedItemRead,
)
from sitebuilder.services.access import ensure_site_access
from sitebuilder.services.basket_service import lines_from_items
from sitebuilder.services.payment_flow import (
    PaymentHandler,
    VerifyOutcome,
    build_callback_url,
    new_tracking_number,
)
from sitebuilder.services.pricing_service import PricedBasket, PricingLine, PricingService

logger = logging.getLogger(__name__)
settings = get_settings()


def courier_price_for(courier, products: list[Product]) -> int:
    """Shipping is free only when every product in the order ships free."""
    if products and all(p.free_send for p in products):
        return 0
    return settings.COURIER_PRICES.get(courier.value, 0)


class OrderService:
    """
    Business logic for orders.

    Responsibilities:
      - Price previews for the storefront.
      - Checkout: turn the customer's basket into an Order + Payment and
        send the customer to the gateway.
      - Order queries for customers, site owners and admins.
      - Customer cancel and expiry of unpaid orders.

    Gateway calls are made outside any open transaction.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        basket_repo: BasketRepository,
        product_repo: ProductRepository,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        pricing: PricingService,
        gateways: GatewayRegistry,
        publisher: EventPublisher,
    ):
        self.order_repo = order_repo
        self.basket_repo = basket_repo
        self.product_repo = product_repo
        self.payment_repo = payment_repo
        self.user_repo = user_repo
        self.pricing = pricing
        self.gateways = gateways
        self.publisher = publisher

    # -------- Customer-facing operations --------

    def price_preview(
        self,
        session: Session,
        customer: Customer,
        payload: PriceRequest,
    ) -> PriceResponse:
        """
        Price arbitrary lines for the storefront without touching the basket.
        """
        self._ensure_customer_scope(customer, payload.site_id, payload.customer_id)
        priced = self.pricing.price(
            session,
            payload.site_id,
            customer.id,
            [
                PricingLine(
                    product_id=it.product_id,
                    product_variant_id=it.product_variant_id,
                    quantity=it.quantity,
                    basket_item_id=it.basket_item_id,
                )
                for it in payload.items
            ],
            code=payload.code,
        )
        return self._build_price_response(priced)

    def create_order_request(
        self,
        session: Session,
        customer: Customer,
        payload: OrderRequestCreate,
        client_ip: str | None,
    ) -> PaymentRedirectResponse:
        """
        Checkout the customer's basket.

        Steps:
          1. Check site scope, gateway activation and the address.
          2. Load the basket; compare item versions with what the client saw.
          3. Re-price; reject stale totals (409 BasketChanged, or the
             specific CouponExhausted / DiscountExhausted /
             DiscountAlreadyRedeemed when a counter ran out) and
             insufficient stock (409 OutOfStock).
          4. One transaction: Order (draft) + items + Payment (pending),
             delete the basket.
          5. Ask the gateway for a redirect URL (no transaction open).
             Failure => payment inactive, order failed, 502.
          6. Order -> awaiting_payment.
        """
        # 1) Scope, gateway, address
        self._ensure_customer_scope(customer, payload.site_id)
        account_config = self._site_gateway_config(session, payload.site_id, payload.gateway)

        address = self.user_repo.get_address(session, payload.address_id)
        if address is None or address.customer_id != customer.id:
            raise NotFound("Address not found")

        # 2) Basket + optimistic version check
        basket = self.basket_repo.get_for_customer(session, customer.id, customer.site_id)
        items = self.basket_repo.list_items(session, basket.id) if basket else []
        if not items:
            raise BasketInvalid("Basket is empty")
        self._check_versions(items, payload)

        # 3) Re-price against current data
        priced = self.pricing.price(
            session,
            customer.site_id,
            customer.id,
            lines_from_items(items),
            discount_id=basket.discount_id,
        )
        if (
            priced.total_price_with_coupon_discount != basket.total_price_with_coupon_discount
            or priced.discount_id != basket.discount_id
        ):
            self._raise_if_exhausted(session, basket, items, priced)
            raise BasketChanged(
                "Basket prices changed; refetch the basket",
                basket_item_ids=[it.id for it in items],
            )
        if priced.out_of_stock_variant_ids:
            raise OutOfStock(product_variant_ids=priced.out_of_stock_variant_ids)

        products = self.pricing.products_for(session, priced)
        courier_price = courier_price_for(payload.courier, list(products.values()))
        total_weight = sum(products[ln.product_id].weight * ln.quantity for ln in priced.lines)

        # 4) Order + items + payment, basket removed, in one transaction
        order = self.order_repo.create_order(
            session,
            Order(
                site_id=customer.site_id,
                customer_id=customer.id,
                address_id=address.id,
                discount_id=priced.discount_id,
                gateway=payload.gateway,
                courier=payload.courier,
                description=payload.description,
                status=OrderStatus.DRAFT,
                total_raw_price=priced.total_raw_price,
                total_coupon_discount=priced.total_coupon_discount,
                total_discount=priced.total_discount,
                total_price_with_coupon_discount=priced.total_price_with_coupon_discount,
                courier_price=courier_price,
                total_final_price=priced.total_price_with_coupon_discount + courier_price,
                total_weight=total_weight,
            ),
        )
        self.order_repo.create_items(
            session,
            [
                OrderItem(
                    order_id=order.id,
                    product_id=ln.product_id,
                    product_variant_id=ln.product_variant_id,
                    coupon_id=ln.coupon_id,
                    quantity=ln.quantity,
                    raw_price=ln.raw_price,
                    just_coupon_price=ln.just_coupon_price,
                    final_raw_price=ln.final_raw_price,
                    just_discount_price=ln.just_discount_price,
                    final_price_with_coupon_discount=ln.final_price_with_coupon_discount,
                )
                for ln in priced.lines
            ],
        )
        payment = self.payment_repo.create(
            session,
            Payment(
                site_id=customer.site_id,
                order_id=order.id,
                customer_id=customer.id,
                user_type=UserType.CUSTOMER,
                tracking_number=new_tracking_number(),
                gateway=payload.gateway,
                amount=order.total_final_price,
                status=PaymentStatus.PENDING,
                order_data={"order_id": order.id},
                client_ip=client_ip,
                return_url=payload.final_front_return_url,
                call_verify_url=CallVerifyUrl.CREATE_ORDER_VERIFY,
            ),
        )
        self.basket_repo.delete(session, basket)
        session.commit()
        session.refresh(order)
        session.refresh(payment)
        logger.info(
            "Order %s created for customer %s (payment %s, amount %s)",
            order.id,
            customer.id,
            payment.tracking_number,
            payment.amount,
        )

        # 5) Gateway request, outside the transaction
        try:
            adapter = self.gateways.adapter_for(payload.gateway)
            requested = adapter.request(
                amount=payment.amount,
                tracking_number=payment.tracking_number,
                gateway=payload.gateway,
                account_config=account_config,
                return_url=build_callback_url(
                    CallVerifyUrl.CREATE_ORDER_VERIFY, payment.tracking_number
                ),
                client_ip=client_ip,
            )
        except GatewayUnavailableError as e:
            logger.warning("Gateway request failed for order %s: %s", order.id, e)
            self.payment_repo.transition_from_pending(
                session, payment.id, PaymentStatus.INACTIVE, message=str(e)
            )
            self._fail_order(session, order, f"gateway request failed: {e}")
            raise GatewayUnavailable()

        # 6) Awaiting payment
        payment.provider_token = requested.provider_token
        self.payment_repo.update(session, payment)
        order.status = OrderStatus.AWAITING_PAYMENT
        self.order_repo.update_order(session, order)
        session.commit()
        logger.info("Order %s awaiting payment %s", order.id, payment.tracking_number)

        return PaymentRedirectResponse(
            redirect_url=requested.redirect_url,
            tracking_number=payment.tracking_number,
        )

    def cancel_order(self, session: Session, customer: Customer, order_id: int) -> OrderRead:
        """
        Customer gives up on an unpaid order: order -> abandoned, its
        pending payment -> inactive. A payment that was claimed first wins.
        """
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.customer_id != customer.id:
            raise NotFound("Order not found")
        if order.status != OrderStatus.AWAITING_PAYMENT:
            raise Conflict(f"Order in status {order.status.value} cannot be cancelled")

        if not self._release_pending_payments(session, order, "cancelled by customer"):
            session.rollback()
            raise Conflict("Order payment is already being settled")

        order.status = OrderStatus.ABANDONED
        order.failure_reason = "cancelled by customer"
        self.order_repo.update_order(session, order)
        session.commit()
        session.refresh(order)
        logger.info("Order %s cancelled by customer %s", order.id, customer.id)
        return order  # type: ignore[return-value]

    def abandon_expired_orders(self, session: Session) -> list[int]:
        """
        Move awaiting_payment orders older than ORDER_PAYMENT_TIMEOUT_MINUTES
        to abandoned.
        """
        cutoff = utcnow() - timedelta(minutes=settings.ORDER_PAYMENT_TIMEOUT_MINUTES)
        abandoned: list[int] = []
        for order in self.order_repo.list_awaiting_payment_before(session, cutoff):
            if not self._release_pending_payments(session, order, "payment timeout"):
                continue
            order.status = OrderStatus.ABANDONED
            order.failure_reason = "payment timeout"
            self.order_repo.update_order(session, order)
            abandoned.append(order.id)
        session.commit()
        if abandoned:
            logger.info("Abandoned %d expired orders: %s", len(abandoned), abandoned)
        return abandoned

    # -------- Queries --------

    def list_customer_orders(
        self,
        session: Session,
        customer: Customer,
        params: PaginationParams,
    ) -> OrderPage:
        orders, total = self.order_repo.list_for_customer(session, customer.id, params)
        return self._page(orders, total, params)

    def get_customer_order(
        self,
        session: Session,
        customer: Customer,
        order_id: int,
    ) -> OrderWithItemsRead:
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.customer_id != customer.id:
            raise NotFound("Order not found")
        return self._build_order_with_items_dto(session, order)

    def list_site_orders(
        self,
        session: Session,
        user: User,
        site_id: int,
        params: PaginationParams,
        status: OrderStatus | None = None,
    ) -> OrderPage:
        ensure_site_access(self.user_repo, session, user, site_id)
        orders, total = self.order_repo.list_for_site(session, site_id, params, status)
        return self._page(orders, total, params)

    def get_site_order(
        self,
        session: Session,
        user: User,
        site_id: int,
        order_id: int,
    ) -> OrderWithItemsRead:
        ensure_site_access(self.user_repo, session, user, site_id)
        order = self.order_repo.get_by_id(session, order_id)
        if not order or order.site_id != site_id:
            raise NotFound("Order not found")
        return self._build_order_with_items_dto(session, order)

    def list_all_orders(
        self,
        session: Session,
        params: PaginationParams,
        status: OrderStatus | None = None,
    ) -> OrderPage:
        orders, total = self.order_repo.list_all(session, params, status)
        return self._page(orders, total, params)

    # -------- Helpers --------

    def _ensure_customer_scope(
        self,
        customer: Customer,
        site_id: int,
        customer_id: int | None = None,
    ) -> None:
        if site_id != customer.site_id:
            raise Forbidden("Customer does not belong to this site")
        if customer_id is not None and customer_id != customer.id:
            raise Forbidden("customer_id does not match the authenticated customer")

    def _site_gateway_config(self, session: Session, site_id: int, kind: GatewayKind) -> dict:
        gateway = self.payment_repo.get_gateway_for_site(session, site_id)
        if gateway is None or kind.value not in gateway.active_kinds:
            raise ValidationFailed(
                "Gateway is not active for this site",
                fields={"gateway": f"{kind.value} is not active"},
            )
        return dict(gateway.credentials.get(kind.value, {}))

    def _raise_if_exhausted(
        self,
        session: Session,
        basket: Basket,
        items: list[BasketItem],
        priced: PricedBasket,
    ) -> None:
        """Name the counter that ran out since the basket was priced, if any."""
        if basket.discount_id is not None and priced.discount_id is None:
            if priced.discount_rejection == "exhausted":
                raise DiscountExhausted(discount_id=basket.discount_id)
            if priced.discount_rejection == "already_redeemed":
                raise DiscountAlreadyRedeemed(discount_id=basket.discount_id)

        couponed = {it.id for it in items if it.just_coupon_price > 0}
        lost = sorted(
            {
                ln.product_id
                for ln in priced.lines
                if ln.basket_item_id in couponed and ln.coupon_id is None
            }
        )
        coupons = self.product_repo.get_coupons_for_products(session, lost)
        exhausted = [pid for pid in lost if pid in coupons and coupons[pid].quantity <= 0]
        if exhausted:
            raise CouponExhausted(product_ids=exhausted)

    def _check_versions(self, items: list[BasketItem], payload: OrderRequestCreate) -> None:
        seen = {bv.basket_item_id: ensure_utc(bv.version) for bv in payload.basket_versions}
        changed = sorted(
            {it.id for it in items if seen.get(it.id) != ensure_utc(it.version)}
            | (set(seen) - {it.id for it in items})
        )
        if changed:
            raise BasketChanged(basket_item_ids=changed)

    def _release_pending_payments(self, session: Session, order: Order, reason: str) -> bool:
        """Set the order's pending payments inactive; False if one was already settled."""
        released = True
        for payment in self.payment_repo.list_for_order(session, order.id):
            if payment.status == PaymentStatus.ACTIVE:
                released = False
            elif payment.status == PaymentStatus.PENDING:
                if not self.payment_repo.transition_from_pending(
                    session, payment.id, PaymentStatus.INACTIVE, message=reason
                ):
                    released = False
        return released

    def _fail_order(self, session: Session, order: Order, reason: str) -> None:
        order.status = OrderStatus.FAILED
        order.failure_reason = reason
        self.order_repo.update_order(session, order)
        session.commit()
        logger.info("Order %s failed: %s", order.id, reason)
        self.publisher.publish_after_commit(
            "order.failed",
            {"order_id": order.id, "site_id": order.site_id, "reason": reason},
        )

    def _page(self, orders: list[Order], total: int, params: PaginationParams) -> OrderPage:
        return OrderPage(
            items=[OrderRead.model_validate(o, from_attributes=True) for o in orders],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    def _build_price_response(self, priced: PricedBasket) -> PriceResponse:
        return PriceResponse(
            items=[
                PricedItemRead(
                    basket_item_id=ln.basket_item_id,
                    product_id=ln.product_id,
                    product_variant_id=ln.product_variant_id,
                    quantity=ln.quantity,
                    unit_price=ln.unit_price,
                    raw_price=ln.raw_price,
                    just_coupon_price=ln.just_coupon_price,
                    final_raw_price=ln.final_raw_price,
                    just_discount_price=ln.just_discount_price,
                    final_price_with_coupon_discount=ln.final_price_with_coupon_discount,
                    out_of_stock=ln.out_of_stock,
                )
                for ln in priced.lines
            ],
            totals=PriceTotals(
                total_raw_price=priced.total_raw_price,
                total_coupon_discount=priced.total_coupon_discount,
                total_final_raw_price=priced.total_final_raw_price,
                total_discount=priced.total_discount,
                total_price_with_coupon_discount=priced.total_price_with_coupon_discount,
            ),
            currency=settings.SITE_DEFAULT_CURRENCY,
            discount_id=priced.discount_id,
            discount_rejection=priced.discount_rejection,
        )

    def _build_order_with_items_dto(self, session: Session, order: Order) -> OrderWithItemsRead:
        items = self.order_repo.list_items_for_order(session, order.id)
        return OrderWithItemsRead(
            **OrderRead.model_validate(order, from_attributes=True).model_dump(),
            items=[OrderItemRead.model_validate(it, from_attributes=True) for it in items],
        )


class OrderPaymentHandler(PaymentHandler):
    """
    Resumes checkout when the gateway calls back with create_order_verify.

    Success commits the order's effects in one transaction:
      stock per item, each distinct coupon once, the discount code
      (quantity + redemption row), selling counters, order -> committed.

    If any of those fails the transaction is rolled back, the payment is
    re-claimed as active (the customer did pay) and the order goes to
    needs_reconciliation for manual handling.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        product_repo: ProductRepository,
        discount_repo: DiscountRepository,
        payment_repo: PaymentRepository,
        user_repo: UserRepository,
        publisher: EventPublisher,
    ):
        self.order_repo = order_repo
        self.product_repo = product_repo
        self.discount_repo = discount_repo
        self.payment_repo = payment_repo
        self.user_repo = user_repo
        self.publisher = publisher

    def account_config(self, session: Session, payment: Payment) -> dict:
        gateway = self.payment_repo.get_gateway_for_site(session, payment.site_id)
        if gateway is None:
            return {}
        return dict(gateway.credentials.get(payment.gateway.value, {}))

    def _order_for(self, session: Session, payment: Payment) -> Order:
        order_id = payment.order_id or payment.order_data.get("order_id")
        order = self.order_repo.get_by_id(session, order_id)
        if order is None:
            raise NotFound("Order for payment not found")
        return order

    def prior_outcome(self, session: Session, payment: Payment) -> VerifyOutcome:
        session.refresh(payment)
        order = self._order_for(session, payment)
        session.refresh(order)
        return VerifyOutcome(
            success=order.status == OrderStatus.COMMITTED,
            tracking_number=payment.tracking_number,
            status=order.status.value,
            return_url=payment.return_url,
        )

    def on_failure(self, session, payment, result):
        order = self._order_for(session, payment)
        reason = result.message or "payment was not verified"
        order.status = OrderStatus.FAILED
        order.failure_reason = reason
        self.order_repo.update_order(session, order)
        session.commit()
        logger.info("Order %s failed verification: %s", order.id, reason)
        self.publisher.publish_after_commit(
            "order.failed",
            {"order_id": order.id, "site_id": order.site_id, "reason": reason},
        )
        return self.prior_outcome(session, payment)

    def on_success(self, session, payment, result):
        order = self._order_for(session, payment)
        if order.status != OrderStatus.AWAITING_PAYMENT:
            return self._reconcile(
                session,
                payment,
                result,
                order.id,
                f"payment verified while order was {order.status.value}",
            )

        items = self.order_repo.list_items_for_order(session, order.id)
        try:
            for it in items:
                self.product_repo.decrease_stock(session, it.product_variant_id, it.quantity)
                # one coupon use per discounted line
                if it.coupon_id is not None:
                    self.product_repo.decrease_coupon_quantity(session, it.coupon_id)
            if order.discount_id is not None:
                self.discount_repo.decrease_quantity(session, order.discount_id)
                self.discount_repo.redeem(session, order.customer_id, order.discount_id, order.id)
            for it in items:
                self.product_repo.increase_selling_count(session, it.product_id, it.quantity)

            now = utcnow()
            order.status = OrderStatus.PAID
            order.paid_at = now
            self.order_repo.update_order(session, order)
            order.status = OrderStatus.COMMITTED
            self.order_repo.update_order(session, order)
            session.commit()
        except (InsufficientStockError, QuantityExhaustedError, AlreadyRedeemedError) as e:
            session.rollback()
            return self._reconcile(session, payment, result, order.id, str(e))

        logger.info("Order %s committed (payment %s)", order.id, payment.tracking_number)
        self._publish_committed(session, order, items)
        return self.prior_outcome(session, payment)

    def _reconcile(
        self,
        session: Session,
        payment: Payment,
        result: GatewayVerifyResult,
        order_id: int,
        reason: str,
    ) -> VerifyOutcome:
        # The claim may have been rolled back with the failed commit;
        # take it again so the payment never returns to pending.
        session.refresh(payment)
        if payment.status == PaymentStatus.PENDING:
            if not self.payment_repo.transition_from_pending(
                session,
                payment.id,
                PaymentStatus.ACTIVE,
                transaction_code=result.transaction_code,
                message=reason,
            ):
                session.rollback()
                return self.prior_outcome(session, payment)

        order = self.order_repo.get_by_id(session, order_id)
        session.refresh(order)
        order.status = OrderStatus.NEEDS_RECONCILIATION
        order.failure_reason = reason
        self.order_repo.update_order(session, order)
        session.commit()
        logger.error(
            "Order %s needs reconciliation (payment %s): %s",
            order.id,
            payment.tracking_number,
            reason,
        )
        self.publisher.publish_after_commit(
            "order.needs_reconciliation",
            {
                "order_id": order.id,
                "site_id": order.site_id,
                "payment_tracking": payment.tracking_number,
                "reason": reason,
            },
        )
        return self.prior_outcome(session, payment)

    def _publish_committed(self, session: Session, order: Order, items: list[OrderItem]) -> None:
        self.publisher.publish_after_commit(
            "order.committed",
            {
                "order_id": order.id,
                "site_id": order.site_id,
                "customer_id": order.customer_id,
                "total": order.total_final_price,
                "items": [
                    {
                        "product_id": it.product_id,
                        "product_variant_id": it.product_variant_id,
                        "quantity": it.quantity,
                        "price": it.final_price_with_coupon_discount,
                    }
                    for it in items
                ],
            },
        )

        customer = self.user_repo.get_customer(session, order.customer_id)
        if customer is None:
            return
        if customer.email:
            self.publisher.publish_after_commit(
                "notification.email",
                {
                    "site_id": order.site_id,
                    "to": customer.email,
                    "subject": f"Order #{order.id} confirmed",
                    "body": (
                        f"Your payment of {order.total_final_price} "
                        f"{settings.SITE_DEFAULT_CURRENCY} was received and order "
                        f"#{order.id} is being prepared."
                    ),
                },
            )
        if customer.phone:
            self.publisher.publish_after_commit(
                "notification.sms",
                {
                    "site_id": order.site_id,
                    "to": customer.phone,
                    "text": f"Order #{order.id} confirmed. Total: {order.total_final_price}",
                },
            )
