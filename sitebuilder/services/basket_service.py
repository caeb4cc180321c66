# sitebuilder/services/basket_service.py
from sqlmodel import Session

from sitebuilder.core.clock import utcnow
from sitebuilder.core.config import get_settings
from sitebuilder.models.basket import Basket, BasketItem
from sitebuilder.models.site import Customer
from sitebuilder.repositories.basket_repo import BasketRepository
from sitebuilder.schemas.basket import BasketItemRead, BasketRead, BasketUpdate
from sitebuilder.services.pricing_service import (
    PricedBasket,
    PricingLine,
    PricingService,
)

settings = get_settings()


def lines_from_items(items: list[BasketItem]) -> list[PricingLine]:
    return [
        PricingLine(
            product_id=it.product_id,
            product_variant_id=it.product_variant_id,
            quantity=it.quantity,
            basket_item_id=it.id,
        )
        for it in items
    ]


class BasketService:
    """
    Business logic for the customer's basket on one site.

    Responsibilities:
      - Read the basket priced against current prices/stock.
      - Replace the basket contents, persist the priced snapshot and
        refresh every item version.
      - Clear the basket.

    Reads never touch item versions; only update_basket does, so a
    checkout started from an older read is rejected as BasketChanged.
    """

    def __init__(self, basket_repo: BasketRepository, pricing: PricingService):
        self.basket_repo = basket_repo
        self.pricing = pricing

    def get_basket(self, session: Session, customer: Customer) -> BasketRead:
        basket = self.basket_repo.get_for_customer(session, customer.id, customer.site_id)
        if basket is None:
            return self._empty(customer)
        items = self.basket_repo.list_items(session, basket.id)
        if not items:
            return self._empty(customer, basket)

        priced = self.pricing.price(
            session,
            customer.site_id,
            customer.id,
            lines_from_items(items),
            discount_id=basket.discount_id,
        )
        return self._build_read(basket, items, priced)

    def update_basket(
        self,
        session: Session,
        customer: Customer,
        payload: BasketUpdate,
    ) -> BasketRead:
        """
        Steps:
          1. Price the submitted lines (validates products/variants).
          2. Upsert the (customer, site) basket with the new totals and
             the applied discount (if the code was valid).
          3. Replace its items with the priced lines, version = now.
          4. Commit.
        """
        if not payload.items:
            self.clear_basket(session, customer)
            return self._empty(customer)

        lines = [
            PricingLine(
                product_id=it.product_id,
                product_variant_id=it.product_variant_id,
                quantity=it.quantity,
            )
            for it in payload.items
        ]
        priced = self.pricing.price(
            session,
            customer.site_id,
            customer.id,
            lines,
            code=payload.code,
        )

        basket = self.basket_repo.upsert(
            session,
            Basket(
                site_id=customer.site_id,
                customer_id=customer.id,
                discount_id=priced.discount_id,
                total_raw_price=priced.total_raw_price,
                total_coupon_discount=priced.total_coupon_discount,
                total_discount=priced.total_discount,
                total_price_with_coupon_discount=priced.total_price_with_coupon_discount,
            ),
        )

        version = utcnow()
        items = self.basket_repo.replace_items(
            session,
            basket.id,
            [
                BasketItem(
                    basket_id=basket.id,
                    product_id=ln.product_id,
                    product_variant_id=ln.product_variant_id,
                    quantity=ln.quantity,
                    raw_price=ln.raw_price,
                    just_coupon_price=ln.just_coupon_price,
                    final_raw_price=ln.final_raw_price,
                    just_discount_price=ln.just_discount_price,
                    final_price_with_coupon_discount=ln.final_price_with_coupon_discount,
                    version=version,
                )
                for ln in priced.lines
            ],
        )
        session.commit()
        session.refresh(basket)

        for item, ln in zip(items, priced.lines):
            session.refresh(item)
            ln.basket_item_id = item.id
        return self._build_read(basket, items, priced)

    def clear_basket(self, session: Session, customer: Customer) -> None:
        basket = self.basket_repo.get_for_customer(session, customer.id, customer.site_id)
        if basket is not None:
            self.basket_repo.delete(session, basket)
            session.commit()

    # -------- Helper DTO builders --------

    def _empty(self, customer: Customer, basket: Basket | None = None) -> BasketRead:
        return BasketRead(
            id=basket.id if basket else None,
            site_id=customer.site_id,
            customer_id=customer.id,
            discount_id=None,
            items=[],
            total_raw_price=0,
            total_coupon_discount=0,
            total_discount=0,
            total_price_with_coupon_discount=0,
            currency=settings.SITE_DEFAULT_CURRENCY,
        )

    def _build_read(
        self,
        basket: Basket,
        items: list[BasketItem],
        priced: PricedBasket,
    ) -> BasketRead:
        item_dtos = [
            BasketItemRead(
                id=item.id,
                product_id=ln.product_id,
                product_variant_id=ln.product_variant_id,
                quantity=ln.quantity,
                raw_price=ln.raw_price,
                just_coupon_price=ln.just_coupon_price,
                final_raw_price=ln.final_raw_price,
                just_discount_price=ln.just_discount_price,
                final_price_with_coupon_discount=ln.final_price_with_coupon_discount,
                out_of_stock=ln.out_of_stock,
                version=item.version,
            )
            for item, ln in zip(items, priced.lines)
        ]
        return BasketRead(
            id=basket.id,
            site_id=basket.site_id,
            customer_id=basket.customer_id,
            discount_id=priced.discount_id,
            discount_rejection=priced.discount_rejection,
            items=item_dtos,
            total_raw_price=priced.total_raw_price,
            total_coupon_discount=priced.total_coupon_discount,
            total_discount=priced.total_discount,
            total_price_with_coupon_discount=priced.total_price_with_coupon_discount,
            currency=settings.SITE_DEFAULT_CURRENCY,
        )
