# sitebuilder/repositories/basket_repo.py
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.basket import Basket, BasketItem


class BasketRepository:
    """
    Data access layer for baskets and basket_items.

    NOTE:
      - No commits here; the basket service and checkout own the
        transaction.
    """

    def get_for_customer(self, session: Session, customer_id: int, site_id: int) -> Basket | None:
        stmt = select(Basket).where(
            Basket.customer_id == customer_id,
            Basket.site_id == site_id,
        )
        return session.exec(stmt).first()

    def upsert(self, session: Session, basket: Basket) -> Basket:
        """
        Insert the basket if (customer_id, site_id) has none yet,
        otherwise copy the new totals onto the existing row.
        """
        existing = self.get_for_customer(session, basket.customer_id, basket.site_id)
        if existing is not None and existing is not basket:
            existing.discount_id = basket.discount_id
            existing.total_raw_price = basket.total_raw_price
            existing.total_coupon_discount = basket.total_coupon_discount
            existing.total_discount = basket.total_discount
            existing.total_price_with_coupon_discount = basket.total_price_with_coupon_discount
            basket = existing
        basket.updated_at = utcnow()
        session.add(basket)
        session.flush()
        session.refresh(basket)
        return basket

    def list_items(self, session: Session, basket_id: int) -> list[BasketItem]:
        stmt = (
            select(BasketItem)
            .where(BasketItem.basket_id == basket_id)
            .order_by(BasketItem.id)
        )
        return list(session.exec(stmt).all())

    def replace_items(
        self,
        session: Session,
        basket_id: int,
        items: list[BasketItem],
    ) -> list[BasketItem]:
        """
        Delete every item of the basket, then insert `items`.
        """
        for old in self.list_items(session, basket_id):
            session.delete(old)
        session.flush()
        for item in items:
            item.basket_id = basket_id
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items

    def delete(self, session: Session, basket: Basket) -> None:
        for item in self.list_items(session, basket.id):
            session.delete(item)
        session.flush()
        session.delete(basket)
        session.flush()
