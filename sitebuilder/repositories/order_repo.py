# sitebuilder/repositories/order_repo.py
from datetime import datetime

from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.enums import OrderStatus
from sitebuilder.models.order import Order, OrderItem
from sitebuilder.repositories.base import directed, paginate
from sitebuilder.schemas.common import PaginationParams


class OrderRepository:
    """
    Data access layer for orders and order_items.

    NOTE:
      - No commits here; order creation and payment verification are
        multi-step transactions. The service calls session.commit().
    """

    # ---- Orders ----

    def list_for_customer(
        self,
        session: Session,
        customer_id: int,
        params: PaginationParams,
    ) -> tuple[list[Order], int]:
        stmt = (
            select(Order)
            .where(Order.customer_id == customer_id)
            .order_by(directed(Order.created_at, params), directed(Order.id, params))
        )
        return paginate(session, stmt, params)

    def list_for_site(
        self,
        session: Session,
        site_id: int,
        params: PaginationParams,
        status: OrderStatus | None = None,
    ) -> tuple[list[Order], int]:
        stmt = select(Order).where(Order.site_id == site_id)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(directed(Order.created_at, params), directed(Order.id, params))
        return paginate(session, stmt, params)

    def list_all(
        self,
        session: Session,
        params: PaginationParams,
        status: OrderStatus | None = None,
    ) -> tuple[list[Order], int]:
        stmt = select(Order)
        if status is not None:
            stmt = stmt.where(Order.status == status)
        stmt = stmt.order_by(directed(Order.created_at, params), directed(Order.id, params))
        return paginate(session, stmt, params)

    def list_awaiting_payment_before(self, session: Session, cutoff: datetime) -> list[Order]:
        stmt = select(Order).where(
            Order.status == OrderStatus.AWAITING_PAYMENT,
            Order.updated_at < cutoff,
        )
        return list(session.exec(stmt).all())

    def get_by_id(self, session: Session, order_id: int) -> Order | None:
        return session.get(Order, order_id)

    def create_order(self, session: Session, order: Order) -> Order:
        """
        Insert an Order without committing, but ensure id is populated.
        """
        session.add(order)
        session.flush()  # Assign PK
        session.refresh(order)
        return order

    def update_order(self, session: Session, order: Order) -> Order:
        order.updated_at = utcnow()
        session.add(order)
        session.flush()
        session.refresh(order)
        return order

    # ---- Order items ----

    def list_items_for_order(self, session: Session, order_id: int) -> list[OrderItem]:
        stmt = (
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.id)
        )
        return list(session.exec(stmt).all())

    def create_items(self, session: Session, items: list[OrderItem]) -> list[OrderItem]:
        session.add_all(items)
        session.flush()
        for item in items:
            session.refresh(item)
        return items
