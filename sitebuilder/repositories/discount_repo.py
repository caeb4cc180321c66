# sitebuilder/repositories/discount_repo.py
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.discount import CustomerDiscount, Discount
from sitebuilder.repositories.base import directed, paginate
from sitebuilder.repositories.exceptions import AlreadyRedeemedError, QuantityExhaustedError
from sitebuilder.schemas.common import PaginationParams


class DiscountRepository:
    """
    Data access layer for site discount codes and their redemptions.
    """

    def get_by_id(self, session: Session, discount_id: int) -> Discount | None:
        discount = session.get(Discount, discount_id)
        if discount is None or discount.is_deleted:
            return None
        return discount

    def get_by_code(self, session: Session, site_id: int, code: str) -> Discount | None:
        stmt = select(Discount).where(
            Discount.site_id == site_id,
            Discount.code == code,
            Discount.is_deleted == False,  # noqa: E712
        )
        return session.exec(stmt).first()

    def list_for_site(
        self,
        session: Session,
        site_id: int,
        params: PaginationParams,
    ) -> tuple[list[Discount], int]:
        stmt = select(Discount).where(
            Discount.site_id == site_id,
            Discount.is_deleted == False,  # noqa: E712
        )
        if params.search:
            stmt = stmt.where(Discount.code.ilike(f"%{params.search}%"))
        stmt = stmt.order_by(directed(Discount.created_at, params), directed(Discount.id, params))
        return paginate(session, stmt, params)

    def save(self, session: Session, discount: Discount) -> Discount:
        now = utcnow()
        discount.updated_at = now
        discount.version = now
        session.add(discount)
        session.flush()
        session.refresh(discount)
        return discount

    def soft_delete(self, session: Session, discount: Discount) -> None:
        now = utcnow()
        discount.is_deleted = True
        discount.deleted_at = now
        discount.updated_at = now
        session.add(discount)
        session.flush()

    # ----- Redemption -----

    def has_redeemed(self, session: Session, customer_id: int, discount_id: int) -> bool:
        stmt = select(CustomerDiscount.id).where(
            CustomerDiscount.customer_id == customer_id,
            CustomerDiscount.discount_id == discount_id,
        )
        return session.exec(stmt).first() is not None

    def decrease_quantity(self, session: Session, discount_id: int) -> None:
        """
        Atomically consume one use of the code.

        Raises:
            QuantityExhaustedError: if no uses are left.
        """
        result = session.execute(
            update(Discount)
            .where(Discount.id == discount_id, Discount.quantity >= 1)
            .values(quantity=Discount.quantity - 1, version=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise QuantityExhaustedError("discount", discount_id)

    def redeem(
        self,
        session: Session,
        customer_id: int,
        discount_id: int,
        order_id: int | None,
    ) -> CustomerDiscount:
        """
        Record that the customer used the code.

        The (customer_id, discount_id) unique constraint makes this the
        serialization point for concurrent redemptions. A failed flush
        leaves the session needing a rollback.

        Raises:
            AlreadyRedeemedError: if a redemption row already exists.
        """
        row = CustomerDiscount(
            customer_id=customer_id,
            discount_id=discount_id,
            order_id=order_id,
        )
        session.add(row)
        try:
            session.flush()
        except IntegrityError as e:
            raise AlreadyRedeemedError(customer_id, discount_id) from e
        return row
