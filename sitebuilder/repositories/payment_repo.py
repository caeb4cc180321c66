# sitebuilder/repositories/payment_repo.py
from sqlalchemy import update
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.enums import PaymentStatus
from sitebuilder.models.payment import Gateway, Payment
from sitebuilder.repositories.base import directed, paginate
from sitebuilder.schemas.common import PaginationParams


class PaymentRepository:
    """
    Data access layer for payments and per-site gateway accounts.
    """

    # ---- Payments ----

    def create(self, session: Session, payment: Payment) -> Payment:
        session.add(payment)
        session.flush()
        session.refresh(payment)
        return payment

    def update(self, session: Session, payment: Payment) -> Payment:
        payment.updated_at = utcnow()
        session.add(payment)
        session.flush()
        session.refresh(payment)
        return payment

    def get_by_tracking_number(self, session: Session, tracking_number: int) -> Payment | None:
        stmt = select(Payment).where(Payment.tracking_number == tracking_number)
        return session.exec(stmt).first()

    def list_for_order(self, session: Session, order_id: int) -> list[Payment]:
        stmt = select(Payment).where(Payment.order_id == order_id).order_by(Payment.id)
        return list(session.exec(stmt).all())

    def list_all(
        self,
        session: Session,
        params: PaginationParams,
        status: PaymentStatus | None = None,
    ) -> tuple[list[Payment], int]:
        stmt = select(Payment)
        if status is not None:
            stmt = stmt.where(Payment.status == status)
        stmt = stmt.order_by(directed(Payment.created_at, params), directed(Payment.id, params))
        return paginate(session, stmt, params)

    def transition_from_pending(
        self,
        session: Session,
        payment_id: int,
        new_status: PaymentStatus,
        transaction_code: str | None = None,
        message: str | None = None,
    ) -> bool:
        """
        Claim a pending payment.

        UPDATE payments SET status = :new ... WHERE id = :id AND status = 'pending'

        Exactly one concurrent caller gets True; everyone else sees the
        payment already settled and must not apply side effects.
        """
        result = session.execute(
            update(Payment)
            .where(Payment.id == payment_id, Payment.status == PaymentStatus.PENDING)
            .values(
                status=new_status,
                transaction_code=transaction_code,
                message=message,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ---- Gateways ----

    def get_gateway_for_site(self, session: Session, site_id: int) -> Gateway | None:
        stmt = select(Gateway).where(Gateway.site_id == site_id)
        return session.exec(stmt).first()

    def save_gateway(self, session: Session, gateway: Gateway) -> Gateway:
        gateway.updated_at = utcnow()
        session.add(gateway)
        session.flush()
        session.refresh(gateway)
        return gateway
