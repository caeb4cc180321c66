# sitebuilder/repositories/user_repo.py
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow
from sitebuilder.models.site import Address, Customer, Site
from sitebuilder.models.user import Plan, User


class UserRepository:
    """
    Data access layer for tenants, plans, sites, customers and addresses.

    - Pure DB operations (CRUD + queries).
    - No FastAPI, no business logic.
    """

    # ----- Users / plans -----

    def get_by_id(self, session: Session, user_id: int) -> User | None:
        return session.get(User, user_id)

    def update(self, session: Session, user: User) -> User:
        user.updated_at = utcnow()
        session.add(user)
        session.flush()
        session.refresh(user)
        return user

    def get_plan(self, session: Session, plan_id: int) -> Plan | None:
        return session.get(Plan, plan_id)

    def list_plans(self, session: Session) -> list[Plan]:
        return list(session.exec(select(Plan).order_by(Plan.price)).all())

    # ----- Sites -----

    def get_site(self, session: Session, site_id: int) -> Site | None:
        site = session.get(Site, site_id)
        if site is None or site.is_deleted:
            return None
        return site

    def list_sites_for_user(self, session: Session, user_id: int) -> list[Site]:
        stmt = select(Site).where(
            Site.user_id == user_id,
            Site.is_deleted == False,  # noqa: E712
        )
        return list(session.exec(stmt).all())

    # ----- Customers -----

    def get_customer(self, session: Session, customer_id: int) -> Customer | None:
        return session.get(Customer, customer_id)

    def get_address(self, session: Session, address_id: int) -> Address | None:
        address = session.get(Address, address_id)
        if address is None or address.is_deleted:
            return None
        return address
