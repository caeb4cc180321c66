# sitebuilder/services/discount_service.py
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from sitebuilder.core.errors import Conflict, NotFound, ValidationFailed
from sitebuilder.models.discount import Discount
from sitebuilder.models.enums import DiscountType
from sitebuilder.models.user import User
from sitebuilder.repositories.discount_repo import DiscountRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.common import PaginationParams
from sitebuilder.schemas.discount import DiscountCreate, DiscountPage, DiscountRead, DiscountUpdate
from sitebuilder.services.access import ensure_site_access


class DiscountService:
    """
    Site discount codes, managed by the site owner.
    """

    def __init__(self, discount_repo: DiscountRepository, user_repo: UserRepository):
        self.discount_repo = discount_repo
        self.user_repo = user_repo

    def create_discount(self, session: Session, user: User, payload: DiscountCreate) -> Discount:
        site = ensure_site_access(self.user_repo, session, user, payload.site_id)
        if self.discount_repo.get_by_code(session, site.id, payload.code) is not None:
            raise Conflict("Discount code already exists on this site", fields={"code": payload.code})

        discount = Discount(user_id=site.user_id, **payload.model_dump())
        self._save(session, discount)
        return discount

    def update_discount(
        self,
        session: Session,
        user: User,
        discount_id: int,
        payload: DiscountUpdate,
    ) -> Discount:
        discount = self._owned(session, user, discount_id)
        data = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

        if "code" in data and data["code"] != discount.code:
            if self.discount_repo.get_by_code(session, discount.site_id, data["code"]) is not None:
                raise Conflict("Discount code already exists on this site", fields={"code": data["code"]})

        for field, value in data.items():
            setattr(discount, field, value)
        if discount.type == DiscountType.PERCENTAGE and discount.value > 100:
            raise ValidationFailed("percentage cannot exceed 100", fields={"value": "max 100"})

        self._save(session, discount)
        return discount

    def delete_discount(self, session: Session, user: User, discount_id: int) -> None:
        discount = self._owned(session, user, discount_id)
        self.discount_repo.soft_delete(session, discount)
        session.commit()

    def get_discount(self, session: Session, user: User, discount_id: int) -> Discount:
        return self._owned(session, user, discount_id)

    def list_discounts(
        self,
        session: Session,
        user: User,
        site_id: int,
        params: PaginationParams,
    ) -> DiscountPage:
        ensure_site_access(self.user_repo, session, user, site_id)
        discounts, total = self.discount_repo.list_for_site(session, site_id, params)
        return DiscountPage(
            items=[DiscountRead.model_validate(d, from_attributes=True) for d in discounts],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    def _owned(self, session: Session, user: User, discount_id: int) -> Discount:
        discount = self.discount_repo.get_by_id(session, discount_id)
        if discount is None:
            raise NotFound("Discount not found")
        ensure_site_access(self.user_repo, session, user, discount.site_id)
        return discount

    def _save(self, session: Session, discount: Discount) -> None:
        try:
            self.discount_repo.save(session, discount)
            session.commit()
        except IntegrityError:
            # a soft-deleted code still occupies its (site_id, code) slot
            session.rollback()
            raise Conflict("Discount code was already used on this site", fields={"code": discount.code})
        session.refresh(discount)
