# sitebuilder/services/product_service.py
import logging

from sqlmodel import Session

from sitebuilder.core.errors import Conflict, NotFound, ValidationFailed
from sitebuilder.models.enums import ProductFilter, ProductSort, UsageKind
from sitebuilder.models.product import Coupon, Product, ProductAttribute, ProductVariant
from sitebuilder.models.user import User
from sitebuilder.repositories.page_repo import PageUsageRepository
from sitebuilder.repositories.product_repo import ProductRepository
from sitebuilder.repositories.user_repo import UserRepository
from sitebuilder.schemas.common import PaginationParams
from sitebuilder.schemas.product import (
    AttributeRead,
    CouponIn,
    CouponRead,
    ProductCreate,
    ProductDetailRead,
    ProductPage,
    ProductRead,
    ProductUpdate,
    VariantRead,
    VariantUpdate,
)
from sitebuilder.services.access import ensure_site_access

logger = logging.getLogger(__name__)


class ProductService:
    """
    Business logic for the product catalog.

    Responsibilities:
      - Create/update products with variants, coupon, attributes, categories
      - Enforce slug uniqueness per site
      - Soft delete (and drop the product's page usage edges)
      - Filtered/sorted/paginated listing per site
    """

    def __init__(
        self,
        product_repo: ProductRepository,
        user_repo: UserRepository,
        usage_repo: PageUsageRepository,
    ):
        self.product_repo = product_repo
        self.user_repo = user_repo
        self.usage_repo = usage_repo

    # -------- Queries --------

    def get_product(self, session: Session, product_id: int) -> ProductDetailRead:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise NotFound("Product not found")
        return self._build_detail(session, product)

    def list_products(
        self,
        session: Session,
        site_id: int,
        params: PaginationParams,
        filters: dict[ProductFilter, str],
        sort: ProductSort | None,
    ) -> ProductPage:
        try:
            products, total = self.product_repo.list_for_site(
                session, site_id, params, filters, sort
            )
        except ValueError as e:
            raise ValidationFailed(str(e), fields={"filters": str(e)})
        return ProductPage(
            items=[self._build_detail(session, p) for p in products],
            total_count=total,
            page=params.page,
            page_size=params.page_size,
        )

    # -------- Owner operations --------

    def create_product(self, session: Session, user: User, payload: ProductCreate) -> ProductDetailRead:
        site = ensure_site_access(self.user_repo, session, user, payload.site_id)
        self._ensure_slug_free(session, site.id, payload.slug)

        product = self.product_repo.create(
            session,
            Product(
                site_id=site.id,
                user_id=site.user_id,
                name=payload.name,
                slug=payload.slug,
                description=payload.description,
                status=payload.status,
                weight=payload.weight,
                free_send=payload.free_send,
            ),
        )
        self.product_repo.create_variants(
            session,
            [
                ProductVariant(product_id=product.id, name=v.name, price=v.price, stock=v.stock)
                for v in payload.variants
            ],
        )
        if payload.coupon is not None:
            self._set_coupon(session, product.id, payload.coupon)
        if payload.attributes:
            self.product_repo.replace_attributes(
                session,
                product.id,
                [ProductAttribute(product_id=product.id, **a.model_dump()) for a in payload.attributes],
            )
        if payload.category_ids:
            self.product_repo.replace_categories(session, product.id, payload.category_ids)

        session.commit()
        session.refresh(product)
        logger.info("Product %s created on site %s", product.id, site.id)
        return self._build_detail(session, product)

    def update_product(
        self,
        session: Session,
        user: User,
        product_id: int,
        payload: ProductUpdate,
    ) -> ProductDetailRead:
        product = self._owned_product(session, user, product_id)
        data = payload.model_dump(exclude_unset=True)

        if "slug" in data and data["slug"] != product.slug:
            self._ensure_slug_free(session, product.site_id, data["slug"])

        for field in ("name", "slug", "description", "status", "weight", "free_send"):
            if field in data and data[field] is not None:
                setattr(product, field, getattr(payload, field))
        if "description" in data and data["description"] is None:
            product.description = None

        if "coupon" in payload.model_fields_set:
            if payload.coupon is None:
                existing = self.product_repo.get_coupon_for_product(session, product.id)
                if existing is not None:
                    self.product_repo.delete_coupon(session, existing)
            else:
                self._set_coupon(session, product.id, payload.coupon)

        if payload.attributes is not None:
            self.product_repo.replace_attributes(
                session,
                product.id,
                [ProductAttribute(product_id=product.id, **a.model_dump()) for a in payload.attributes],
            )
        if payload.category_ids is not None:
            self.product_repo.replace_categories(session, product.id, payload.category_ids)

        self.product_repo.update(session, product)
        session.commit()
        session.refresh(product)
        return self._build_detail(session, product)

    def update_variant(
        self,
        session: Session,
        user: User,
        product_id: int,
        variant_id: int,
        payload: VariantUpdate,
    ) -> VariantRead:
        product = self._owned_product(session, user, product_id)
        variant = self.product_repo.get_variant(session, variant_id)
        if variant is None or variant.product_id != product.id:
            raise NotFound("Variant not found")

        for field, value in payload.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(variant, field, value)
        variant = self.product_repo.update_variant(session, variant)
        self.product_repo.update(session, product)
        session.commit()
        session.refresh(variant)
        return VariantRead.model_validate(variant, from_attributes=True)

    def delete_product(self, session: Session, user: User, product_id: int) -> None:
        """
        Soft delete the product and hard delete its usage edges so the
        reverse lookup never returns pages for a deleted product.
        """
        product = self._owned_product(session, user, product_id)
        self.product_repo.soft_delete(session, product)
        removed = self.usage_repo.delete_for_entity(
            session, UsageKind.PRODUCT, product.id, product.site_id
        )
        session.commit()
        logger.info("Product %s deleted (%d usage edges removed)", product_id, removed)

    # -------- Helpers --------

    def _owned_product(self, session: Session, user: User, product_id: int) -> Product:
        product = self.product_repo.get_by_id(session, product_id)
        if not product:
            raise NotFound("Product not found")
        ensure_site_access(self.user_repo, session, user, product.site_id)
        return product

    def _ensure_slug_free(self, session: Session, site_id: int, slug: str) -> None:
        if self.product_repo.get_by_slug(session, site_id, slug, include_deleted=True) is not None:
            raise Conflict("Slug already exists on this site", fields={"slug": slug})

    def _set_coupon(self, session: Session, product_id: int, payload: CouponIn) -> Coupon:
        coupon = self.product_repo.get_coupon_for_product(session, product_id)
        if coupon is None:
            coupon = Coupon(product_id=product_id, **payload.model_dump())
        else:
            for field, value in payload.model_dump().items():
                setattr(coupon, field, value)
        return self.product_repo.save_coupon(session, coupon)

    def _build_detail(self, session: Session, product: Product) -> ProductDetailRead:
        variants = self.product_repo.list_variants(session, [product.id])
        coupon = self.product_repo.get_coupon_for_product(session, product.id)
        attributes = self.product_repo.list_attributes(session, product.id)
        return ProductDetailRead(
            **ProductRead.model_validate(product, from_attributes=True).model_dump(),
            variants=[VariantRead.model_validate(v, from_attributes=True) for v in variants],
            coupon=CouponRead.model_validate(coupon, from_attributes=True) if coupon else None,
            attributes=[AttributeRead.model_validate(a, from_attributes=True) for a in attributes],
            category_ids=self.product_repo.list_category_ids(session, product.id),
        )
