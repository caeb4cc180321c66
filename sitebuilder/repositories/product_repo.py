# sitebuilder/repositories/product_repo.py
from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlmodel import Session, select

from sitebuilder.core.clock import utcnow, ensure_utc
from sitebuilder.models.enums import ProductAttributeType, ProductFilter, ProductSort, SortDirection
from sitebuilder.models.product import (
    Coupon,
    Product,
    ProductAttribute,
    ProductCategoryLink,
    ProductVariant,
)
from sitebuilder.repositories.base import directed, paginate
from sitebuilder.repositories.exceptions import InsufficientStockError, QuantityExhaustedError
from sitebuilder.schemas.common import PaginationParams


def parse_range(raw: str, cast=float) -> tuple[Any, Any]:
    """
    Parse a "min,max" filter value.

    Raises:
        ValueError: if the value is not two castable parts or min > max.
    """
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise ValueError(f"expected 'min,max', got {raw!r}")
    low, high = cast(parts[0]), cast(parts[1])
    if low > high:
        raise ValueError(f"min is greater than max in {raw!r}")
    return low, high


def _parse_datetime(raw: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(raw))


def _split_list(raw: str) -> list[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in ("1", "true", "yes"):
        return True
    if value in ("0", "false", "no"):
        return False
    raise ValueError(f"expected a boolean, got {raw!r}")


_RANGE_COLUMNS = {
    ProductFilter.RATING_RANGE: (Product.rate, float),
    ProductFilter.SELLING_RANGE: (Product.selling_count, int),
    ProductFilter.VISITED_RANGE: (Product.visited_count, int),
    ProductFilter.REVIEW_RANGE: (Product.review_count, int),
    ProductFilter.WEIGHT_RANGE: (Product.weight, int),
    ProductFilter.ADDED_RANGE: (Product.created_at, _parse_datetime),
    ProductFilter.UPDATED_RANGE: (Product.updated_at, _parse_datetime),
}


class ProductRepository:
    """
    Data access layer for products, variants, coupons and their
    attribute/category links.

    - Pure DB operations; no commits (the service owns the transaction).
    - Stock and coupon counters only change through conditional UPDATEs.
    """

    # ----- Products -----

    def get_by_id(
        self,
        session: Session,
        product_id: int,
        include_deleted: bool = False,
    ) -> Product | None:
        product = session.get(Product, product_id)
        if product is None or (product.is_deleted and not include_deleted):
            return None
        return product

    def get_by_slug(
        self,
        session: Session,
        site_id: int,
        slug: str,
        include_deleted: bool = False,
    ) -> Product | None:
        stmt = select(Product).where(Product.site_id == site_id, Product.slug == slug)
        if not include_deleted:
            stmt = stmt.where(Product.is_deleted == False)  # noqa: E712
        return session.exec(stmt).first()

    def get_many(self, session: Session, product_ids: list[int]) -> dict[int, Product]:
        if not product_ids:
            return {}
        stmt = select(Product).where(
            Product.id.in_(product_ids),
            Product.is_deleted == False,  # noqa: E712
        )
        return {p.id: p for p in session.exec(stmt).all()}

    def create(self, session: Session, product: Product) -> Product:
        session.add(product)
        session.flush()
        session.refresh(product)
        return product

    def update(self, session: Session, product: Product) -> Product:
        product.updated_at = utcnow()
        session.add(product)
        session.flush()
        session.refresh(product)
        return product

    def soft_delete(self, session: Session, product: Product) -> None:
        now = utcnow()
        product.is_deleted = True
        product.deleted_at = now
        product.updated_at = now
        session.add(product)
        session.flush()

    def list_for_site(
        self,
        session: Session,
        site_id: int,
        params: PaginationParams,
        filters: dict[ProductFilter, str] | None = None,
        sort: ProductSort | None = None,
    ) -> tuple[list[Product], int]:
        """
        Filtered, sorted, paginated product listing of one site.

        Raises:
            ValueError: on a malformed filter value.
        """
        stmt = select(Product).where(
            Product.site_id == site_id,
            Product.is_deleted == False,  # noqa: E712
        )
        if params.search:
            stmt = stmt.where(Product.name.ilike(f"%{params.search}%"))

        for kind, raw in (filters or {}).items():
            stmt = self._apply_filter(stmt, kind, raw)

        stmt = stmt.order_by(*self._order_by(sort, params))
        return paginate(session, stmt, params)

    def _apply_filter(self, stmt, kind: ProductFilter, raw: str):
        if kind in _RANGE_COLUMNS:
            column, cast = _RANGE_COLUMNS[kind]
            low, high = parse_range(raw, cast)
            return stmt.where(column.between(low, high))

        if kind == ProductFilter.PRICE_RANGE:
            low, high = parse_range(raw, int)
            priced = select(ProductVariant.product_id).where(
                ProductVariant.price.between(low, high)
            )
            return stmt.where(Product.id.in_(priced))

        if kind == ProductFilter.COUPON_RANGE:
            low, high = parse_range(raw, int)
            couponed = select(Coupon.product_id).where(Coupon.value.between(low, high))
            return stmt.where(Product.id.in_(couponed))

        if kind == ProductFilter.CATEGORY_IDS:
            ids = [int(v) for v in _split_list(raw)]
            linked = select(ProductCategoryLink.product_id).where(
                ProductCategoryLink.category_id.in_(ids)
            )
            return stmt.where(Product.id.in_(linked))

        if kind == ProductFilter.PRODUCT_IDS:
            ids = [int(v) for v in _split_list(raw)]
            return stmt.where(Product.id.in_(ids))

        if kind == ProductFilter.FREE_SEND:
            return stmt.where(Product.free_send == _parse_bool(raw))

        if kind in (ProductFilter.BADGES, ProductFilter.PRODUCT_ATTRIBUTES):
            attr_type = (
                ProductAttributeType.BADGE
                if kind == ProductFilter.BADGES
                else ProductAttributeType.ATTRIBUTE
            )
            tagged = select(ProductAttribute.product_id).where(
                ProductAttribute.type == attr_type,
                ProductAttribute.name.in_(_split_list(raw)),
            )
            return stmt.where(Product.id.in_(tagged))

        if kind == ProductFilter.PRODUCT_VARIANT:
            named = select(ProductVariant.product_id).where(
                ProductVariant.name.in_(_split_list(raw))
            )
            return stmt.where(Product.id.in_(named))

        raise ValueError(f"unsupported filter {kind}")

    def _order_by(self, sort: ProductSort | None, params: PaginationParams) -> list[Any]:
        """
        ORDER BY for a product listing.

        A named sort carries its own direction; sort=desc reverses it.
        Without one, sort picks the direction of the recency order.
        """
        if sort is None:
            return [directed(Product.updated_at, params), directed(Product.id, params)]

        min_price = (
            select(func.min(ProductVariant.price))
            .where(ProductVariant.product_id == Product.id)
            .correlate(Product)
            .scalar_subquery()
        )
        coupon_value = (
            select(Coupon.value)
            .where(Coupon.product_id == Product.id)
            .correlate(Product)
            .scalar_subquery()
        )
        # (column, ascending)
        keys = {
            ProductSort.PRICE_LOW_TO_HIGH: (min_price, True),
            ProductSort.PRICE_HIGH_TO_LOW: (min_price, False),
            ProductSort.COUPON_HIGH_TO_LOW: (func.coalesce(coupon_value, 0), False),
            ProductSort.NAME_A_Z: (Product.name, True),
            ProductSort.NAME_Z_A: (Product.name, False),
            ProductSort.RECENTLY_ADDED: (Product.created_at, False),
            ProductSort.RECENTLY_UPDATED: (Product.updated_at, False),
            ProductSort.MOST_SELLING: (Product.selling_count, False),
            ProductSort.MOST_VISITED: (Product.visited_count, False),
            ProductSort.MOST_RATED: (Product.rate, False),
            ProductSort.MOST_REVIEWED: (Product.review_count, False),
            ProductSort.LEAST_SELLING: (Product.selling_count, True),
            ProductSort.LEAST_VISITED: (Product.visited_count, True),
            ProductSort.LEAST_RATED: (Product.rate, True),
            ProductSort.LEAST_REVIEWED: (Product.review_count, True),
        }
        column, ascending = keys[sort]
        if params.sort == SortDirection.DESC:
            ascending = not ascending
        return [column.asc() if ascending else column.desc(), Product.id]

    def increase_selling_count(self, session: Session, product_id: int, quantity: int) -> None:
        session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(selling_count=Product.selling_count + quantity)
            .execution_options(synchronize_session=False)
        )

    # ----- Variants -----

    def get_variant(self, session: Session, variant_id: int) -> ProductVariant | None:
        return session.get(ProductVariant, variant_id)

    def list_variants(self, session: Session, product_ids: list[int]) -> list[ProductVariant]:
        if not product_ids:
            return []
        stmt = (
            select(ProductVariant)
            .where(ProductVariant.product_id.in_(product_ids))
            .order_by(ProductVariant.id)
        )
        return list(session.exec(stmt).all())

    def create_variants(
        self,
        session: Session,
        variants: list[ProductVariant],
    ) -> list[ProductVariant]:
        session.add_all(variants)
        session.flush()
        for v in variants:
            session.refresh(v)
        return variants

    def update_variant(self, session: Session, variant: ProductVariant) -> ProductVariant:
        now = utcnow()
        variant.updated_at = now
        variant.version = now
        session.add(variant)
        session.flush()
        session.refresh(variant)
        return variant

    def decrease_stock(self, session: Session, variant_id: int, quantity: int) -> None:
        """
        Atomically take `quantity` units out of stock.

        UPDATE product_variants SET stock = stock - :q
         WHERE id = :id AND stock >= :q

        Raises:
            InsufficientStockError: if no row matched (not enough stock).
        """
        result = session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity, version=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientStockError(variant_id, quantity)

    # ----- Coupons -----

    def get_coupon_for_product(self, session: Session, product_id: int) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.product_id == product_id)
        return session.exec(stmt).first()

    def get_coupons_for_products(
        self,
        session: Session,
        product_ids: list[int],
    ) -> dict[int, Coupon]:
        if not product_ids:
            return {}
        stmt = select(Coupon).where(Coupon.product_id.in_(product_ids))
        return {c.product_id: c for c in session.exec(stmt).all()}

    def save_coupon(self, session: Session, coupon: Coupon) -> Coupon:
        now = utcnow()
        coupon.updated_at = now
        coupon.version = now
        session.add(coupon)
        session.flush()
        session.refresh(coupon)
        return coupon

    def delete_coupon(self, session: Session, coupon: Coupon) -> None:
        session.delete(coupon)
        session.flush()

    def decrease_coupon_quantity(self, session: Session, coupon_id: int) -> None:
        """
        Atomically consume one use of a coupon.

        Raises:
            QuantityExhaustedError: if the coupon has no uses left.
        """
        result = session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.quantity >= 1)
            .values(quantity=Coupon.quantity - 1, version=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise QuantityExhaustedError("coupon", coupon_id)

    # ----- Attributes / categories -----

    def replace_attributes(
        self,
        session: Session,
        product_id: int,
        attributes: list[ProductAttribute],
    ) -> None:
        for old in session.exec(
            select(ProductAttribute).where(ProductAttribute.product_id == product_id)
        ).all():
            session.delete(old)
        session.add_all(attributes)
        session.flush()

    def list_attributes(self, session: Session, product_id: int) -> list[ProductAttribute]:
        stmt = select(ProductAttribute).where(ProductAttribute.product_id == product_id)
        return list(session.exec(stmt).all())

    def replace_categories(
        self,
        session: Session,
        product_id: int,
        category_ids: list[int],
    ) -> None:
        for old in session.exec(
            select(ProductCategoryLink).where(ProductCategoryLink.product_id == product_id)
        ).all():
            session.delete(old)
        session.flush()
        session.add_all(
            ProductCategoryLink(product_id=product_id, category_id=cid)
            for cid in dict.fromkeys(category_ids)
        )
        session.flush()

    def list_category_ids(self, session: Session, product_id: int) -> list[int]:
        stmt = select(ProductCategoryLink.category_id).where(
            ProductCategoryLink.product_id == product_id
        )
        return list(session.exec(stmt).all())
