# sitebuilder/services/pricing_service.py
"""
Basket pricing.

compute_prices() is a pure function over a snapshot of variants, coupons
and the optional site discount; it never writes. PricingService loads that
snapshot from the database and validates the basket lines first.

All amounts are integer minor units (IRR) and never negative.

Per line:
  raw_price                        = variant.price * quantity
  just_coupon_price                = product coupon share (0 without a valid coupon)
  final_raw_price                  = raw_price - just_coupon_price
  just_discount_price              = share of the site discount, pro rata on final_raw_price
  final_price_with_coupon_discount = final_raw_price - just_discount_price
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlmodel import Session

from sitebuilder.core.clock import ensure_utc, utcnow
from sitebuilder.core.errors import BasketInvalid, ProductNotFound
from sitebuilder.models.discount import Discount
from sitebuilder.models.enums import DiscountType, ProductStatus
from sitebuilder.models.product import Coupon, ProductVariant
from sitebuilder.repositories.discount_repo import DiscountRepository
from sitebuilder.repositories.product_repo import ProductRepository

logger = logging.getLogger(__name__)


@dataclass
class PricingLine:
    product_id: int
    product_variant_id: int | None
    quantity: int
    basket_item_id: int | None = None


@dataclass
class PricedLine:
    basket_item_id: int | None
    product_id: int
    product_variant_id: int
    quantity: int
    unit_price: int
    raw_price: int = 0
    just_coupon_price: int = 0
    final_raw_price: int = 0
    just_discount_price: int = 0
    final_price_with_coupon_discount: int = 0
    coupon_id: int | None = None
    out_of_stock: bool = False


@dataclass
class PricedBasket:
    lines: list[PricedLine] = field(default_factory=list)
    total_raw_price: int = 0
    total_coupon_discount: int = 0
    total_final_raw_price: int = 0
    total_discount: int = 0
    total_price_with_coupon_discount: int = 0
    discount_id: int | None = None
    # Why a submitted code was not applied (None if applied or absent).
    discount_rejection: str | None = None

    @property
    def out_of_stock_variant_ids(self) -> list[int]:
        return sorted({ln.product_variant_id for ln in self.lines if ln.out_of_stock})


def coupon_is_valid(coupon: Coupon | None, now: datetime) -> bool:
    return (
        coupon is not None
        and coupon.quantity > 0
        and ensure_utc(now) < ensure_utc(coupon.expiry_date)
    )


def coupon_amount(coupon: Coupon, raw_price: int, quantity: int) -> int:
    if coupon.type == DiscountType.PERCENTAGE:
        amount = raw_price * coupon.value // 100
    else:
        amount = coupon.value * quantity
    return max(0, min(raw_price, amount))


def discount_rejection_reason(
    discount: Discount | None,
    site_id: int,
    already_redeemed: bool,
    now: datetime,
) -> str | None:
    """None when the code applies, otherwise a short machine-readable reason."""
    if discount is None:
        return "not_found"
    if discount.site_id != site_id:
        return "wrong_site"
    if discount.quantity <= 0:
        return "exhausted"
    if ensure_utc(now) >= ensure_utc(discount.expiry_date):
        return "expired"
    if already_redeemed:
        return "already_redeemed"
    return None


def distribute(total: int, weights: list[int], keys: list[tuple]) -> list[int]:
    """
    Split `total` across lines pro rata on `weights`.

    share_i = floor(total * w_i / sum(w)). The rounding residual goes to
    the heaviest line (tie: lowest key); if that would push a share above
    its weight, the overflow moves on to the next heaviest line. The
    shares always add up to `total` exactly when total <= sum(weights).
    """
    weight_sum = sum(weights)
    if total <= 0 or weight_sum <= 0:
        return [0] * len(weights)

    shares = [total * w // weight_sum for w in weights]
    residual = total - sum(shares)

    order = sorted(range(len(weights)), key=lambda i: (-weights[i], keys[i]))
    for i in order:
        if residual <= 0:
            break
        room = weights[i] - shares[i]
        take = min(room, residual)
        shares[i] += take
        residual -= take
    return shares


def compute_prices(
    lines: list[PricingLine],
    variants: dict[int, ProductVariant],
    coupons_by_product: dict[int, Coupon],
    discount: Discount | None,
    already_redeemed: bool,
    site_id: int,
    now: datetime,
    discount_code_given: bool = False,
) -> PricedBasket:
    """
    Price resolved basket lines. Every line's product_variant_id must be a
    key of `variants`.
    """
    basket = PricedBasket()

    requested: dict[int, int] = {}
    for ln in lines:
        requested[ln.product_variant_id] = requested.get(ln.product_variant_id, 0) + ln.quantity

    for ln in lines:
        variant = variants[ln.product_variant_id]
        priced = PricedLine(
            basket_item_id=ln.basket_item_id,
            product_id=ln.product_id,
            product_variant_id=variant.id,
            quantity=ln.quantity,
            unit_price=variant.price,
        )
        priced.raw_price = variant.price * ln.quantity

        coupon = coupons_by_product.get(ln.product_id)
        if coupon_is_valid(coupon, now):
            priced.just_coupon_price = coupon_amount(coupon, priced.raw_price, ln.quantity)
            if priced.just_coupon_price > 0:
                priced.coupon_id = coupon.id
        priced.final_raw_price = priced.raw_price - priced.just_coupon_price
        priced.out_of_stock = requested[variant.id] > variant.stock
        basket.lines.append(priced)

    final_raws = [ln.final_raw_price for ln in basket.lines]
    final_raw_sum = sum(final_raws)

    total_discount = 0
    if discount is not None or discount_code_given:
        reason = discount_rejection_reason(discount, site_id, already_redeemed, now)
        if reason is None:
            if discount.type == DiscountType.PERCENTAGE:
                total_discount = final_raw_sum * discount.value // 100
            else:
                total_discount = discount.value
            total_discount = max(0, min(final_raw_sum, total_discount))
            basket.discount_id = discount.id
        else:
            basket.discount_rejection = reason

    keys = [
        (ln.basket_item_id is None, ln.basket_item_id or 0, idx)
        for idx, ln in enumerate(basket.lines)
    ]
    shares = distribute(total_discount, final_raws, keys)
    for ln, share in zip(basket.lines, shares):
        ln.just_discount_price = share
        ln.final_price_with_coupon_discount = ln.final_raw_price - share

    basket.total_raw_price = sum(ln.raw_price for ln in basket.lines)
    basket.total_coupon_discount = sum(ln.just_coupon_price for ln in basket.lines)
    basket.total_final_raw_price = final_raw_sum
    basket.total_discount = sum(shares)
    basket.total_price_with_coupon_discount = sum(
        ln.final_price_with_coupon_discount for ln in basket.lines
    )
    return basket


class PricingService:
    """
    Loads the pricing snapshot and runs compute_prices().

    Responsibilities:
      - Resolve each line's variant (first variant when none is given).
      - Reject lines whose product is missing (404) or belongs to another
        site, is inactive, or whose variant does not belong to it (400).
      - Look up the discount code and the customer's redemption history.
    """

    def __init__(self, product_repo: ProductRepository, discount_repo: DiscountRepository):
        self.product_repo = product_repo
        self.discount_repo = discount_repo

    def price(
        self,
        session: Session,
        site_id: int,
        customer_id: int,
        lines: list[PricingLine],
        code: str | None = None,
        discount_id: int | None = None,
        now: datetime | None = None,
    ) -> PricedBasket:
        if not lines:
            raise BasketInvalid("Basket has no items")

        product_ids = sorted({ln.product_id for ln in lines})
        products = self.product_repo.get_many(session, product_ids)
        missing = [pid for pid in product_ids if pid not in products]
        if missing:
            raise ProductNotFound(product_ids=missing)

        variants_by_product: dict[int, list[ProductVariant]] = {}
        for v in self.product_repo.list_variants(session, product_ids):
            variants_by_product.setdefault(v.product_id, []).append(v)

        resolved: list[PricingLine] = []
        variants: dict[int, ProductVariant] = {}
        for ln in lines:
            product = products[ln.product_id]
            if product.site_id != site_id:
                raise BasketInvalid(
                    "Product does not belong to this site",
                    product_id=product.id,
                )
            if product.status != ProductStatus.ACTIVE:
                raise BasketInvalid("Product is not active", product_id=product.id)

            own_variants = variants_by_product.get(product.id, [])
            if ln.product_variant_id is None:
                if not own_variants:
                    raise BasketInvalid("Product has no variants", product_id=product.id)
                variant = own_variants[0]
            else:
                variant = next((v for v in own_variants if v.id == ln.product_variant_id), None)
                if variant is None:
                    raise BasketInvalid(
                        "Variant does not belong to product",
                        product_id=product.id,
                        product_variant_id=ln.product_variant_id,
                    )
            variants[variant.id] = variant
            resolved.append(
                PricingLine(
                    product_id=product.id,
                    product_variant_id=variant.id,
                    quantity=ln.quantity,
                    basket_item_id=ln.basket_item_id,
                )
            )

        coupons = self.product_repo.get_coupons_for_products(session, product_ids)

        discount = None
        already_redeemed = False
        code_given = bool(code)
        if code:
            discount = self.discount_repo.get_by_code(session, site_id, code)
        elif discount_id is not None:
            discount = self.discount_repo.get_by_id(session, discount_id)
        if discount is not None:
            already_redeemed = self.discount_repo.has_redeemed(session, customer_id, discount.id)

        priced = compute_prices(
            resolved,
            variants,
            coupons,
            discount,
            already_redeemed,
            site_id,
            now or utcnow(),
            discount_code_given=code_given,
        )
        if priced.discount_rejection:
            logger.info(
                "Discount code not applied for customer %s on site %s: %s",
                customer_id,
                site_id,
                priced.discount_rejection,
            )
        return priced

    def products_for(self, session: Session, priced: PricedBasket):
        return self.product_repo.get_many(
            session, sorted({ln.product_id for ln in priced.lines})
        )
