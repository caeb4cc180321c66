"""
Counters that must never go negative: variant stock, coupon and discount
quantities, and the one-redemption-per-customer rule.
"""
import pytest

from sitebuilder.repositories.discount_repo import DiscountRepository
from sitebuilder.repositories.exceptions import (
    AlreadyRedeemedError,
    InsufficientStockError,
    QuantityExhaustedError,
)
from sitebuilder.repositories.product_repo import ProductRepository

products = ProductRepository()
discounts = DiscountRepository()


def test_stock_never_goes_negative(session, site_a, make_product):
    _, variant = make_product(site_a, stock=5)

    taken = 0
    for _ in range(4):
        try:
            products.decrease_stock(session, variant.id, 2)
            taken += 1
        except InsufficientStockError as e:
            assert e.product_variant_id == variant.id
    session.commit()
    session.refresh(variant)

    assert taken == 2
    assert variant.stock == 1


def test_stock_of_exact_quantity_reaches_zero(session, site_a, make_product):
    _, variant = make_product(site_a, stock=3)

    products.decrease_stock(session, variant.id, 3)
    session.commit()
    session.refresh(variant)

    assert variant.stock == 0
    with pytest.raises(InsufficientStockError):
        products.decrease_stock(session, variant.id, 1)


def test_coupon_quantity_is_exhausted(session, site_a, make_product, make_coupon):
    product, _ = make_product(site_a)
    coupon = make_coupon(product, quantity=1)

    products.decrease_coupon_quantity(session, coupon.id)
    with pytest.raises(QuantityExhaustedError) as exc:
        products.decrease_coupon_quantity(session, coupon.id)
    session.commit()
    session.refresh(coupon)

    assert exc.value.entity == "coupon"
    assert coupon.quantity == 0


def test_discount_quantity_is_exhausted(session, site_a, make_discount):
    discount = make_discount(site_a, quantity=2)

    discounts.decrease_quantity(session, discount.id)
    discounts.decrease_quantity(session, discount.id)
    with pytest.raises(QuantityExhaustedError):
        discounts.decrease_quantity(session, discount.id)
    session.commit()
    session.refresh(discount)

    assert discount.quantity == 0


def test_discount_is_redeemed_once_per_customer(session, site_a, customer, make_discount):
    discount = make_discount(site_a)

    discounts.redeem(session, customer.id, discount.id, order_id=None)
    session.commit()
    assert discounts.has_redeemed(session, customer.id, discount.id)

    with pytest.raises(AlreadyRedeemedError):
        discounts.redeem(session, customer.id, discount.id, order_id=None)
    session.rollback()
