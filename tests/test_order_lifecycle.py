"""
Order lifecycle end to end: basket -> /order/request -> gateway callback.

The gateway is the ScriptedGateway from conftest; the callback is driven
with the exact URL the service handed to the gateway.
"""
from datetime import timedelta
from urllib.parse import parse_qs, urlencode, urlparse

from sqlalchemy import update
from sqlmodel import select

from conftest import RETURN_URL, callback_path, customer_headers, user_headers
from sitebuilder.core.clock import utcnow
from sitebuilder.core.gateway_client import GatewayVerifyResult
from sitebuilder.models.discount import CustomerDiscount
from sitebuilder.models.enums import OrderStatus, PaymentStatus
from sitebuilder.models.order import Order
from sitebuilder.models.payment import Payment
from sitebuilder.models.product import ProductVariant


def put_basket(client, customer, items, code=None):
    body = {"items": items}
    if code is not None:
        body["code"] = code
    response = client.put("/api/v1/basket", json=body, headers=customer_headers(customer))
    assert response.status_code == 200, response.text
    return response.json()


def item(variant, quantity):
    return {
        "product_id": variant.product_id,
        "product_variant_id": variant.id,
        "quantity": quantity,
    }


def versions_of(basket):
    return [{"basket_item_id": it["id"], "version": it["version"]} for it in basket["items"]]


def request_order(client, customer, address, basket, gateway="zarinpal", **extra):
    body = {
        "gateway": gateway,
        "final_front_return_url": RETURN_URL,
        "site_id": customer.site_id,
        "address_id": address.id,
        "basket_versions": versions_of(basket),
        **extra,
    }
    return client.post("/api/v1/order/request", json=body, headers=customer_headers(customer))


def call_back(client, gateway, **params):
    url = callback_path(gateway.requests[-1]["return_url"])
    if params:
        # httpx drops the URL's own query when params= is passed
        url = f"{url}&{urlencode(params)}"
    return client.get(url, follow_redirects=False)


def add_variant(session, product, price, stock=5) -> ProductVariant:
    variant = ProductVariant(product_id=product.id, name=f"variant-{price}", price=price, stock=stock)
    session.add(variant)
    session.commit()
    session.refresh(variant)
    return variant


def redirect_query(response):
    return {k: v[0] for k, v in parse_qs(urlparse(response.headers["location"]).query).items()}


def order_of(session, tracking_number) -> Order:
    payment = session.exec(select(Payment).where(Payment.tracking_number == tracking_number)).one()
    session.refresh(payment)
    order = session.get(Order, payment.order_id)
    session.refresh(order)
    return order


class TestCheckout:
    def test_simple_checkout_commits_order(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        product, variant = make_product(site_a, price=500, stock=5)
        basket = put_basket(client, customer, [item(variant, 2)])

        preview = client.post(
            "/api/v1/order/price",
            json={"site_id": site_a.id, "items": [item(variant, 2)]},
            headers=customer_headers(customer),
        )
        assert preview.status_code == 200
        assert preview.json()["totals"]["total_raw_price"] == 1000
        assert preview.json()["totals"]["total_price_with_coupon_discount"] == 1000

        response = request_order(client, customer, address, basket)
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["redirect_url"].startswith("https://gateway.example/pay/")

        order = order_of(session, body["tracking_number"])
        assert order.status == OrderStatus.AWAITING_PAYMENT
        assert gateway.requests[-1]["amount"] == order.total_final_price
        assert gateway.requests[-1]["account_config"] == {"merchant_id": "m-123"}

        callback = call_back(client, gateway, Status="OK", Authority="A1")
        assert callback.status_code == 302
        assert callback.headers["location"].startswith(RETURN_URL)
        assert redirect_query(callback) == {
            "success": "true",
            "tracking_number": str(body["tracking_number"]),
            "status": "committed",
        }

        order = order_of(session, body["tracking_number"])
        session.refresh(variant)
        session.refresh(product)
        assert order.status == OrderStatus.COMMITTED
        assert order.paid_at is not None
        assert variant.stock == 3
        assert product.selling_count == 2

        committed = publisher.of("order.committed")
        assert len(committed) == 1
        assert committed[0]["order_id"] == order.id
        assert committed[0]["total"] == order.total_final_price
        assert "notification.email" in publisher.keys()
        assert "notification.sms" in publisher.keys()

    def test_basket_is_removed_after_request(self, client, customer, address, site_a, site_gateway, make_product):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])

        assert request_order(client, customer, address, basket).status_code == 200

        after = client.get("/api/v1/basket", headers=customer_headers(customer)).json()
        assert after["items"] == []

    def test_courier_price_added_unless_free_send(self, client, session, customer, address, site_a, site_gateway, make_product):
        _, paid = make_product(site_a, price=1000)
        basket = put_basket(client, customer, [item(paid, 1)])
        body = request_order(client, customer, address, basket, courier="tipax").json()
        order = order_of(session, body["tracking_number"])
        assert order.courier_price == 150_000
        assert order.total_final_price == 151_000

        _, free = make_product(site_a, price=1000, free_send=True)
        basket = put_basket(client, customer, [item(free, 1)])
        body = request_order(client, customer, address, basket).json()
        order = order_of(session, body["tracking_number"])
        assert order.courier_price == 0
        assert order.total_final_price == 1000

    def test_percentage_coupon_decremented_on_commit(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_coupon, gateway
    ):
        product, variant = make_product(site_a, price=1000)
        coupon = make_coupon(product, value=10, quantity=3)
        basket = put_basket(client, customer, [item(variant, 1)])
        assert basket["items"][0]["just_coupon_price"] == 100
        assert basket["total_price_with_coupon_discount"] == 900

        request_order(client, customer, address, basket)
        call_back(client, gateway)

        session.refresh(coupon)
        assert coupon.quantity == 2

    def test_coupon_used_once_per_discounted_line(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_coupon, gateway
    ):
        product, small = make_product(site_a, price=1000)
        large = add_variant(session, product, price=2000)
        coupon = make_coupon(product, value=10, quantity=3)
        basket = put_basket(client, customer, [item(small, 1), item(large, 1)])
        assert [it["just_coupon_price"] for it in basket["items"]] == [100, 200]

        request_order(client, customer, address, basket)
        call_back(client, gateway)

        session.refresh(coupon)
        assert coupon.quantity == 1

    def test_coupon_short_for_all_lines_needs_reconciliation(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_coupon, gateway
    ):
        product, small = make_product(site_a, price=1000)
        large = add_variant(session, product, price=2000)
        coupon = make_coupon(product, value=10, quantity=1)
        basket = put_basket(client, customer, [item(small, 1), item(large, 1)])
        tracking = request_order(client, customer, address, basket).json()["tracking_number"]

        response = call_back(client, gateway)

        assert redirect_query(response)["status"] == "needs_reconciliation"
        session.refresh(coupon)
        session.refresh(small)
        assert coupon.quantity == 1
        assert small.stock == 5
        assert order_of(session, tracking).status == OrderStatus.NEEDS_RECONCILIATION

    def test_out_of_stock_is_rejected(self, client, session, customer, address, site_a, site_gateway, make_product):
        _, variant = make_product(site_a, stock=1)
        basket = put_basket(client, customer, [item(variant, 2)])

        preview = client.post(
            "/api/v1/order/price",
            json={"site_id": site_a.id, "items": [item(variant, 2)]},
            headers=customer_headers(customer),
        )
        assert preview.json()["items"][0]["out_of_stock"] is True

        response = request_order(client, customer, address, basket)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "OutOfStock"
        assert response.json()["detail"]["product_variant_ids"] == [variant.id]
        assert session.exec(select(Order)).all() == []

    def test_stale_versions_are_rejected(self, client, customer, address, site_a, site_gateway, make_product):
        _, variant = make_product(site_a)
        first = put_basket(client, customer, [item(variant, 1)])
        put_basket(client, customer, [item(variant, 2)])

        response = request_order(client, customer, address, first)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "BasketChanged"

    def test_price_change_since_basket_update_is_rejected(
        self, client, session, customer, address, site_a, site_gateway, make_product
    ):
        _, variant = make_product(site_a, price=500)
        basket = put_basket(client, customer, [item(variant, 1)])

        variant.price = 650
        session.add(variant)
        session.commit()

        response = request_order(client, customer, address, basket)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "BasketChanged"

    def test_discount_used_up_since_basket_update(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_discount
    ):
        _, variant = make_product(site_a, price=1000)
        discount = make_discount(site_a, code="LAST", quantity=1)
        basket = put_basket(client, customer, [item(variant, 1)], code="LAST")

        discount.quantity = 0
        session.add(discount)
        session.commit()

        response = request_order(client, customer, address, basket)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DiscountExhausted"
        assert response.json()["detail"]["discount_id"] == discount.id

    def test_discount_redeemed_by_earlier_order(
        self, client, customer, address, site_a, site_gateway, make_product, make_discount, gateway
    ):
        _, variant = make_product(site_a, price=1000)
        make_discount(site_a, code="ONCE", quantity=5)
        first = put_basket(client, customer, [item(variant, 1)], code="ONCE")
        request_order(client, customer, address, first)
        first_callback = gateway.requests[-1]["return_url"]
        second = put_basket(client, customer, [item(variant, 1)], code="ONCE")

        client.get(callback_path(first_callback), follow_redirects=False)
        response = request_order(client, customer, address, second)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "DiscountAlreadyRedeemed"

    def test_coupon_used_up_since_basket_update(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_coupon
    ):
        product, variant = make_product(site_a, price=1000)
        coupon = make_coupon(product, value=10, quantity=1)
        basket = put_basket(client, customer, [item(variant, 1)])
        assert basket["items"][0]["just_coupon_price"] == 100

        coupon.quantity = 0
        session.add(coupon)
        session.commit()

        response = request_order(client, customer, address, basket)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "CouponExhausted"
        assert response.json()["detail"]["product_ids"] == [product.id]
        assert session.exec(select(Order)).all() == []

    def test_inactive_gateway_is_rejected(self, client, customer, address, site_a, site_gateway, make_product):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])

        response = request_order(client, customer, address, basket, gateway="saman")
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ValidationFailed"

    def test_gateway_unavailable_fails_order(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])
        gateway.fail_request = True

        response = request_order(client, customer, address, basket)
        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "GatewayUnavailable"

        order = session.exec(select(Order)).one()
        payment = session.exec(select(Payment)).one()
        session.refresh(order)
        session.refresh(payment)
        assert order.status == OrderStatus.FAILED
        assert payment.status == PaymentStatus.INACTIVE
        assert publisher.of("order.failed")[0]["order_id"] == order.id

    def test_customer_of_other_site_is_forbidden(self, client, customer, address, site_b, site_gateway):
        response = client.post(
            "/api/v1/order/price",
            json={"site_id": site_b.id, "items": [{"product_id": 1, "quantity": 1}]},
            headers=customer_headers(customer),
        )
        assert response.status_code == 403

    def test_tenant_token_cannot_checkout(self, client, owner_a, site_a):
        response = client.post(
            "/api/v1/order/price",
            json={"site_id": site_a.id, "items": [{"product_id": 1, "quantity": 1}]},
            headers=user_headers(owner_a),
        )
        assert response.status_code == 403


class TestVerify:
    def _ordered(self, client, customer, address, site_a, make_product, stock=5, quantity=2):
        _, variant = make_product(site_a, price=500, stock=stock)
        basket = put_basket(client, customer, [item(variant, quantity)])
        body = request_order(client, customer, address, basket).json()
        return variant, body["tracking_number"]

    def test_duplicate_callback_commits_once(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        variant, tracking = self._ordered(client, customer, address, site_a, make_product)

        first = call_back(client, gateway)
        second = call_back(client, gateway)

        assert first.status_code == second.status_code == 302
        assert redirect_query(first) == redirect_query(second)
        assert gateway.verify_calls == 1
        assert len(publisher.of("order.committed")) == 1
        session.refresh(variant)
        assert variant.stock == 3

    def test_failed_verification_fails_order(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        variant, tracking = self._ordered(client, customer, address, site_a, make_product)
        gateway.verify_result = GatewayVerifyResult(success=False, message="cancelled by payer")

        response = call_back(client, gateway)

        assert redirect_query(response)["success"] == "false"
        order = order_of(session, tracking)
        assert order.status == OrderStatus.FAILED
        assert order.failure_reason == "cancelled by payer"
        session.refresh(variant)
        assert variant.stock == 5
        assert publisher.of("order.failed")
        assert not publisher.of("order.committed")

    def test_unreachable_gateway_leaves_payment_pending(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway
    ):
        _, tracking = self._ordered(client, customer, address, site_a, make_product)
        gateway.fail_verify = True

        assert call_back(client, gateway).status_code == 502
        payment = session.exec(select(Payment).where(Payment.tracking_number == tracking)).one()
        session.refresh(payment)
        assert payment.status == PaymentStatus.PENDING

        gateway.fail_verify = False
        assert redirect_query(call_back(client, gateway))["success"] == "true"
        assert order_of(session, tracking).status == OrderStatus.COMMITTED

    def test_stock_gone_at_commit_needs_reconciliation(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        variant, tracking = self._ordered(client, customer, address, site_a, make_product, stock=2, quantity=2)
        session.execute(update(type(variant)).where(type(variant).id == variant.id).values(stock=1))
        session.commit()

        response = call_back(client, gateway)

        assert redirect_query(response)["status"] == "needs_reconciliation"
        order = order_of(session, tracking)
        payment = session.exec(select(Payment).where(Payment.tracking_number == tracking)).one()
        session.refresh(payment)
        session.refresh(variant)
        assert order.status == OrderStatus.NEEDS_RECONCILIATION
        assert payment.status == PaymentStatus.ACTIVE
        assert variant.stock == 1
        event = publisher.of("order.needs_reconciliation")[0]
        assert event["payment_tracking"] == tracking
        assert not publisher.of("order.committed")

    def test_orders_racing_for_stock_never_oversell(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway, publisher
    ):
        _, variant = make_product(site_a, price=500, stock=5)
        trackings = []
        for _ in range(3):
            basket = put_basket(client, customer, [item(variant, 2)])
            response = request_order(client, customer, address, basket)
            assert response.status_code == 200, response.text
            trackings.append(response.json()["tracking_number"])
        callbacks = [r["return_url"] for r in gateway.requests]

        for url in callbacks:
            assert client.get(callback_path(url), follow_redirects=False).status_code == 302

        statuses = [order_of(session, t).status for t in trackings]
        assert statuses == [
            OrderStatus.COMMITTED,
            OrderStatus.COMMITTED,
            OrderStatus.NEEDS_RECONCILIATION,
        ]
        session.refresh(variant)
        assert variant.stock == 1
        assert len(publisher.of("order.committed")) == 2

    def test_unknown_tracking_number_is_404(self, client):
        response = client.get(
            "/payment/callback/create_order_verify",
            params={"tracking_number": 123},
            follow_redirects=False,
        )
        assert response.status_code == 404

    def test_callback_for_other_flow_is_rejected(
        self, client, customer, address, site_a, site_gateway, make_product, gateway
    ):
        _, tracking = self._ordered(client, customer, address, site_a, make_product)

        response = client.get(
            "/payment/callback/charge_credit_verify",
            params={"tracking_number": tracking},
            follow_redirects=False,
        )
        assert response.status_code == 400

    def test_form_post_callback(self, client, session, customer, address, site_a, site_gateway, make_product, gateway):
        _, tracking = self._ordered(client, customer, address, site_a, make_product)

        response = client.post(
            "/payment/callback/create_order_verify",
            data={"tracking_number": str(tracking), "State": "OK"},
            follow_redirects=False,
        )
        assert response.status_code == 302
        assert order_of(session, tracking).status == OrderStatus.COMMITTED

    def test_discount_redeemed_once(
        self, client, session, customer, address, site_a, site_gateway, make_product, make_discount, gateway
    ):
        _, variant = make_product(site_a, price=1000, stock=10)
        discount = make_discount(site_a, code="SAVE", value=100, quantity=5)

        first = put_basket(client, customer, [item(variant, 1)], code="SAVE")
        assert first["discount_id"] == discount.id
        first_tracking = request_order(client, customer, address, first).json()["tracking_number"]
        first_callback = gateway.requests[-1]["return_url"]

        # second order started before the first one is paid
        second = put_basket(client, customer, [item(variant, 1)], code="SAVE")
        second_tracking = request_order(client, customer, address, second).json()["tracking_number"]
        second_callback = gateway.requests[-1]["return_url"]

        client.get(callback_path(first_callback), follow_redirects=False)
        client.get(callback_path(second_callback), follow_redirects=False)

        assert order_of(session, first_tracking).status == OrderStatus.COMMITTED
        assert order_of(session, second_tracking).status == OrderStatus.NEEDS_RECONCILIATION
        assert len(session.exec(select(CustomerDiscount)).all()) == 1
        session.refresh(discount)
        assert discount.quantity == 4

        again = put_basket(client, customer, [item(variant, 1)], code="SAVE")
        assert again["discount_rejection"] == "already_redeemed"
        assert again["total_discount"] == 0


class TestCancelAndExpiry:
    def test_customer_cancels_unpaid_order(
        self, client, session, customer, address, site_a, site_gateway, make_product, gateway
    ):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])
        tracking = request_order(client, customer, address, basket).json()["tracking_number"]
        order = order_of(session, tracking)

        response = client.post(f"/api/v1/order/me/{order.id}/cancel", headers=customer_headers(customer))
        assert response.status_code == 200
        assert response.json()["status"] == "abandoned"

        # a late callback does not resurrect the order
        late = call_back(client, gateway)
        assert redirect_query(late) == {
            "success": "false",
            "tracking_number": str(tracking),
            "status": "abandoned",
        }
        assert gateway.verify_calls == 0

        again = client.post(f"/api/v1/order/me/{order.id}/cancel", headers=customer_headers(customer))
        assert again.status_code == 409

    def test_admin_abandons_expired_orders(
        self, client, session, admin, customer, address, site_a, site_gateway, make_product
    ):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])
        tracking = request_order(client, customer, address, basket).json()["tracking_number"]
        order = order_of(session, tracking)
        session.execute(
            update(Order).where(Order.id == order.id).values(updated_at=utcnow() - timedelta(hours=2))
        )
        session.commit()

        response = client.post("/api/v1/order/admin/abandon-expired", headers=user_headers(admin))

        assert response.status_code == 200
        assert response.json()["abandoned_order_ids"] == [order.id]
        assert order_of(session, tracking).status == OrderStatus.ABANDONED

    def test_abandon_requires_admin(self, client, owner_a):
        response = client.post("/api/v1/order/admin/abandon-expired", headers=user_headers(owner_a))
        assert response.status_code == 403


class TestOrderQueries:
    def test_customer_and_owner_views(
        self, client, session, owner_a, owner_b, site_b, customer, address, site_a, site_gateway, make_product
    ):
        _, variant = make_product(site_a)
        basket = put_basket(client, customer, [item(variant, 1)])
        tracking = request_order(client, customer, address, basket).json()["tracking_number"]
        order = order_of(session, tracking)

        mine = client.get("/api/v1/order/me", headers=customer_headers(customer)).json()
        assert [o["id"] for o in mine["items"]] == [order.id]

        detail = client.get(f"/api/v1/order/me/{order.id}", headers=customer_headers(customer)).json()
        assert len(detail["items"]) == 1

        owned = client.get(f"/api/v1/order/sites/{site_a.id}", headers=user_headers(owner_a))
        assert owned.status_code == 200
        assert owned.json()["total_count"] == 1

        foreign = client.get(f"/api/v1/order/sites/{site_a.id}", headers=user_headers(owner_b))
        assert foreign.status_code == 403
