"""
Product catalog: owner CRUD, coupons, slug uniqueness and the public
filtered listing.
"""
from datetime import timedelta

from conftest import user_headers
from sitebuilder.core.clock import utcnow


def product_body(site, slug="choc-cake", **fields):
    return {
        "site_id": site.id,
        "name": "Chocolate cake",
        "slug": slug,
        "variants": [{"name": "small", "price": 1000, "stock": 4}],
        **fields,
    }


def coupon_body(**fields):
    return {
        "quantity": 5,
        "type": "percentage",
        "value": 20,
        "expiry_date": (utcnow() + timedelta(days=3)).isoformat(),
        **fields,
    }


def create(client, owner, body):
    return client.post("/api/v1/products", json=body, headers=user_headers(owner))


class TestOwnerOperations:
    def test_create_with_everything(self, client, owner_a, site_a):
        body = product_body(
            site_a,
            slug="Choc-Cake",
            coupon=coupon_body(),
            attributes=[{"type": "badge", "name": "new"}, {"name": "flavour", "value": "cocoa"}],
            category_ids=[3, 3, 7],
        )

        response = create(client, owner_a, body)

        assert response.status_code == 201, response.text
        product = response.json()
        assert product["slug"] == "choc-cake"
        assert product["variants"][0]["stock"] == 4
        assert product["coupon"]["value"] == 20
        assert {a["name"] for a in product["attributes"]} == {"new", "flavour"}
        assert sorted(product["category_ids"]) == [3, 7]

    def test_needs_a_variant(self, client, owner_a, site_a):
        response = create(client, owner_a, product_body(site_a, variants=[]))

        assert response.status_code == 400

    def test_bad_slug_is_rejected(self, client, owner_a, site_a):
        response = create(client, owner_a, product_body(site_a, slug="two  spaces"))

        assert response.status_code == 400
        assert "slug" in response.json()["detail"]["fields"]

    def test_coupon_type_value_means_fixed(self, client, owner_a, site_a):
        body = product_body(site_a, coupon=coupon_body(type="value", value=300))

        product = create(client, owner_a, body).json()

        assert product["coupon"]["type"] == "fixed"

    def test_coupon_percentage_over_100_is_rejected(self, client, owner_a, site_a):
        response = create(client, owner_a, product_body(site_a, coupon=coupon_body(value=120)))

        assert response.status_code == 400

    def test_slug_conflicts_on_same_site_only(self, client, owner_a, owner_b, site_a, site_b):
        assert create(client, owner_a, product_body(site_a)).status_code == 201

        assert create(client, owner_a, product_body(site_a)).status_code == 409
        assert create(client, owner_b, product_body(site_b)).status_code == 201

    def test_slug_of_deleted_product_stays_taken(self, client, owner_a, site_a):
        product = create(client, owner_a, product_body(site_a)).json()
        client.delete(f"/api/v1/products/{product['id']}", headers=user_headers(owner_a))

        response = create(client, owner_a, product_body(site_a))

        assert response.status_code == 409
        assert client.get(f"/api/v1/products/{product['id']}").status_code == 404

    def test_update_fields_and_remove_coupon(self, client, owner_a, site_a):
        product = create(client, owner_a, product_body(site_a, coupon=coupon_body())).json()
        headers = user_headers(owner_a)

        unchanged = client.patch(
            f"/api/v1/products/{product['id']}", json={"name": "Dark cake"}, headers=headers
        ).json()
        removed = client.patch(
            f"/api/v1/products/{product['id']}", json={"coupon": None}, headers=headers
        ).json()

        assert unchanged["name"] == "Dark cake"
        assert unchanged["coupon"] is not None
        assert removed["coupon"] is None

    def test_update_variant_bumps_version(self, client, owner_a, site_a):
        product = create(client, owner_a, product_body(site_a)).json()
        variant = product["variants"][0]

        response = client.patch(
            f"/api/v1/products/{product['id']}/variants/{variant['id']}",
            json={"price": 1500},
            headers=user_headers(owner_a),
        )

        assert response.status_code == 200, response.text
        assert response.json()["price"] == 1500
        assert response.json()["version"] != variant["version"]

    def test_variant_of_other_product_is_404(self, client, owner_a, site_a, make_product):
        product = create(client, owner_a, product_body(site_a)).json()
        _, other = make_product(site_a)

        response = client.patch(
            f"/api/v1/products/{product['id']}/variants/{other.id}",
            json={"price": 1},
            headers=user_headers(owner_a),
        )

        assert response.status_code == 404

    def test_other_owner_is_forbidden(self, client, owner_a, owner_b, site_a):
        product = create(client, owner_a, product_body(site_a)).json()

        assert create(client, owner_b, product_body(site_a, slug="mine")).status_code == 403
        response = client.delete(f"/api/v1/products/{product['id']}", headers=user_headers(owner_b))
        assert response.status_code == 403

    def test_admin_may_manage_any_site(self, client, admin, site_a):
        assert create(client, admin, product_body(site_a)).status_code == 201


class TestListing:
    def test_price_filter_and_sort(self, client, site_a, make_product):
        make_product(site_a, price=100, name="Cheap")
        make_product(site_a, price=5000, name="Mid")
        make_product(site_a, price=90000, name="Dear")

        response = client.get(
            f"/api/v1/products/site/{site_a.id}",
            params={"price_range": "1000,100000", "sort_by": "price_high_to_low"},
        )

        assert response.status_code == 200, response.text
        assert [p["name"] for p in response.json()["items"]] == ["Dear", "Mid"]

    def test_free_send_and_name_sort(self, client, site_a, make_product):
        make_product(site_a, name="Bread", free_send=True)
        make_product(site_a, name="Apple pie", free_send=True)
        make_product(site_a, name="Cookie")

        body = client.get(
            f"/api/v1/products/site/{site_a.id}?free_send=true&sort_by=name_a_z"
        ).json()

        assert [p["name"] for p in body["items"]] == ["Apple pie", "Bread"]
        assert body["total_count"] == 2

    def test_desc_reverses_named_sort(self, client, site_a, make_product):
        make_product(site_a, name="Beta")
        make_product(site_a, name="Alpha")
        url = f"/api/v1/products/site/{site_a.id}?sort_by=name_a_z"

        ascending = client.get(f"{url}&sort=asc").json()
        descending = client.get(f"{url}&sort=desc").json()

        assert [p["name"] for p in ascending["items"]] == ["Alpha", "Beta"]
        assert [p["name"] for p in descending["items"]] == ["Beta", "Alpha"]

    def test_direction_alone_orders_by_recency(self, client, site_a, make_product):
        first, _ = make_product(site_a, name="First")
        second, _ = make_product(site_a, name="Second")
        url = f"/api/v1/products/site/{site_a.id}"

        newest = client.get(url).json()
        oldest = client.get(f"{url}?sort=asc").json()

        assert [p["id"] for p in newest["items"]] == [second.id, first.id]
        assert [p["id"] for p in oldest["items"]] == [first.id, second.id]

    def test_pagination_and_search(self, client, site_a, make_product):
        for name in ("Cake one", "Cake two", "Cake three", "Tart"):
            make_product(site_a, name=name)

        body = client.get(
            f"/api/v1/products/site/{site_a.id}?search=cake&page=2&page_size=2&sort_by=name_a_z"
        ).json()

        assert body["total_count"] == 3
        assert [p["name"] for p in body["items"]] == ["Cake two"]

    def test_listing_is_per_site_and_skips_deleted(self, client, owner_a, site_a, site_b, make_product):
        kept, _ = make_product(site_a, name="Kept")
        gone, _ = make_product(site_a, name="Gone")
        make_product(site_b, name="Elsewhere")
        client.delete(f"/api/v1/products/{gone.id}", headers=user_headers(owner_a))

        body = client.get(f"/api/v1/products/site/{site_a.id}").json()

        assert [p["id"] for p in body["items"]] == [kept.id]

    def test_badge_filter(self, client, owner_a, site_a):
        create(
            client,
            owner_a,
            product_body(site_a, slug="tagged", attributes=[{"type": "badge", "name": "hot"}]),
        )
        create(client, owner_a, product_body(site_a, slug="plain"))

        body = client.get(f"/api/v1/products/site/{site_a.id}?badges=hot,new").json()

        assert [p["slug"] for p in body["items"]] == ["tagged"]

    def test_malformed_range_is_400(self, client, site_a):
        response = client.get(f"/api/v1/products/site/{site_a.id}?price_range=9000,10")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ValidationFailed"

    def test_unknown_sort_is_400(self, client, site_a):
        response = client.get(f"/api/v1/products/site/{site_a.id}?sort_by=cheapest")

        assert response.status_code == 400
