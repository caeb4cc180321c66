"""
Site discount code management.
"""
from datetime import timedelta

import pytest

from conftest import user_headers
from sitebuilder.core.clock import utcnow


def future(days=7):
    return (utcnow() + timedelta(days=days)).isoformat()


def create(client, owner, site, **fields):
    body = {
        "site_id": site.id,
        "code": "SPRING",
        "quantity": 10,
        "type": "fixed",
        "value": 5000,
        "expiry_date": future(),
        **fields,
    }
    return client.post("/api/v1/discounts", json=body, headers=user_headers(owner))


def test_create_and_read(client, owner_a, site_a):
    response = create(client, owner_a, site_a, code="  SPRING  ")

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["code"] == "SPRING"
    assert body["type"] == "fixed"

    fetched = client.get(f"/api/v1/discounts/{body['id']}", headers=user_headers(owner_a))
    assert fetched.json()["quantity"] == 10


def test_value_type_means_fixed(client, owner_a, site_a):
    response = create(client, owner_a, site_a, type="value")

    assert response.status_code == 201, response.text
    assert response.json()["type"] == "fixed"


@pytest.mark.parametrize(
    "fields",
    [
        {"type": "percentage", "value": 101},
        {"expiry_date": (utcnow() - timedelta(minutes=1)).isoformat()},
        {"quantity": -1},
        {"code": "   "},
        {"type": "half_off"},
    ],
)
def test_invalid_payloads_are_400(client, owner_a, site_a, fields):
    response = create(client, owner_a, site_a, **fields)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "ValidationFailed"


def test_duplicate_code_on_same_site_conflicts(client, owner_a, site_a):
    create(client, owner_a, site_a)

    response = create(client, owner_a, site_a)

    assert response.status_code == 409


def test_same_code_on_other_site_is_allowed(client, owner_a, owner_b, site_a, site_b):
    create(client, owner_a, site_a)

    assert create(client, owner_b, site_b).status_code == 201


def test_deleted_code_still_occupies_its_slot(client, owner_a, site_a):
    discount = create(client, owner_a, site_a).json()
    deleted = client.delete(f"/api/v1/discounts/{discount['id']}", headers=user_headers(owner_a))
    assert deleted.status_code == 204

    response = create(client, owner_a, site_a)

    assert response.status_code == 409


def test_update_rejects_percentage_over_100(client, owner_a, site_a):
    discount = create(client, owner_a, site_a, value=50).json()

    response = client.patch(
        f"/api/v1/discounts/{discount['id']}",
        json={"type": "percentage", "value": 150},
        headers=user_headers(owner_a),
    )

    assert response.status_code == 400


def test_update_changes_quantity(client, owner_a, site_a):
    discount = create(client, owner_a, site_a).json()

    response = client.patch(
        f"/api/v1/discounts/{discount['id']}",
        json={"quantity": 3},
        headers=user_headers(owner_a),
    )

    assert response.status_code == 200
    assert response.json()["quantity"] == 3


def test_other_owner_cannot_touch_codes(client, owner_a, owner_b, site_a):
    discount = create(client, owner_a, site_a).json()
    headers = user_headers(owner_b)

    assert create(client, owner_b, site_a).status_code == 403
    assert client.get(f"/api/v1/discounts/{discount['id']}", headers=headers).status_code == 403
    assert client.get(f"/api/v1/discounts/site/{site_a.id}", headers=headers).status_code == 403


def test_list_is_paginated_and_searchable(client, owner_a, site_a):
    for code in ("ALPHA", "BETA", "GAMMA"):
        create(client, owner_a, site_a, code=code)

    page = client.get(
        f"/api/v1/discounts/site/{site_a.id}?page=1&page_size=2",
        headers=user_headers(owner_a),
    ).json()
    found = client.get(
        f"/api/v1/discounts/site/{site_a.id}?search=ET",
        headers=user_headers(owner_a),
    ).json()

    assert page["total_count"] == 3
    assert len(page["items"]) == 2
    assert [d["code"] for d in found["items"]] == ["BETA"]


def test_invalid_page_size_is_400(client, owner_a, site_a):
    response = client.get(
        f"/api/v1/discounts/site/{site_a.id}?page_size=500",
        headers=user_headers(owner_a),
    )

    assert response.status_code == 400


def test_list_follows_sort_direction(client, owner_a, site_a):
    for code in ("FIRST", "SECOND", "THIRD"):
        create(client, owner_a, site_a, code=code)
    url = f"/api/v1/discounts/site/{site_a.id}"

    newest = client.get(url, headers=user_headers(owner_a)).json()
    oldest = client.get(f"{url}?sort=asc", headers=user_headers(owner_a)).json()

    assert [d["code"] for d in newest["items"]] == ["THIRD", "SECOND", "FIRST"]
    assert [d["code"] for d in oldest["items"]] == ["FIRST", "SECOND", "THIRD"]


def test_unknown_sort_direction_is_400(client, owner_a, site_a):
    response = client.get(
        f"/api/v1/discounts/site/{site_a.id}?sort=sideways",
        headers=user_headers(owner_a),
    )

    assert response.status_code == 400
