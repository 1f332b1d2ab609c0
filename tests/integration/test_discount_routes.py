"""HTTP surface of the admin and seller discount routes."""

import re
import uuid
from datetime import timedelta

import pytest

from marketplace.auth.dependencies import Actor
from marketplace.db.models import utcnow
from tests.factories import DiscountFactory, StoreFactory

pytestmark = pytest.mark.integration

CODE_FORMAT = re.compile(r"^(SEAS|SHIP|SPEC)_[A-Z0-9]{4}$")


def window(**overrides) -> dict:
    data = {
        "start_datetime": (utcnow() - timedelta(hours=1)).isoformat(),
        "end_datetime": (utcnow() + timedelta(days=7)).isoformat(),
    }
    data.update(overrides)
    return data


@pytest.mark.asyncio
async def test_admin_creates_shipping_discount(client, admin, as_headers):
    response = await client.post(
        "/admin/discounts/",
        json={
            "name": "Cheap shipping",
            "discount_type": "shipping",
            "shipping_details": {"discount_amount": "30"},
            **window(),
        },
        headers=as_headers(admin),
    )

    assert response.status_code == 201
    body = response.json()
    assert CODE_FORMAT.match(body["code"])
    assert body["code"].startswith("SHIP_")
    assert body["usage_count"] == 0
    assert body["created_by_type"] == "system"


@pytest.mark.asyncio
async def test_inverted_window_is_400(client, admin, as_headers):
    now = utcnow()
    response = await client.post(
        "/admin/discounts/",
        json={
            "name": "Backwards",
            "discount_type": "seasonal",
            "seasonal_details": {"discount_rate": "0.1"},
            **window(start_datetime=now.isoformat(), end_datetime=(now - timedelta(days=1)).isoformat()),
        },
        headers=as_headers(admin),
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_discount_window"


@pytest.mark.asyncio
async def test_mismatched_payload_is_400(client, admin, as_headers):
    response = await client.post(
        "/admin/discounts/",
        json={
            "name": "Confused",
            "discount_type": "seasonal",
            "shipping_details": {"discount_amount": "10"},
            **window(),
        },
        headers=as_headers(admin),
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "invalid_discount_payload"


@pytest.mark.asyncio
async def test_rate_above_one_is_rejected(client, admin, as_headers):
    response = await client.post(
        "/admin/discounts/",
        json={
            "name": "Too much",
            "discount_type": "seasonal",
            "seasonal_details": {"discount_rate": "1.5"},
            **window(),
        },
        headers=as_headers(admin),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_missing_identity_is_401(client):
    response = await client.get("/admin/discounts/")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_sellers_cannot_use_admin_routes(client, as_headers):
    seller = Actor(uid=uuid.uuid4(), role="seller")
    response = await client.get("/admin/discounts/", headers=as_headers(seller))
    assert response.status_code == 403
    assert response.json()["error_code"] == "insufficient_permission"


@pytest.mark.asyncio
async def test_toggle_and_delete(client, db_session, admin, as_headers):
    discount = DiscountFactory.seasonal()
    db_session.add(discount)
    await db_session.commit()

    toggled = await client.patch(
        f"/admin/discounts/{discount.uid}/active", json={"is_active": False}, headers=as_headers(admin)
    )
    assert toggled.json()["is_active"] is False

    deleted = await client.delete(f"/admin/discounts/{discount.uid}", headers=as_headers(admin))
    assert deleted.json()["deleted"] is True

    missing = await client.get(f"/admin/discounts/{discount.uid}", headers=as_headers(admin))
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "discount_does_not_exist"


@pytest.mark.asyncio
async def test_seller_special_for_own_store_only(client, db_session, as_headers):
    seller = Actor(uid=uuid.uuid4(), role="seller")
    own = StoreFactory.create(seller_uid=seller.uid)
    foreign = StoreFactory.create()
    db_session.add_all([own, foreign])
    await db_session.commit()

    def special_for(store):
        return {
            "name": "Store week",
            "discount_type": "special",
            "special_details": {"store_uid": str(store.uid), "discount_rate": "0.2"},
            **window(),
        }

    created = await client.post("/seller/discounts/", json=special_for(own), headers=as_headers(seller))
    assert created.status_code == 201
    assert created.json()["code"].startswith("SPEC_")
    assert created.json()["created_by_type"] == "seller"

    refused = await client.post("/seller/discounts/", json=special_for(foreign), headers=as_headers(seller))
    assert refused.status_code == 403

    mine = await client.get("/seller/discounts/", headers=as_headers(seller))
    assert [d["uid"] for d in mine.json()["data"]] == [created.json()["uid"]]


@pytest.mark.asyncio
async def test_seller_cannot_create_seasonal(client, as_headers):
    seller = Actor(uid=uuid.uuid4(), role="seller")
    response = await client.post(
        "/seller/discounts/",
        json={
            "name": "Not allowed",
            "discount_type": "seasonal",
            "seasonal_details": {"discount_rate": "0.1"},
            **window(),
        },
        headers=as_headers(seller),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_null_for_required_fields_leaves_them_unchanged(client, db_session, admin, as_headers):
    discount = DiscountFactory.seasonal(name="Spring sale")
    db_session.add(discount)
    await db_session.commit()

    response = await client.put(
        f"/admin/discounts/{discount.uid}",
        json={"name": None, "is_active": None, "min_purchase_amount": None, "description": "Now with notes"},
        headers=as_headers(admin),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Spring sale"
    assert body["is_active"] is True
    assert body["description"] == "Now with notes"


@pytest.mark.asyncio
async def test_seller_update_with_null_name(client, db_session, as_headers):
    seller = Actor(uid=uuid.uuid4(), role="seller")
    store = StoreFactory.create(seller_uid=seller.uid)
    discount = DiscountFactory.special(store, name="Store week")
    db_session.add_all([store, discount])
    await db_session.commit()

    response = await client.put(
        f"/seller/discounts/{discount.uid}", json={"name": None}, headers=as_headers(seller)
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Store week"


@pytest.mark.asyncio
async def test_lookup_by_code(client, db_session, admin, as_headers):
    discount = DiscountFactory.shipping()
    db_session.add(discount)
    await db_session.commit()

    found = await client.get(f"/admin/discounts/code/{discount.code.lower()}", headers=as_headers(admin))
    assert found.status_code == 200
    assert found.json()["uid"] == str(discount.uid)

    missing = await client.get("/admin/discounts/code/SHIP_NONE", headers=as_headers(admin))
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "discount_does_not_exist"
