from datetime import timedelta

from inventory_sync.core.errors import ChannelApiError
from inventory_sync.core.security import OPERATOR_TOKEN_TYPE, create_operator_token, create_token
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.services.channel_adapters import ChannelResult


def _auth_headers(role: str = "operator") -> dict:
    return {"Authorization": f"Bearer {create_operator_token('ops@example.com', role=role)}"}


def _create(client, **overrides) -> dict:
    payload = {
        "code": "ab12",
        "name": "AB12 - Manteau laine",
        "category": "AB - Manteau",
        "seller_code": "ab",
        "price": 120,
    }
    payload.update(overrides)
    res = client.post("/inventory/items", json=payload, headers=_auth_headers())
    assert res.status_code == 201, res.text
    return res.json()


def test_operator_token_is_required(test_context):
    client, _ = test_context

    missing = client.get("/inventory/items")
    garbage = client.get("/inventory/items", headers={"Authorization": "Bearer not-a-jwt"})
    expired = client.get(
        "/inventory/items",
        headers={
            "Authorization": "Bearer "
            + create_token("ops@example.com", timedelta(minutes=-5), OPERATOR_TOKEN_TYPE, role="operator")
        },
    )

    assert missing.status_code == 401, missing.text
    assert garbage.status_code == 401, garbage.text
    assert expired.status_code == 401, expired.text
    assert missing.json()["error"]["code"] == "unauthorized"


def test_viewer_can_read_but_not_write(test_context):
    client, _ = test_context

    listed = client.get("/inventory/items", headers=_auth_headers("viewer"))
    created = client.post(
        "/inventory/items",
        json={"code": "AB12", "name": "AB12 - Manteau", "price": 10},
        headers=_auth_headers("viewer"),
    )

    assert listed.status_code == 200, listed.text
    assert created.status_code == 403, created.text


def test_intake_normalizes_codes_and_creates_listings(test_context):
    client, _ = test_context

    item = _create(client, is_small_batch=True, quantity=3)

    assert item["code"] == "AB12"
    assert item["seller_code"] == "AB"
    assert item["quantity"] == 3
    assert item["lifecycle_state"] == "active"

    detail = client.get(f"/inventory/items/{item['id']}", headers=_auth_headers("viewer"))
    assert detail.status_code == 200, detail.text
    assert [listing["channel"] for listing in detail.json()["listings"]] == ["marketplace", "pos"]
    assert all(listing["state"] == "not_listed" for listing in detail.json()["listings"])
    assert detail.json()["sales"] == []


def test_unique_piece_quantity_is_forced_to_one(test_context):
    client, _ = test_context

    item = _create(client, quantity=4)

    assert item["quantity"] == 1


def test_list_filters_and_paginates(test_context):
    client, _ = test_context
    _create(client, code="AB12")
    _create(client, code="AB13")
    _create(client, code="CD1", seller_code="CD")

    page = client.get("/inventory/items", params={"limit": 2}, headers=_auth_headers())
    by_code = client.get("/inventory/items", params={"code": "cd1"}, headers=_auth_headers())
    bad_state = client.get("/inventory/items", params={"state": "lost"}, headers=_auth_headers())

    assert page.status_code == 200, page.text
    assert page.json()["pagination"] == {"total": 3, "limit": 2, "offset": 0, "count": 2, "has_next": True}
    assert [row["code"] for row in by_code.json()["items"]] == ["CD1"]
    assert bad_state.status_code == 400, bad_state.text


def test_unknown_item_returns_404(test_context):
    client, _ = test_context

    res = client.get("/inventory/items/missing", headers=_auth_headers())

    assert res.status_code == 404, res.text


def test_restock_only_for_out_of_stock_small_batches(test_context):
    client, session_local = test_context
    piece = _create(client, code="AB12")
    batch = _create(client, code="AB13", is_small_batch=True, quantity=1)

    db = session_local()
    try:
        stored = db.get(InventoryItem, batch["id"])
        stored.record_units_sold(1, transaction_id="order-1", channel_name="pos")
        db.commit()
    finally:
        db.close()

    rejected = client.post(f"/inventory/items/{piece['id']}/restock", json={"quantity": 2}, headers=_auth_headers())
    restocked = client.post(f"/inventory/items/{batch['id']}/restock", json={"quantity": 5}, headers=_auth_headers())

    assert rejected.status_code == 409, rejected.text
    assert restocked.status_code == 200, restocked.text
    assert restocked.json()["quantity"] == 5
    assert restocked.json()["lifecycle_state"] == "active"


def test_publish_then_withdraw_listing(test_context, channels):
    client, _ = test_context
    item = _create(client)

    published = client.post(f"/inventory/items/{item['id']}/listings/pos/publish", headers=_auth_headers())
    assert published.status_code == 200, published.text
    assert published.json()["listing_state"] == "listed"
    assert published.json()["listing_ref"] == "pos-listing-AB12"

    withdrawn = client.post(f"/inventory/items/{item['id']}/listings/pos/withdraw", headers=_auth_headers())
    again = client.post(f"/inventory/items/{item['id']}/listings/pos/withdraw", headers=_auth_headers())
    republish = client.post(f"/inventory/items/{item['id']}/listings/pos/publish", headers=_auth_headers())

    assert withdrawn.status_code == 200, withdrawn.text
    assert withdrawn.json()["listing_state"] == "withdrawn"
    assert again.status_code == 200, again.text
    assert again.json()["already"] is True
    assert republish.status_code == 409, republish.text
    assert channels["pos"].withdrawn_ids() == [item["id"]]


def test_withdraw_requires_a_listing(test_context):
    client, _ = test_context
    item = _create(client)

    res = client.post(f"/inventory/items/{item['id']}/listings/marketplace/withdraw", headers=_auth_headers())

    assert res.status_code == 409, res.text


def test_publish_failure_returns_502_and_records_error(test_context, channels):
    client, _ = test_context
    item = _create(client)
    channels["marketplace"].publish_results.append(
        ChannelResult.from_error("publish", ChannelApiError("Invalid category", status_code=400))
    )

    res = client.post(f"/inventory/items/{item['id']}/listings/marketplace/publish", headers=_auth_headers())

    assert res.status_code == 502, res.text
    assert res.json()["error"]["code"] == "channel_error"
    detail = client.get(f"/inventory/items/{item['id']}", headers=_auth_headers()).json()
    marketplace = next(listing for listing in detail["listings"] if listing["channel"] == "marketplace")
    assert marketplace["state"] == "not_listed"
    assert marketplace["last_error_kind"] == "permanent_failure"
    assert marketplace["attempts"] == 1


def test_unknown_and_unconfigured_channels(test_context, channels):
    client, _ = test_context
    item = _create(client)
    channels["marketplace"].configured = False

    unknown = client.post(f"/inventory/items/{item['id']}/listings/etsy/publish", headers=_auth_headers())
    unconfigured = client.post(f"/inventory/items/{item['id']}/listings/marketplace/publish", headers=_auth_headers())

    assert unknown.status_code == 404, unknown.text
    assert unconfigured.status_code == 409, unconfigured.text


def test_quantity_push_to_zero_withdraws(test_context, channels):
    client, _ = test_context
    item = _create(client, is_small_batch=True, quantity=2)
    client.post(f"/inventory/items/{item['id']}/listings/marketplace/publish", headers=_auth_headers())

    updated = client.put(
        f"/inventory/items/{item['id']}/listings/marketplace/quantity",
        json={"quantity": 1},
        headers=_auth_headers(),
    )
    zeroed = client.put(
        f"/inventory/items/{item['id']}/listings/marketplace/quantity",
        json={"quantity": 0},
        headers=_auth_headers(),
    )

    assert updated.status_code == 200, updated.text
    assert updated.json()["listing_state"] == "listed"
    assert zeroed.status_code == 200, zeroed.text
    assert zeroed.json()["listing_state"] == "withdrawn"
