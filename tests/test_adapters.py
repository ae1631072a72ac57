import json
from decimal import Decimal

import requests

from inventory_sync.models.inventory import InventoryItem
from inventory_sync.services.marketplace_adapter import MarketplaceChannelAdapter
from inventory_sync.services.marketplace_client import MarketplaceClient
from inventory_sync.services.pos_adapter import PosChannelAdapter
from inventory_sync.services.pos_client import PosClient, classify_http_status
from inventory_sync.services.token_cache import TokenCache


class FakeResponse:
    def __init__(self, status_code: int, body: dict | None = None):
        self.status_code = status_code
        self._body = body
        self.content = json.dumps(body).encode("utf-8") if body is not None else b""
        self.text = self.content.decode("utf-8")

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class FakeSession:
    """Replays queued responses in order and records each request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, str, dict]] = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def paths(self) -> list[str]:
        return [f"{method} {url.split('.com', 1)[1]}" for method, url, _ in self.calls]


def _item(**overrides) -> InventoryItem:
    values = {
        "id": "item-1",
        "code": "AB12",
        "name": "AB12 - Manteau laine",
        "category": "AB - Manteau",
        "price": Decimal("120.00"),
        "quantity": 1,
        "is_small_batch": False,
    }
    values.update(overrides)
    return InventoryItem(**values)


def _pos_adapter(session: FakeSession) -> PosChannelAdapter:
    return PosChannelAdapter(
        PosClient(access_token="pos-token", location_id="LOC-1", environment="sandbox", session=session)
    )


def _marketplace_adapter(session: FakeSession) -> MarketplaceChannelAdapter:
    client = MarketplaceClient(
        client_id="id",
        client_secret="secret",
        refresh_token="refresh",
        environment="sandbox",
        token_cache=TokenCache(lambda: ("access", 7200)),
        session=session,
    )
    return MarketplaceChannelAdapter(client)


def _error(status_code: int, message: str) -> FakeResponse:
    return FakeResponse(status_code, {"errors": [{"message": message, "longMessage": message, "detail": message}]})


def test_classify_http_status():
    assert classify_http_status(429) is True
    assert classify_http_status(503) is True
    assert classify_http_status(400) is False
    assert classify_http_status(404) is False


def test_pos_withdraw_deletes_variation():
    session = FakeSession(FakeResponse(200, {"deleted_object_ids": ["VAR-1"]}))

    result = _pos_adapter(session).withdraw(_item(pos_variation_ref="VAR-1", pos_item_ref="ITEM-1"))

    assert result.ok
    assert result.already is False
    assert session.paths() == ["DELETE /v2/catalog/object/VAR-1"]
    assert session.calls[0][2]["headers"]["Authorization"] == "Bearer pos-token"


def test_pos_withdraw_treats_missing_variation_as_done():
    session = FakeSession(_error(404, "Object not found"))

    result = _pos_adapter(session).withdraw(_item(pos_variation_ref="VAR-1"))

    assert result.ok
    assert result.already is True


def test_pos_withdraw_falls_back_to_archiving_the_item():
    session = FakeSession(
        _error(400, "Cannot delete the last variation"),
        _error(400, "Item is referenced by an open order"),
        FakeResponse(200, {"object": {"id": "ITEM-1", "version": 7, "item_data": {"name": "AB12 - Manteau laine"}}}),
        FakeResponse(200, {"catalog_object": {"id": "ITEM-1"}}),
    )

    result = _pos_adapter(session).withdraw(_item(pos_variation_ref="VAR-1", pos_item_ref="ITEM-1"))

    assert result.ok
    assert session.paths() == [
        "DELETE /v2/catalog/object/VAR-1",
        "DELETE /v2/catalog/object/ITEM-1",
        "GET /v2/catalog/object/ITEM-1",
        "POST /v2/catalog/object",
    ]
    upsert = session.calls[-1][2]["json"]["object"]
    assert upsert["version"] == 7
    assert upsert["item_data"]["is_archived"] is True


def test_pos_withdraw_stops_on_retryable_error():
    session = FakeSession(_error(503, "Service unavailable"))

    result = _pos_adapter(session).withdraw(_item(pos_variation_ref="VAR-1", pos_item_ref="ITEM-1"))

    assert result.retryable
    assert len(session.calls) == 1


def test_pos_network_error_is_retryable():
    session = FakeSession(requests.ConnectionError("connection reset"))

    result = _pos_adapter(session).withdraw(_item(pos_variation_ref="VAR-1"))

    assert result.retryable
    assert "connection reset" in result.error


def test_pos_publish_records_catalog_refs():
    session = FakeSession(
        FakeResponse(
            200,
            {"catalog_object": {"id": "ITEM-9", "item_data": {"variations": [{"id": "VAR-9"}]}}},
        )
    )
    item = _item()

    result = _pos_adapter(session).publish(item)

    assert result.ok
    assert item.pos_item_ref == "ITEM-9"
    assert item.pos_variation_ref == "VAR-9"
    sent = session.calls[0][2]["json"]["object"]
    variation = sent["item_data"]["variations"][0]["item_variation_data"]
    assert variation["price_money"]["amount"] == 12000
    assert variation["sku"] == "AB12"


def test_marketplace_publish_recovers_existing_offer_and_listing():
    session = FakeSession(
        _error(409, "Location already exists"),
        FakeResponse(204),
        _error(400, "Offer entity already exists"),
        FakeResponse(200, {"offers": [{"offerId": "OFFER-1"}]}),
        FakeResponse(204),
        _error(400, "Offer is already published"),
        FakeResponse(200, {"offerId": "OFFER-1", "listingId": "LIST-1"}),
    )
    item = _item()

    result = _marketplace_adapter(session).publish(item)

    assert result.ok, result.error
    assert item.market_offer_ref == "OFFER-1"
    assert item.market_listing_ref == "LIST-1"
    assert session.paths() == [
        "POST /sell/inventory/v1/location/MAIN_STORE",
        "PUT /sell/inventory/v1/inventory_item/AB12",
        "POST /sell/inventory/v1/offer",
        "GET /sell/inventory/v1/offer",
        "PUT /sell/inventory/v1/offer/OFFER-1",
        "POST /sell/inventory/v1/offer/OFFER-1/publish",
        "GET /sell/inventory/v1/offer/OFFER-1",
    ]
    offer = session.calls[2][2]["json"]
    assert offer["pricingSummary"]["price"]["value"] == "142.99"
    assert offer["categoryId"] == "57988"


def test_marketplace_publish_reports_rejection_as_permanent():
    session = FakeSession(FakeResponse(204), FakeResponse(204), _error(400, "Invalid category"))

    result = _marketplace_adapter(session).publish(_item())

    assert not result.ok
    assert not result.retryable
    assert "Invalid category" in result.error


def test_marketplace_withdraw_is_idempotent():
    session = FakeSession(_error(404, "Offer not found"), _error(404, "Inventory item not found"))

    result = _marketplace_adapter(session).withdraw(_item(market_offer_ref="OFFER-1"))

    assert result.ok
    assert result.already is True


def test_marketplace_withdraw_surfaces_throttling_as_retryable():
    session = FakeSession(_error(429, "Too many requests"))

    result = _marketplace_adapter(session).withdraw(_item(market_offer_ref="OFFER-1"))

    assert result.retryable


def test_marketplace_unauthorized_refreshes_token_on_next_call():
    issued = iter([("first", 7200), ("second", 7200)])
    session = FakeSession(_error(401, "Invalid access token"), FakeResponse(200, {"offerId": "OFFER-1"}))
    client = MarketplaceClient(
        client_id="id",
        client_secret="secret",
        refresh_token="refresh",
        environment="sandbox",
        token_cache=TokenCache(lambda: next(issued)),
        session=session,
    )

    assert MarketplaceChannelAdapter(client).withdraw(_item(market_offer_ref="OFFER-1")).ok is False
    client.get_offer("OFFER-1")

    assert session.calls[0][2]["headers"]["Authorization"] == "Bearer first"
    assert session.calls[1][2]["headers"]["Authorization"] == "Bearer second"
