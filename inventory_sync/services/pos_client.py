from datetime import datetime
from typing import Any, Iterator

import requests

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError
from inventory_sync.core.observability import log_event

POS_BASE_URLS = {
    "sandbox": "https://connect.squareupsandbox.com",
    "production": "https://connect.squareup.com",
}


def classify_http_status(status_code: int) -> bool:
    """True when a failed call is worth retrying."""
    return status_code == 429 or status_code >= 500


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0] if isinstance(errors[0], dict) else {}
            detail = first.get("detail") or first.get("message") or first.get("code")
            if detail:
                return str(detail)
        message = body.get("message") or body.get("error_description")
        if message:
            return str(message)
    return fallback


class PosClient:
    """Thin wrapper over the point-of-sale REST API (catalog, orders, inventory)."""

    def __init__(
        self,
        *,
        access_token: str | None = None,
        location_id: str | None = None,
        environment: str | None = None,
        api_version: str | None = None,
        session: requests.Session | None = None,
    ):
        self.access_token = access_token if access_token is not None else settings.pos_access_token
        self.location_id = location_id if location_id is not None else settings.pos_location_id
        self.base_url = POS_BASE_URLS[environment or settings.pos_environment]
        self.api_version = api_version or settings.pos_api_version
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = (settings.http_connect_timeout_seconds, settings.http_read_timeout_seconds)

    def __enter__(self) -> "PosClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_session:
            self.session.close()

    def is_configured(self) -> bool:
        return bool(self.access_token and self.location_id)

    def _request(self, method: str, path: str, *, json: Any = None, params: dict | None = None) -> dict:
        if not self.access_token:
            raise ChannelNotConfiguredError("pos")
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Square-Version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ChannelApiError(f"POS request failed: {exc}", retryable=True) from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"message": response.text}

        if response.status_code >= 400:
            raise ChannelApiError(
                _error_message(body, f"POS responded {response.status_code}"),
                status_code=response.status_code,
                retryable=classify_http_status(response.status_code),
                body=body,
            )
        return body if isinstance(body, dict) else {}

    # catalog

    def retrieve_catalog_object(self, object_id: str, *, include_related: bool = True) -> dict:
        params = {"include_related_objects": "true"} if include_related else None
        return self._request("GET", f"/v2/catalog/object/{object_id}", params=params)

    def delete_catalog_object(self, object_id: str) -> dict:
        return self._request("DELETE", f"/v2/catalog/object/{object_id}")

    def upsert_catalog_object(self, catalog_object: dict, *, idempotency_key: str) -> dict:
        return self._request(
            "POST",
            "/v2/catalog/object",
            json={"idempotency_key": idempotency_key, "object": catalog_object},
        )

    def parent_item_id(self, variation_id: str) -> str | None:
        """Resolve a variation id to its parent item id, or None when it is not a variation."""
        payload = self.retrieve_catalog_object(variation_id, include_related=False)
        obj = payload.get("object") or {}
        if obj.get("type") != "ITEM_VARIATION":
            return None
        return (obj.get("item_variation_data") or {}).get("item_id")

    # orders

    def retrieve_order(self, order_id: str) -> dict:
        return self._request("GET", f"/v2/orders/{order_id}").get("order") or {}

    def search_completed_orders(self, start: datetime, end: datetime, *, limit: int = 100) -> Iterator[dict]:
        """Yield COMPLETED orders closed within [start, end], newest first, following the cursor."""
        cursor: str | None = None
        pages = 0
        while True:
            body: dict[str, Any] = {
                "location_ids": [self.location_id],
                "limit": limit,
                "query": {
                    "filter": {
                        "state_filter": {"states": ["COMPLETED"]},
                        "date_time_filter": {
                            "closed_at": {
                                "start_at": start.isoformat(),
                                "end_at": end.isoformat(),
                            }
                        },
                    },
                    "sort": {"sort_field": "CLOSED_AT", "sort_order": "DESC"},
                },
            }
            if cursor:
                body["cursor"] = cursor
            payload = self._request("POST", "/v2/orders/search", json=body)
            pages += 1
            for order in payload.get("orders") or []:
                yield order
            cursor = payload.get("cursor")
            if not cursor:
                break
        log_event("pos.orders_searched", pages=pages, window_start=start, window_end=end)

    # inventory

    def set_inventory_count(self, variation_id: str, quantity: int, *, idempotency_key: str, occurred_at: datetime) -> dict:
        return self._request(
            "POST",
            "/v2/inventory/changes/batch-create",
            json={
                "idempotency_key": idempotency_key,
                "changes": [
                    {
                        "type": "PHYSICAL_COUNT",
                        "physical_count": {
                            "catalog_object_id": variation_id,
                            "location_id": self.location_id,
                            "quantity": str(quantity),
                            "state": "IN_STOCK",
                            "occurred_at": occurred_at.isoformat(),
                        },
                    }
                ],
            },
        )
