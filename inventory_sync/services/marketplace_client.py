import base64
from typing import Any

import requests

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError
from inventory_sync.core.observability import log_event
from inventory_sync.services.pos_client import classify_http_status
from inventory_sync.services.token_cache import TokenCache

MARKETPLACE_BASE_URLS = {
    "sandbox": "https://api.sandbox.ebay.com",
    "production": "https://api.ebay.com",
}
INVENTORY_API = "/sell/inventory/v1"
OAUTH_SCOPES = (
    "https://api.ebay.com/oauth/api_scope "
    "https://api.ebay.com/oauth/api_scope/sell.inventory "
    "https://api.ebay.com/oauth/api_scope/sell.account"
)


def _error_message(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0] if isinstance(errors[0], dict) else {}
            detail = first.get("longMessage") or first.get("message")
            if detail:
                return str(detail)
        message = body.get("error_description") or body.get("message")
        if message:
            return str(message)
    return fallback


class MarketplaceClient:
    """Inventory/Offer API client. Bearer tokens come from an injected TokenCache."""

    def __init__(
        self,
        *,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        environment: str | None = None,
        token_cache: TokenCache | None = None,
        session: requests.Session | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.marketplace_client_id
        self.client_secret = client_secret if client_secret is not None else settings.marketplace_client_secret
        self.refresh_token = refresh_token if refresh_token is not None else settings.marketplace_refresh_token
        self.base_url = MARKETPLACE_BASE_URLS[environment or settings.marketplace_environment]
        self.session = session or requests.Session()
        self.timeout = (settings.http_connect_timeout_seconds, settings.http_read_timeout_seconds)
        self.token_cache = token_cache or TokenCache(self._fetch_access_token)

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.refresh_token)

    def _fetch_access_token(self) -> tuple[str, int]:
        if not self.is_configured():
            raise ChannelNotConfiguredError("marketplace")
        basic = base64.b64encode(f"{self.client_id}:{self.client_secret}".encode("utf-8")).decode("ascii")
        try:
            response = self.session.request(
                "POST",
                f"{self.base_url}/identity/v1/oauth2/token",
                headers={
                    "Authorization": f"Basic {basic}",
                    "Content-Type": "application/x-www-form-urlencoded",
                },
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self.refresh_token,
                    "scope": OAUTH_SCOPES,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ChannelApiError(f"Marketplace token request failed: {exc}", retryable=True) from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        if response.status_code >= 400 or not body.get("access_token"):
            raise ChannelApiError(
                _error_message(body, f"Marketplace token endpoint responded {response.status_code}"),
                status_code=response.status_code,
                retryable=classify_http_status(response.status_code),
                body=body,
            )
        log_event("marketplace.token_refreshed", expires_in=body.get("expires_in"))
        return str(body["access_token"]), int(body.get("expires_in") or 7200)

    def _request(self, method: str, path: str, *, json: Any = None, params: dict | None = None) -> dict:
        headers = {
            "Authorization": f"Bearer {self.token_cache.get()}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Content-Language": settings.marketplace_content_language,
        }
        try:
            response = self.session.request(
                method,
                f"{self.base_url}{INVENTORY_API}{path}",
                headers=headers,
                json=json,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ChannelApiError(f"Marketplace request failed: {exc}", retryable=True) from exc

        try:
            body = response.json() if response.content else {}
        except ValueError:
            body = {"message": response.text}

        if response.status_code == 401:
            self.token_cache.invalidate()
        if response.status_code >= 400:
            raise ChannelApiError(
                _error_message(body, f"Marketplace responded {response.status_code}"),
                status_code=response.status_code,
                retryable=classify_http_status(response.status_code),
                body=body,
            )
        return body if isinstance(body, dict) else {}

    def create_location(self, key: str, location: dict) -> dict:
        return self._request("POST", f"/location/{key}", json=location)

    def put_inventory_item(self, sku: str, payload: dict) -> dict:
        return self._request("PUT", f"/inventory_item/{sku}", json=payload)

    def delete_inventory_item(self, sku: str) -> dict:
        return self._request("DELETE", f"/inventory_item/{sku}")

    def create_offer(self, payload: dict) -> dict:
        return self._request("POST", "/offer", json=payload)

    def update_offer(self, offer_id: str, payload: dict) -> dict:
        return self._request("PUT", f"/offer/{offer_id}", json=payload)

    def get_offer(self, offer_id: str) -> dict:
        return self._request("GET", f"/offer/{offer_id}")

    def find_offer_by_sku(self, sku: str) -> dict | None:
        offers = self._request("GET", "/offer", params={"sku": sku}).get("offers") or []
        return offers[0] if offers else None

    def publish_offer(self, offer_id: str) -> dict:
        return self._request("POST", f"/offer/{offer_id}/publish")

    def withdraw_offer(self, offer_id: str) -> dict:
        return self._request("POST", f"/offer/{offer_id}/withdraw")
