from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError
from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.services.channel_adapters import ChannelResult
from inventory_sync.services.marketplace_catalog import estimate_shipping, marketplace_category_id, marketplace_price
from inventory_sync.services.marketplace_client import MarketplaceClient

CHANNEL_ERRORS = (ChannelApiError, ChannelNotConfiguredError)
CONDITION = "USED_EXCELLENT"
TITLE_MAX_LENGTH = 80


class MarketplaceChannelAdapter:
    name = "marketplace"

    def __init__(self, client: MarketplaceClient | None = None):
        self._client = client
        self._location_ready = False

    @property
    def client(self) -> MarketplaceClient:
        if self._client is None:
            self._client = MarketplaceClient()
        return self._client

    def is_configured(self) -> bool:
        return self.client.is_configured()

    def has_reference(self, item: InventoryItem) -> bool:
        return bool(item.market_offer_ref or item.market_listing_ref)

    # payloads

    def _inventory_item_payload(self, item: InventoryItem, quantity: int) -> dict:
        shipping = estimate_shipping(item.category)
        return {
            "availability": {"shipToLocationAvailability": {"quantity": quantity}},
            "condition": CONDITION,
            "product": {
                "title": item.name[:TITLE_MAX_LENGTH],
                "description": item.name,
                "aspects": {},
            },
            "packageWeightAndSize": {
                "packageType": shipping.package_type,
                "weight": {"value": shipping.weight_grams, "unit": "GRAM"},
            },
        }

    def _offer_payload(self, item: InventoryItem) -> dict:
        return {
            "sku": item.code,
            "marketplaceId": settings.marketplace_marketplace_id,
            "format": "FIXED_PRICE",
            "listingDescription": item.name,
            "availableQuantity": max(item.quantity, 1),
            "categoryId": marketplace_category_id(item.category),
            "merchantLocationKey": settings.marketplace_merchant_location_key,
            "listingPolicies": {
                "fulfillmentPolicyId": settings.marketplace_fulfillment_policy_id,
                "paymentPolicyId": settings.marketplace_payment_policy_id,
                "returnPolicyId": settings.marketplace_return_policy_id,
            },
            "pricingSummary": {
                "price": {
                    "value": str(marketplace_price(item.price)),
                    "currency": settings.marketplace_currency,
                }
            },
        }

    # operations

    def _ensure_merchant_location(self) -> None:
        if self._location_ready:
            return
        try:
            self.client.create_location(
                settings.marketplace_merchant_location_key,
                {
                    "location": {
                        "address": {
                            "city": settings.marketplace_location_city,
                            "postalCode": settings.marketplace_location_postal_code,
                            "country": settings.marketplace_location_country,
                        }
                    },
                    "name": settings.app_name,
                    "merchantLocationStatus": "ENABLED",
                    "locationTypes": ["STORE"],
                },
            )
        except ChannelApiError as exc:
            if not exc.mentions("already exists"):
                raise
        self._location_ready = True

    def _create_or_update_offer(self, item: InventoryItem) -> str:
        offer = self._offer_payload(item)
        try:
            return str(self.client.create_offer(offer)["offerId"])
        except ChannelApiError as exc:
            if not exc.mentions("already exists"):
                raise
        existing = self.client.find_offer_by_sku(item.code)
        if not existing or not existing.get("offerId"):
            raise ChannelApiError(f"Offer for SKU {item.code} reported as existing but not found")
        offer_id = str(existing["offerId"])
        update = {key: value for key, value in offer.items() if key not in {"sku", "marketplaceId", "format"}}
        self.client.update_offer(offer_id, update)
        log_event("marketplace.offer_updated", item_id=item.id, offer_id=offer_id)
        return offer_id

    def _publish_offer(self, offer_id: str) -> str | None:
        try:
            return self.client.publish_offer(offer_id).get("listingId")
        except ChannelApiError as exc:
            if not exc.mentions("already published", "PUBLISHED"):
                raise
        return self.client.get_offer(offer_id).get("listingId")

    def publish(self, item: InventoryItem) -> ChannelResult:
        try:
            if not self.is_configured():
                raise ChannelNotConfiguredError(self.name)
            self._ensure_merchant_location()
            self.client.put_inventory_item(item.code, self._inventory_item_payload(item, max(item.quantity, 1)))
            offer_id = self._create_or_update_offer(item)
            listing_id = self._publish_offer(offer_id)
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("publish", exc)

        item.market_offer_ref = offer_id
        if listing_id:
            item.market_listing_ref = str(listing_id)
        log_event("marketplace.published", item_id=item.id, offer_id=offer_id, listing_id=listing_id)
        return ChannelResult.success("publish", listing_ref=item.market_listing_ref, offer_ref=offer_id)

    def withdraw(self, item: InventoryItem) -> ChannelResult:
        already = True
        try:
            if item.market_offer_ref:
                try:
                    self.client.withdraw_offer(item.market_offer_ref)
                    already = False
                except ChannelApiError as exc:
                    if not (exc.not_found or exc.mentions("not published", "not in published", "already withdrawn")):
                        raise
            try:
                self.client.delete_inventory_item(item.code)
                already = False
            except ChannelApiError as exc:
                if not exc.not_found:
                    raise
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("withdraw", exc)
        log_event("marketplace.withdrawn", item_id=item.id, already=already)
        return ChannelResult.success("withdraw", already=already)

    def update_quantity(self, item: InventoryItem, new_qty: int) -> ChannelResult:
        if new_qty <= 0:
            return self.withdraw(item)
        try:
            self.client.put_inventory_item(item.code, self._inventory_item_payload(item, new_qty))
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("update_quantity", exc)
        return ChannelResult.success("update_quantity")
