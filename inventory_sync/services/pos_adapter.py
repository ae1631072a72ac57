from datetime import datetime, timezone

from inventory_sync.core.config import settings
from inventory_sync.core.errors import ChannelApiError, ChannelNotConfiguredError
from inventory_sync.core.id_utils import generate_idempotency_key
from inventory_sync.core.money import money_to_cents
from inventory_sync.core.observability import log_event
from inventory_sync.models.inventory import InventoryItem
from inventory_sync.services.channel_adapters import OUTCOME_PERMANENT, ChannelResult
from inventory_sync.services.pos_client import PosClient

CHANNEL_ERRORS = (ChannelApiError, ChannelNotConfiguredError)


def _variation_ref(item: InventoryItem) -> str | None:
    return item.pos_variation_ref or item.pos_catalog_ref


class PosChannelAdapter:
    name = "pos"

    def __init__(self, client: PosClient | None = None):
        self._client = client

    @property
    def client(self) -> PosClient:
        if self._client is None:
            self._client = PosClient()
        return self._client

    def is_configured(self) -> bool:
        return self.client.is_configured()

    def has_reference(self, item: InventoryItem) -> bool:
        return bool(item.pos_item_ref or item.pos_variation_ref or item.pos_catalog_ref)

    def publish(self, item: InventoryItem) -> ChannelResult:
        try:
            version = None
            if item.pos_item_ref:
                try:
                    existing = self.client.retrieve_catalog_object(item.pos_item_ref, include_related=False)
                    version = (existing.get("object") or {}).get("version")
                except ChannelApiError as exc:
                    if not exc.not_found:
                        raise
            payload = self.client.upsert_catalog_object(
                self._catalog_item(item, version=version),
                idempotency_key=generate_idempotency_key(item.id, item.code, str(version or 0)),
            )
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("publish", exc)

        obj = payload.get("catalog_object") or {}
        variations = (obj.get("item_data") or {}).get("variations") or []
        variation_id = variations[0].get("id") if variations else None
        if obj.get("id"):
            item.pos_item_ref = obj["id"]
        if variation_id:
            item.pos_variation_ref = variation_id
        log_event("pos.published", item_id=item.id, pos_item_ref=item.pos_item_ref)
        return ChannelResult.success("publish", listing_ref=item.pos_item_ref, offer_ref=item.pos_variation_ref)

    def _catalog_item(self, item: InventoryItem, *, version: int | None) -> dict:
        amount = money_to_cents(item.price)
        variation: dict = {
            "type": "ITEM_VARIATION",
            "id": _variation_ref(item) or f"#variation-{item.code}",
            "item_variation_data": {
                "name": "Regular",
                "sku": item.code,
                "pricing_type": "FIXED_PRICING",
                "price_money": {"amount": amount, "currency": settings.pos_currency},
                "track_inventory": True,
            },
        }
        catalog_item: dict = {
            "type": "ITEM",
            "id": item.pos_item_ref or f"#item-{item.code}",
            "item_data": {
                "name": item.name,
                "variations": [variation],
            },
        }
        if version is not None:
            catalog_item["version"] = version
        return catalog_item

    def withdraw(self, item: InventoryItem) -> ChannelResult:
        """
        Delete the variation, then the parent item, then fall back to archiving the item.
        A retryable error stops the chain; a rejection moves on to the next step.
        """
        variation_id = _variation_ref(item)
        try:
            if variation_id:
                try:
                    self.client.delete_catalog_object(variation_id)
                    log_event("pos.variation_deleted", item_id=item.id, variation_id=variation_id)
                    return ChannelResult.success("withdraw")
                except ChannelApiError as exc:
                    if exc.retryable:
                        raise
                    if exc.not_found:
                        return ChannelResult.success("withdraw", already=True)
                    log_event("pos.variation_delete_rejected", item_id=item.id, error=str(exc))

            parent_id = item.pos_item_ref or (self._parent_of(variation_id) if variation_id else None)
            if not parent_id:
                return ChannelResult(outcome=OUTCOME_PERMANENT, action="withdraw", error="No parent item to remove")

            try:
                self.client.delete_catalog_object(parent_id)
                log_event("pos.item_deleted", item_id=item.id, pos_item_ref=parent_id)
                return ChannelResult.success("withdraw")
            except ChannelApiError as exc:
                if exc.retryable:
                    raise
                if exc.not_found:
                    return ChannelResult.success("withdraw", already=True)
                log_event("pos.item_delete_rejected", item_id=item.id, error=str(exc))

            self._archive(parent_id)
            log_event("pos.item_archived", item_id=item.id, pos_item_ref=parent_id)
            return ChannelResult.success("withdraw")
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("withdraw", exc)

    def _parent_of(self, variation_id: str) -> str | None:
        try:
            return self.client.parent_item_id(variation_id)
        except ChannelApiError as exc:
            if exc.retryable:
                raise
            return None

    def _archive(self, item_id: str) -> None:
        payload = self.client.retrieve_catalog_object(item_id, include_related=False)
        obj = payload.get("object") or {}
        item_data = dict(obj.get("item_data") or {})
        item_data["is_archived"] = True
        self.client.upsert_catalog_object(
            {
                "type": "ITEM",
                "id": item_id,
                "version": obj.get("version"),
                "item_data": item_data,
            },
            idempotency_key=generate_idempotency_key(),
        )

    def update_quantity(self, item: InventoryItem, new_qty: int) -> ChannelResult:
        if new_qty <= 0:
            return self.withdraw(item)
        variation_id = _variation_ref(item)
        if not variation_id:
            return ChannelResult(outcome=OUTCOME_PERMANENT, action="update_quantity", error="Item has no POS variation")
        occurred_at = datetime.now(timezone.utc)
        try:
            self.client.set_inventory_count(
                variation_id,
                new_qty,
                idempotency_key=generate_idempotency_key(item.id, str(new_qty), occurred_at.isoformat()),
                occurred_at=occurred_at,
            )
        except CHANNEL_ERRORS as exc:
            return ChannelResult.from_error("update_quantity", exc)
        return ChannelResult.success("update_quantity")
