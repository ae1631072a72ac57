from dataclasses import dataclass
from typing import Protocol

from inventory_sync.core.errors import ChannelApiError
from inventory_sync.models.inventory import InventoryItem

OUTCOME_SUCCESS = "success"
OUTCOME_RETRYABLE = "retryable_failure"
OUTCOME_PERMANENT = "permanent_failure"


@dataclass(frozen=True)
class ChannelResult:
    outcome: str
    action: str
    already: bool = False
    listing_ref: str | None = None
    offer_ref: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == OUTCOME_SUCCESS

    @property
    def retryable(self) -> bool:
        return self.outcome == OUTCOME_RETRYABLE

    @classmethod
    def success(cls, action: str, **kwargs) -> "ChannelResult":
        return cls(outcome=OUTCOME_SUCCESS, action=action, **kwargs)

    @classmethod
    def from_error(cls, action: str, exc: Exception) -> "ChannelResult":
        retryable = isinstance(exc, ChannelApiError) and exc.retryable
        return cls(
            outcome=OUTCOME_RETRYABLE if retryable else OUTCOME_PERMANENT,
            action=action,
            error=str(exc),
        )


class ChannelAdapter(Protocol):
    name: str

    def is_configured(self) -> bool:
        ...

    def has_reference(self, item: InventoryItem) -> bool:
        ...

    def publish(self, item: InventoryItem) -> ChannelResult:
        ...

    def withdraw(self, item: InventoryItem) -> ChannelResult:
        ...

    def update_quantity(self, item: InventoryItem, new_qty: int) -> ChannelResult:
        ...


_CHANNEL_ADAPTERS: dict[str, ChannelAdapter] = {}


def register_channel_adapter(adapter: ChannelAdapter) -> None:
    _CHANNEL_ADAPTERS[adapter.name] = adapter


def _ensure_default_adapters() -> None:
    if _CHANNEL_ADAPTERS:
        return
    from inventory_sync.services.marketplace_adapter import MarketplaceChannelAdapter
    from inventory_sync.services.pos_adapter import PosChannelAdapter

    register_channel_adapter(PosChannelAdapter())
    register_channel_adapter(MarketplaceChannelAdapter())


def get_channel_adapters() -> list[ChannelAdapter]:
    _ensure_default_adapters()
    return list(_CHANNEL_ADAPTERS.values())


def get_channel_adapter(name: str) -> ChannelAdapter:
    _ensure_default_adapters()
    normalized = (name or "").strip().lower()
    adapter = _CHANNEL_ADAPTERS.get(normalized)
    if not adapter:
        available = ", ".join(sorted(_CHANNEL_ADAPTERS.keys()))
        raise ValueError(f"Unknown channel '{name}'. Available: {available}")
    return adapter


def reset_channel_adapters(adapters: list[ChannelAdapter] | None = None) -> None:
    _CHANNEL_ADAPTERS.clear()
    for adapter in adapters or []:
        register_channel_adapter(adapter)
