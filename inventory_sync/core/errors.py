class InventorySyncError(Exception):
    """Base class for domain errors raised by the reconciliation core."""


class ItemNotFoundError(InventorySyncError):
    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item '{item_id}' not found")


class LedgerUnavailableError(InventorySyncError):
    """The ledger could not durably record a sale. Callers should ask the sender to retry."""


class LifecycleTransitionError(InventorySyncError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Illegal lifecycle transition '{current}' -> '{target}'")


class ListingTransitionError(InventorySyncError):
    def __init__(self, channel: str, current: str, target: str):
        self.channel = channel
        self.current = current
        self.target = target
        super().__init__(f"Illegal {channel} listing transition '{current}' -> '{target}'")


class ChannelNotConfiguredError(InventorySyncError):
    def __init__(self, channel: str):
        self.channel = channel
        super().__init__(f"Channel '{channel}' is not configured")


class ChannelApiError(InventorySyncError):
    """Raised by the HTTP clients; adapters turn it into a ChannelResult."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool = False,
        body: object | None = None,
    ):
        self.status_code = status_code
        self.retryable = retryable
        self.body = body
        super().__init__(message)

    @property
    def not_found(self) -> bool:
        return self.status_code == 404

    def mentions(self, *fragments: str) -> bool:
        text = f"{self} {self.body or ''}".lower()
        return any(fragment.lower() in text for fragment in fragments)
