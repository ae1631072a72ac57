import shortuuid


def generate_shortuuid() -> str:
    return shortuuid.uuid()


def generate_idempotency_key(*parts: str) -> str:
    """Stable key for upserts that must be repeatable; random when no parts are given."""
    if not parts:
        return shortuuid.uuid()
    return shortuuid.uuid(name=":".join(parts))
