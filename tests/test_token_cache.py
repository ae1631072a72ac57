from inventory_sync.services.token_cache import TokenCache


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_token_is_reused_until_refresh_margin():
    clock = FakeClock()
    issued = iter([("first", 7200), ("second", 7200)])
    cache = TokenCache(lambda: next(issued), margin_seconds=60, clock=clock)

    assert cache.get() == "first"
    clock.now += 7200 - 61
    assert cache.get() == "first"
    clock.now += 2
    assert cache.get() == "second"


def test_invalidate_forces_a_new_token():
    fetches: list[int] = []

    def fetch():
        fetches.append(1)
        return f"token-{len(fetches)}", 3600

    cache = TokenCache(fetch, clock=FakeClock())

    assert cache.get() == "token-1"
    cache.invalidate()
    assert cache.get() == "token-2"
    assert len(fetches) == 2


def test_short_lived_token_is_refreshed_every_call():
    issued = iter([("a", 30), ("b", 30)])
    cache = TokenCache(lambda: next(issued), margin_seconds=60, clock=FakeClock())

    assert cache.get() == "a"
    assert cache.get() == "b"
