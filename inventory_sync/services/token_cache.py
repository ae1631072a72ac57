import time
from collections.abc import Callable
from dataclasses import dataclass

REFRESH_MARGIN_SECONDS = 60


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_at: float


class TokenCache:
    """
    Holds one bearer token and refreshes it shortly before expiry.

    There is no lock: two callers racing past expiry both refresh and the
    last one wins, which the token endpoint tolerates.
    """

    def __init__(
        self,
        fetch: Callable[[], tuple[str, int]],
        *,
        margin_seconds: int = REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._fetch = fetch
        self._margin = margin_seconds
        self._clock = clock
        self._token: AccessToken | None = None

    def get(self) -> str:
        token = self._token
        if token is not None and self._clock() < token.expires_at - self._margin:
            return token.value
        value, expires_in = self._fetch()
        self._token = AccessToken(value=value, expires_at=self._clock() + int(expires_in))
        return value

    def invalidate(self) -> None:
        self._token = None
