"""WebSocket subscription descriptors for streaming venue data."""

from dataclasses import dataclass
from typing import Literal, Optional
from urllib.parse import quote

Channel = Literal["tickertape", "executions"]

DEFAULT_WEBSOCKET_URL = "wss://api.stockfighter.io/ob/api/ws"


@dataclass(frozen=True)
class StreamSubscription:
    """One streaming endpoint: a channel scoped to an account and a venue."""

    channel: Channel
    account: str
    venue: str
    stock: Optional[str] = None
    base_url: str = DEFAULT_WEBSOCKET_URL

    def url(self) -> str:
        """Return the WebSocket URL for the channel, account and venue."""

        parts = [self.base_url.rstrip("/"), _seg(self.account), "venues", _seg(self.venue), self.channel]
        if self.stock:
            parts += ["stocks", _seg(self.stock)]
        return "/".join(parts)

    def topic(self) -> str:
        """Short label used in logs and metrics."""

        scope = f"{self.venue}:{self.stock}" if self.stock else self.venue
        return f"{self.channel}:{scope}"


def _seg(value: str) -> str:
    return quote(value, safe="")
