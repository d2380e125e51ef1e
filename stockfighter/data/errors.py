"""Error taxonomy shared by the REST helpers and the streaming session."""

from __future__ import annotations

from typing import Optional


class StockfighterError(Exception):
    """Base class for every failure raised by the client."""


class TransportError(StockfighterError):
    """The HTTP request could not be completed (network, DNS, TLS, 5xx)."""


class RemoteRejected(StockfighterError):
    """A well-formed response whose success indicator was false or missing."""

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message
        super().__init__(message or "request rejected by Stockfighter")


class DecodeError(StockfighterError):
    """A payload that is not valid JSON or does not match the expected shape."""


class StreamTermination(StockfighterError):
    """Reason a streaming session stopped.

    ``fatal`` distinguishes failures from graceful stops; graceful reasons are
    reported on the terminal event without an error.
    """

    fatal = True


class ConnectError(StreamTermination):
    """The WebSocket handshake failed."""


class StreamReadError(StreamTermination):
    """The connection failed or was closed by the remote end mid-stream."""


class ConsumerError(StreamTermination):
    """The event consumer raised while handling an event."""


class IdleTimeout(StreamTermination):
    """No message arrived within the configured idle timeout."""

    fatal = False

    def __init__(self, idle_seconds: float, timeout_seconds: float) -> None:
        self.idle_seconds = idle_seconds
        self.timeout_seconds = timeout_seconds
        super().__init__(f"no messages for {idle_seconds:.1f}s (timeout {timeout_seconds:.1f}s)")


class Cancelled(StreamTermination):
    """The session owner asked the stream to stop."""

    fatal = False

    def __init__(self, message: str = "stream stopped by owner") -> None:
        super().__init__(message)


__all__ = [
    "StockfighterError",
    "TransportError",
    "RemoteRejected",
    "DecodeError",
    "StreamTermination",
    "ConnectError",
    "StreamReadError",
    "ConsumerError",
    "IdleTimeout",
    "Cancelled",
]
