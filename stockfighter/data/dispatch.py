"""Decoding of streamed messages into typed events and delivery to consumers."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Union

from .errors import DecodeError, RemoteRejected, StockfighterError, StreamTermination
from .models import Execution, Quote
from .websocket import Channel

if TYPE_CHECKING:
    from stockfighter.infra.persistence import QuoteStore


@dataclass(frozen=True)
class QuoteEvent:
    quote: Quote


@dataclass(frozen=True)
class ExecutionEvent:
    execution: Execution


@dataclass(frozen=True)
class StreamError:
    """A message that could not be decoded; the stream keeps going."""

    error: StockfighterError
    raw: bytes


@dataclass(frozen=True)
class StreamClosed:
    """Terminal event, delivered exactly once per session."""

    reason: StreamTermination

    @property
    def error(self) -> Optional[StreamTermination]:
        """The failure that ended the stream, or None for a graceful stop."""

        return self.reason if self.reason.fatal else None


StreamEvent = Union[QuoteEvent, ExecutionEvent, StreamError, StreamClosed]
EventConsumer = Callable[[StreamEvent], Optional[Awaitable[None]]]


class EventDispatcher:
    """Turns raw channel payloads into exactly one event each."""

    def __init__(self, channel: Channel) -> None:
        if channel not in ("tickertape", "executions"):
            raise ValueError(f"Unknown stream channel: {channel}")
        self.channel = channel

    def decode(self, raw: Union[bytes, str]) -> Union[QuoteEvent, ExecutionEvent, StreamError]:
        data = raw.encode("utf-8") if isinstance(raw, str) else raw
        try:
            if self.channel == "tickertape":
                return QuoteEvent(Quote.decode_ticker(data))
            return ExecutionEvent(Execution.decode(data))
        except (DecodeError, RemoteRejected) as exc:
            return StreamError(error=exc, raw=data)


async def deliver(consumer: EventConsumer, event: StreamEvent) -> None:
    """Hand ``event`` to ``consumer`` and wait until it has been handled."""

    result = consumer(event)
    if inspect.isawaitable(result):
        await result


class QuoteRecorder:
    """Consumer that records every quote before forwarding events downstream.

    Store writes run in a worker thread; the stream waits for each write, so a
    slow store throttles the socket instead of buffering quotes in memory.
    """

    def __init__(
        self,
        store: QuoteStore,
        downstream: Optional[EventConsumer] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store = store
        self.downstream = downstream
        self.logger = logger or logging.getLogger(__name__)
        self.recorded = 0

    async def __call__(self, event: StreamEvent) -> None:
        if isinstance(event, QuoteEvent):
            await asyncio.to_thread(self.store.save_quote, event.quote)
            self.recorded += 1
            self.logger.debug(
                "Recorded quote for %s on %s",
                event.quote.symbol,
                event.quote.venue,
                extra={"event": "quote_recorded", "recorded": self.recorded},
            )
        if self.downstream is not None:
            await deliver(self.downstream, event)


__all__ = [
    "QuoteEvent",
    "ExecutionEvent",
    "StreamError",
    "StreamClosed",
    "StreamEvent",
    "EventConsumer",
    "EventDispatcher",
    "QuoteRecorder",
    "deliver",
]
