"""Streaming session: one WebSocket connection from handshake to teardown.

A session connects once, then runs two tasks side by side. The receive task
reads one message at a time, decodes it and waits for the consumer to handle
it before reading the next. The watchdog task wakes every
``watchdog_interval`` seconds and stops the stream when no message has arrived
for ``idle_timeout`` seconds, or when :meth:`StreamingSession.stop` was
called. Whichever trigger fires first closes the connection; the pending read
then fails and the receive task exits. The consumer always sees exactly one
terminal :class:`StreamClosed` event. There is no reconnection: a closed
session cannot be reused.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .clients import AUTH_HEADER
from .dispatch import EventConsumer, EventDispatcher, StreamClosed, StreamError, StreamEvent, deliver
from .errors import Cancelled, ConnectError, ConsumerError, IdleTimeout, StreamReadError, StreamTermination
from .websocket import StreamSubscription


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    DRAINING = "draining"
    CLOSED = "closed"


class StreamingSession:
    """Owns a single streaming connection and feeds decoded events to a consumer."""

    def __init__(
        self,
        subscription: StreamSubscription,
        on_event: EventConsumer,
        api_key: Optional[str] = None,
        idle_timeout: float = 10.0,
        watchdog_interval: float = 1.0,
        open_timeout: Optional[float] = 10.0,
        connect: Optional[Callable[..., Any]] = None,
        metrics_callback: Optional[Callable[[str, Dict[str, float]], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        if idle_timeout <= 0 or watchdog_interval <= 0:
            raise ValueError("idle_timeout and watchdog_interval must be positive")
        self.subscription = subscription
        self.on_event = on_event
        self.api_key = api_key
        self.idle_timeout = idle_timeout
        self.watchdog_interval = watchdog_interval
        self.open_timeout = open_timeout
        self.metrics_callback = metrics_callback
        self.logger = logger or logging.getLogger(__name__)
        self.dispatcher = EventDispatcher(subscription.channel)

        self._connect = connect or websockets.connect
        self._state = SessionState.CONNECTING
        self._started = False
        self._connection: Any = None
        self._stop_requested = asyncio.Event()
        self._termination: Optional[StreamTermination] = None
        self._close_started = False
        self._last_activity = 0.0
        self._messages = 0

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def messages_received(self) -> int:
        return self._messages

    def stop(self) -> None:
        """Ask the session to stop; safe to call from signal handlers and other tasks."""

        self._stop_requested.set()

    async def run(self) -> StreamClosed:
        """Stream until termination and return the terminal event.

        The terminal event is also delivered to the consumer. Cancelling the
        task running this coroutine stops the stream gracefully, delivers the
        terminal event, then propagates the cancellation.
        """

        if self._started:
            raise RuntimeError("StreamingSession cannot be reused; create a new session")
        self._started = True

        url = self.subscription.url()
        extra = {"topic": self.subscription.topic(), "url": url}
        try:
            self._connection = await self._open(url)
        except asyncio.CancelledError:
            self._termination = Cancelled("stream task cancelled while connecting")
            await self._finish()
            raise
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self.logger.error("Failed to connect to %s: %s", url, exc, extra={"event": "stream_connect_failed", **extra})
            failure = ConnectError(f"could not connect to {url}: {exc}")
            failure.__cause__ = exc
            self._termination = failure
            return await self._finish()

        loop = asyncio.get_running_loop()
        self._last_activity = loop.time()
        self._state = SessionState.OPEN
        self.logger.info("Stream open for %s", self.subscription.topic(), extra={"event": "stream_open", **extra})
        self._emit_metrics("stream_open", {"idle_timeout_seconds": self.idle_timeout})

        receiver = asyncio.create_task(self._receive_loop())
        watchdog = asyncio.create_task(self._watchdog())
        try:
            await receiver
        except asyncio.CancelledError:
            await self._drain(Cancelled("stream task cancelled"))
            receiver.cancel()
            await asyncio.gather(receiver, return_exceptions=True)
            await self._stop_watchdog(watchdog)
            await self._finish()
            raise
        except Exception as exc:
            self.logger.error(
                "Event handling failed on %s: %s",
                self.subscription.topic(),
                exc,
                exc_info=True,
                extra={"event": "stream_consumer_failed", "topic": self.subscription.topic()},
            )
            failure = ConsumerError(f"event handling failed: {exc}")
            failure.__cause__ = exc
            await self._drain(failure)
        await self._stop_watchdog(watchdog)
        return await self._finish()

    async def _open(self, url: str) -> Any:
        headers = {AUTH_HEADER: self.api_key} if self.api_key else {}
        return await asyncio.wait_for(
            self._connect(url, additional_headers=headers),
            timeout=self.open_timeout,
        )

    async def _receive_loop(self) -> None:
        loop = asyncio.get_running_loop()
        while self._termination is None:
            try:
                raw = await self._connection.recv()
            except (ConnectionClosed, OSError) as exc:
                if self._termination is None:
                    self.logger.warning(
                        "Stream read failed for %s: %s",
                        self.subscription.topic(),
                        exc,
                        extra={"event": "stream_read_error", "topic": self.subscription.topic()},
                    )
                    failure = StreamReadError(f"read failed: {exc}")
                    failure.__cause__ = exc
                    await self._drain(failure)
                return

            # any traffic counts as liveness, even if it fails to decode
            self._last_activity = loop.time()
            self._messages += 1
            event = self.dispatcher.decode(raw)
            self._emit_metrics("stream_message", {"messages": float(self._messages)})
            if isinstance(event, StreamError):
                self.logger.warning(
                    "Undecodable message on %s: %s",
                    self.subscription.topic(),
                    event.error,
                    extra={"event": "stream_decode_error", "topic": self.subscription.topic()},
                )
                self._emit_metrics("stream_decode_error", {"messages": float(self._messages)})
            await self._deliver(event)

    async def _watchdog(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout=self.watchdog_interval)
            except asyncio.TimeoutError:
                idle = loop.time() - self._last_activity
                if idle > self.idle_timeout:
                    self.logger.info(
                        "No messages on %s for %.1fs, closing",
                        self.subscription.topic(),
                        idle,
                        extra={"event": "stream_idle_timeout", "idle_seconds": idle},
                    )
                    await self._drain(IdleTimeout(idle, self.idle_timeout))
                    return
                continue
            await self._drain(Cancelled())
            return

    async def _drain(self, reason: StreamTermination) -> None:
        """Record the first termination reason and close the connection once."""

        if self._termination is None:
            self._termination = reason
        if self._close_started:
            return
        self._close_started = True
        self._state = SessionState.DRAINING
        try:
            await self._connection.close()
        except (OSError, WebSocketException) as exc:
            self.logger.warning("Error while closing stream: %s", exc, extra={"event": "stream_close_error"})

    async def _stop_watchdog(self, watchdog: "asyncio.Task[None]") -> None:
        if not watchdog.done():
            watchdog.cancel()
        await asyncio.gather(watchdog, return_exceptions=True)

    async def _finish(self) -> StreamClosed:
        self._state = SessionState.CLOSED
        reason = self._termination or Cancelled()
        closed = StreamClosed(reason)
        self.logger.info(
            "Stream closed for %s: %s",
            self.subscription.topic(),
            reason,
            extra={
                "event": "stream_closed",
                "topic": self.subscription.topic(),
                "reason": type(reason).__name__,
                "fatal": reason.fatal,
                "messages": self._messages,
            },
        )
        self._emit_metrics("stream_closed", {"messages": float(self._messages), "fatal": float(reason.fatal)})
        await self._deliver(closed)
        return closed

    async def _deliver(self, event: StreamEvent) -> None:
        await deliver(self.on_event, event)

    def _emit_metrics(self, name: str, values: Dict[str, float]) -> None:
        if not self.metrics_callback:
            return
        try:
            self.metrics_callback(name, values)
        except Exception as exc:  # pragma: no cover - external callback safety
            self.logger.debug("Metric callback failed for %s: %s", name, exc)


__all__ = ["SessionState", "StreamingSession"]
