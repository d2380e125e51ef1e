import asyncio
import json
import unittest
from typing import List, Optional

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidURI

from stockfighter.data.clients import AUTH_HEADER
from stockfighter.data.dispatch import ExecutionEvent, QuoteEvent, QuoteRecorder, StreamClosed, StreamError
from stockfighter.data.errors import Cancelled, ConnectError, ConsumerError, DecodeError, IdleTimeout, StreamReadError
from stockfighter.data.session import SessionState, StreamingSession
from stockfighter.data.websocket import StreamSubscription
from stockfighter.infra.metrics import MetricsSink

_CLOSED = object()
_BROKEN = object()


def tick(bid: int) -> str:
    return json.dumps(
        {
            "ok": True,
            "quote": {"symbol": "FOOBAR", "venue": "TESTEX", "bid": bid, "quoteTime": "2015-12-04T09:02:16Z"},
        }
    )


class FakeConnection:
    """In-memory stand-in for a websockets client connection.

    ``close()`` unblocks a pending ``recv()`` the way a real socket close does.
    """

    def __init__(self, messages=(), broken: bool = False, log: Optional[list] = None) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        for message in messages:
            self._queue.put_nowait(message)
        if broken:
            self._queue.put_nowait(_BROKEN)
        self.close_calls = 0
        self.log = log if log is not None else []

    async def recv(self):
        self.log.append("recv")
        item = await self._queue.get()
        if item is _CLOSED:
            raise ConnectionClosedOK(None, None)
        if item is _BROKEN:
            raise ConnectionClosedError(None, None)
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self._queue.put_nowait(_CLOSED)


class FakeConnector:
    def __init__(self, connection: Optional[FakeConnection] = None, error: Optional[Exception] = None) -> None:
        self.connection = connection
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.connection


SUBSCRIPTION = StreamSubscription(
    channel="tickertape",
    account="EXB123456",
    venue="TESTEX",
    base_url="wss://api.example.test/ob/api/ws",
)


class StreamingSessionTest(unittest.IsolatedAsyncioTestCase):
    def make_session(self, connection, consumer=None, **kwargs) -> StreamingSession:
        self.events: list = []
        self.connector = FakeConnector(connection) if isinstance(connection, FakeConnection) else connection
        kwargs.setdefault("idle_timeout", 5.0)
        kwargs.setdefault("watchdog_interval", 0.01)
        return StreamingSession(
            SUBSCRIPTION,
            consumer or self.events.append,
            connect=self.connector,
            **kwargs,
        )

    async def test_messages_then_read_error(self) -> None:
        connection = FakeConnection([tick(5100), tick(5101), tick(5102)], broken=True)
        session = self.make_session(connection)

        closed = await asyncio.wait_for(session.run(), timeout=2)

        self.assertEqual(4, len(self.events))
        self.assertEqual([5100, 5101, 5102], [event.quote.bid for event in self.events[:3]])
        self.assertIs(closed, self.events[-1])
        self.assertIsInstance(closed.reason, StreamReadError)
        self.assertIs(closed.reason, closed.error)
        self.assertEqual(1, connection.close_calls)
        self.assertEqual(SessionState.CLOSED, session.state)
        self.assertEqual(3, session.messages_received)

    async def test_idle_timeout_closes_gracefully_once(self) -> None:
        connection = FakeConnection()
        session = self.make_session(connection, idle_timeout=0.05)

        closed = await asyncio.wait_for(session.run(), timeout=2)

        self.assertEqual([closed], self.events)
        self.assertIsInstance(closed.reason, IdleTimeout)
        self.assertIsNone(closed.error)
        self.assertGreater(closed.reason.idle_seconds, 0.05)
        self.assertEqual(1, connection.close_calls)

    async def test_malformed_message_does_not_end_stream(self) -> None:
        connection = FakeConnection([tick(5100), "{not json", tick(5101)], broken=True)
        session = self.make_session(connection)

        await asyncio.wait_for(session.run(), timeout=2)

        kinds = [type(event) for event in self.events]
        self.assertEqual([QuoteEvent, StreamError, QuoteEvent, StreamClosed], kinds)
        self.assertIsInstance(self.events[1].error, DecodeError)
        self.assertEqual(b"{not json", self.events[1].raw)

    async def test_undecodable_traffic_counts_as_activity(self) -> None:
        log: list = []
        connection = FakeConnection(log=log)
        session = self.make_session(connection, idle_timeout=0.15)

        async def feed() -> None:
            for _ in range(4):
                await asyncio.sleep(0.05)
                connection._queue.put_nowait("garbage")

        feeder = asyncio.create_task(feed())
        closed = await asyncio.wait_for(session.run(), timeout=3)
        await feeder

        self.assertIsInstance(closed.reason, IdleTimeout)
        self.assertEqual(4, sum(isinstance(event, StreamError) for event in self.events))

    async def test_stop_is_graceful(self) -> None:
        connection = FakeConnection([tick(5100)])
        session = None

        def consumer(event) -> None:
            self.events.append(event)
            if isinstance(event, QuoteEvent):
                session.stop()

        session = self.make_session(connection, consumer=consumer)
        closed = await asyncio.wait_for(session.run(), timeout=2)

        self.assertEqual([QuoteEvent, StreamClosed], [type(event) for event in self.events])
        self.assertIsInstance(closed.reason, Cancelled)
        self.assertIsNone(closed.error)
        self.assertEqual(1, connection.close_calls)

    async def test_cancelling_the_task_delivers_terminal_event(self) -> None:
        connection = FakeConnection([tick(5100)])
        first = asyncio.Event()

        def consumer(event) -> None:
            self.events.append(event)
            first.set()

        session = self.make_session(connection, consumer=consumer)
        task = asyncio.create_task(session.run())
        await asyncio.wait_for(first.wait(), timeout=2)
        task.cancel()

        with self.assertRaises(asyncio.CancelledError):
            await task

        self.assertIsInstance(self.events[-1], StreamClosed)
        self.assertIsInstance(self.events[-1].reason, Cancelled)
        self.assertEqual(1, connection.close_calls)
        self.assertEqual(SessionState.CLOSED, session.state)

    async def test_slow_consumer_throttles_reads(self) -> None:
        log: list = []
        connection = FakeConnection([tick(1), tick(2)], broken=True, log=log)

        async def consumer(event) -> None:
            log.append("start")
            await asyncio.sleep(0.02)
            log.append("end")

        session = self.make_session(connection, consumer=consumer)
        await asyncio.wait_for(session.run(), timeout=2)

        # two quotes, then the read error, then the terminal event
        self.assertEqual(["recv", "start", "end", "recv", "start", "end", "recv", "start", "end"], log)

    async def test_failing_consumer_closes_the_stream(self) -> None:
        connection = FakeConnection([tick(5100), tick(5101)])

        def consumer(event) -> None:
            self.events.append(event)
            if isinstance(event, QuoteEvent):
                raise RuntimeError("sink failed")

        session = self.make_session(connection, consumer=consumer)
        closed = await asyncio.wait_for(session.run(), timeout=2)

        self.assertEqual([QuoteEvent, StreamClosed], [type(event) for event in self.events])
        self.assertIsInstance(closed.reason, ConsumerError)
        self.assertIs(closed.reason, closed.error)
        self.assertIsInstance(closed.reason.__cause__, RuntimeError)
        self.assertEqual(1, connection.close_calls)
        self.assertEqual(SessionState.CLOSED, session.state)
        leftover = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
        self.assertEqual([], leftover)

    async def test_failing_quote_store_closes_the_stream(self) -> None:
        class BrokenStore:
            def save_quote(self, quote) -> None:
                raise OSError("disk full")

        connection = FakeConnection([tick(5100)])
        self.events = []
        recorder = QuoteRecorder(BrokenStore(), downstream=self.events.append)
        session = StreamingSession(SUBSCRIPTION, recorder, connect=FakeConnector(connection), watchdog_interval=0.01)

        closed = await asyncio.wait_for(session.run(), timeout=2)

        self.assertIsInstance(closed.error, ConsumerError)
        self.assertIsInstance(closed.error.__cause__, OSError)
        self.assertEqual([closed], self.events)
        self.assertEqual(1, connection.close_calls)

    async def test_connect_failure_is_fatal(self) -> None:
        connector = FakeConnector(error=OSError("connection refused"))
        session = self.make_session(connector)

        closed = await session.run()

        self.assertEqual([closed], self.events)
        self.assertIsInstance(closed.reason, ConnectError)
        self.assertIs(closed.reason, closed.error)
        self.assertEqual(SessionState.CLOSED, session.state)

    async def test_handshake_error_is_connect_error(self) -> None:
        session = self.make_session(FakeConnector(error=InvalidURI("nope", "not a websocket URI")))
        closed = await session.run()
        self.assertIsInstance(closed.error, ConnectError)

    async def test_session_is_not_reusable(self) -> None:
        session = self.make_session(FakeConnection(broken=True))
        await session.run()
        with self.assertRaises(RuntimeError):
            await session.run()

    async def test_credential_header_on_handshake(self) -> None:
        connection = FakeConnection(broken=True)
        session = self.make_session(connection, api_key="secret-key")
        await session.run()

        url, kwargs = self.connector.calls[0]
        self.assertEqual("wss://api.example.test/ob/api/ws/EXB123456/venues/TESTEX/tickertape", url)
        self.assertEqual({AUTH_HEADER: "secret-key"}, kwargs["additional_headers"])

    async def test_execution_channel(self) -> None:
        execution = {
            "ok": True,
            "account": "EXB123456",
            "venue": "TESTEX",
            "symbol": "FOOBAR",
            "order": [],
            "standingId": 1,
            "incomingId": 2,
            "price": 5100,
            "filled": 3,
            "filledAt": "2015-12-04T09:02:16Z",
            "standingComplete": False,
            "incomingComplete": True,
        }
        connection = FakeConnection([json.dumps(execution)], broken=True)
        self.events = []
        session = StreamingSession(
            StreamSubscription(channel="executions", account="EXB123456", venue="TESTEX"),
            self.events.append,
            connect=FakeConnector(connection),
        )
        await asyncio.wait_for(session.run(), timeout=2)

        self.assertIsInstance(self.events[0], ExecutionEvent)
        self.assertEqual(3, self.events[0].execution.filled)

    async def test_metrics_callback(self) -> None:
        sink = MetricsSink()
        connection = FakeConnection([tick(1), "bad", tick(2)], broken=True)
        session = self.make_session(connection, metrics_callback=sink.observe)

        await asyncio.wait_for(session.run(), timeout=2)

        metrics = sink.export()
        self.assertEqual(1, metrics["stream_open_total"])
        self.assertEqual(3, metrics["stream_message_total"])
        self.assertEqual(1, metrics["stream_decode_error_total"])
        self.assertEqual(1, metrics["stream_closed_total"])
        self.assertEqual(1.0, metrics["stream_closed_fatal"])

    def test_rejects_non_positive_timeouts(self) -> None:
        with self.assertRaises(ValueError):
            StreamingSession(SUBSCRIPTION, print, idle_timeout=0)


if __name__ == "__main__":
    unittest.main()
