"""REST and streaming access to the Stockfighter API."""

from .clients import VenueEndpoint, WireClient
from .dispatch import (
    EventDispatcher,
    ExecutionEvent,
    QuoteEvent,
    QuoteRecorder,
    StreamClosed,
    StreamError,
    StreamEvent,
)
from .errors import (
    Cancelled,
    ConnectError,
    ConsumerError,
    DecodeError,
    IdleTimeout,
    RemoteRejected,
    StockfighterError,
    StreamReadError,
    StreamTermination,
    TransportError,
)
from .gamemaster import GameMaster
from .models import Execution, ExecutedOrder, Fill, Instance, LevelInfo, Order, OrderBook, PriceLevel, Quote, Stock
from .session import SessionState, StreamingSession
from .venue import Venue, api_up
from .websocket import StreamSubscription

__all__ = [
    "VenueEndpoint",
    "WireClient",
    "EventDispatcher",
    "ExecutionEvent",
    "QuoteEvent",
    "QuoteRecorder",
    "StreamClosed",
    "StreamError",
    "StreamEvent",
    "Cancelled",
    "ConnectError",
    "ConsumerError",
    "DecodeError",
    "IdleTimeout",
    "RemoteRejected",
    "StockfighterError",
    "StreamReadError",
    "StreamTermination",
    "TransportError",
    "GameMaster",
    "Execution",
    "ExecutedOrder",
    "Fill",
    "Instance",
    "LevelInfo",
    "Order",
    "OrderBook",
    "PriceLevel",
    "Quote",
    "Stock",
    "SessionState",
    "StreamingSession",
    "Venue",
    "api_up",
    "StreamSubscription",
]
