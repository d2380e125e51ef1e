"""Typed Stockfighter records and their strict wire decoders.

Every price and quantity is an integer: prices are cents and quantities are
share counts. Timestamps decode into timezone-aware UTC datetimes. Decoders
fail closed: any shape mismatch raises :class:`DecodeError` and a response
whose ``ok`` flag is false or missing raises :class:`RemoteRejected`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Type, TypeVar

from .errors import DecodeError, RemoteRejected

Direction = Literal["buy", "sell"]
OrderType = Literal["limit", "market", "fill-or-kill", "immediate-or-cancel"]

DIRECTIONS = ("buy", "sell")
ORDER_TYPES = ("limit", "market", "fill-or-kill", "immediate-or-cancel")

_FRACTION = re.compile(r"(\.\d{6})\d+")
_MISSING = object()

T = TypeVar("T")


# --- Decoding helpers ------------------------------------------------------
def parse_json(raw: bytes | str) -> Dict[str, Any]:
    """Parse ``raw`` into a JSON object or raise :class:`DecodeError`."""

    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid JSON payload: {exc}") from exc
    except RecursionError as exc:
        raise DecodeError("JSON payload is nested too deeply") from exc
    if not isinstance(payload, dict):
        raise DecodeError(f"expected a JSON object, got {type(payload).__name__}")
    return payload


def check_ok(payload: Mapping[str, Any]) -> None:
    """Raise :class:`RemoteRejected` unless the payload reports success."""

    ok = payload.get("ok")
    if ok is True or (isinstance(ok, str) and ok.lower() == "true"):
        return
    error = payload.get("error")
    raise RemoteRejected(str(error) if error is not None else None)


def decode_response(raw: bytes | str) -> Dict[str, Any]:
    """Parse a service response and enforce its success indicator."""

    payload = parse_json(raw)
    check_ok(payload)
    return payload


def _field(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> Any:
    if key in payload and payload[key] is not None:
        return payload[key]
    if default is _MISSING:
        raise DecodeError(f"missing required field '{key}'")
    return default


def _as(payload: Mapping[str, Any], key: str, kind: Type[T], default: Any = _MISSING) -> T:
    value = _field(payload, key, default)
    if value is default and default is not _MISSING:
        return value
    # bool is a subclass of int; the service never encodes numbers as booleans
    if kind is int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError(f"field '{key}' must be an integer, got {value!r}")
        if isinstance(value, float):
            if not value.is_integer():
                raise DecodeError(f"field '{key}' must be an integer, got {value!r}")
            value = int(value)
        return value  # type: ignore[return-value]
    if not isinstance(value, kind):
        raise DecodeError(f"field '{key}' must be {kind.__name__}, got {value!r}")
    return value


def _str(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> str:
    return _as(payload, key, str, default)


def _int(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> int:
    return _as(payload, key, int, default)


def _bool(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> bool:
    return _as(payload, key, bool, default)


def _obj(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return _as(payload, key, dict)


def _list(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> List[Any]:
    return _as(payload, key, list, default)


def _choice(payload: Mapping[str, Any], key: str, choices: Tuple[str, ...]) -> str:
    value = _str(payload, key)
    if value not in choices:
        raise DecodeError(f"field '{key}' must be one of {', '.join(choices)}, got {value!r}")
    return value


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp, truncating sub-microsecond precision."""

    text = _FRACTION.sub(r"\1", value.strip()).replace("Z", "+00:00")
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise DecodeError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _ts(payload: Mapping[str, Any], key: str, default: Any = _MISSING) -> Optional[datetime]:
    value = _as(payload, key, str, default)
    if value is default and default is not _MISSING:
        return value
    return parse_timestamp(value)


def _records(payload: Mapping[str, Any], key: str, decoder: Any) -> Tuple[Any, ...]:
    items = _list(payload, key, [])
    decoded = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise DecodeError(f"'{key}[{index}]' must be an object, got {item!r}")
        decoded.append(decoder(item))
    return tuple(decoded)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


# --- Orders ----------------------------------------------------------------
@dataclass(frozen=True)
class Order:
    """An order as submitted to a venue.

    ``id`` stays ``None`` until the venue accepts the order; use
    :meth:`with_id` to derive the accepted order.
    """

    account: str
    venue: str
    stock: str
    price: int
    qty: int
    direction: Direction
    order_type: OrderType = "limit"
    id: Optional[int] = None

    def with_id(self, order_id: int) -> "Order":
        return replace(self, id=order_id)

    def to_payload(self) -> Dict[str, Any]:
        """Return the JSON body expected by the order endpoint."""

        return {
            "account": self.account,
            "venue": self.venue,
            "stock": self.stock,
            "price": self.price,
            "qty": self.qty,
            "direction": self.direction,
            "orderType": self.order_type,
        }

    def encode(self) -> bytes:
        return json.dumps(self.to_payload()).encode("utf-8")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Order":
        return cls(
            account=_str(payload, "account"),
            venue=_str(payload, "venue"),
            stock=_str(payload, "stock"),
            price=_int(payload, "price"),
            qty=_int(payload, "qty"),
            direction=_choice(payload, "direction", DIRECTIONS),  # type: ignore[arg-type]
            order_type=_choice(payload, "orderType", ORDER_TYPES),  # type: ignore[arg-type]
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "Order":
        """Decode an order request body (client-originated, no ``ok`` flag)."""

        return cls.from_payload(parse_json(raw))


@dataclass(frozen=True)
class Fill:
    """A single (partial) fill of an order."""

    price: int
    qty: int
    ts: datetime

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Fill":
        return cls(price=_int(payload, "price"), qty=_int(payload, "qty"), ts=_ts(payload, "ts"))


@dataclass(frozen=True)
class ExecutedOrder:
    """Server-side state of one order at the time it was fetched."""

    id: int
    account: str
    venue: str
    symbol: str
    direction: Direction
    order_type: OrderType
    price: int
    original_qty: int
    qty: int
    total_filled: int
    open: bool
    ts: Optional[datetime] = None
    fills: Tuple[Fill, ...] = ()

    @property
    def filled_qty(self) -> int:
        """Sum of the quantities of all fills reported so far."""

        return sum(fill.qty for fill in self.fills)

    def as_order(self) -> Order:
        """Return the accepted :class:`Order` this state describes."""

        return Order(
            account=self.account,
            venue=self.venue,
            stock=self.symbol,
            price=self.price,
            qty=self.original_qty,
            direction=self.direction,
            order_type=self.order_type,
            id=self.id,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ExecutedOrder":
        return cls(
            id=_int(payload, "id"),
            account=_str(payload, "account"),
            venue=_str(payload, "venue"),
            symbol=_str(payload, "symbol"),
            direction=_choice(payload, "direction", DIRECTIONS),  # type: ignore[arg-type]
            order_type=_choice(payload, "orderType", ORDER_TYPES),  # type: ignore[arg-type]
            price=_int(payload, "price", 0),
            original_qty=_int(payload, "originalQty"),
            qty=_int(payload, "qty"),
            total_filled=_int(payload, "totalFilled", 0),
            open=_bool(payload, "open"),
            ts=_ts(payload, "ts", None),
            fills=_records(payload, "fills", Fill.from_payload),
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "ExecutedOrder":
        return cls.from_payload(decode_response(raw))


# --- Venue data ------------------------------------------------------------
@dataclass(frozen=True)
class Stock:
    symbol: str
    name: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Stock":
        return cls(symbol=_str(payload, "symbol"), name=_str(payload, "name", ""))


def decode_stocks(raw: bytes | str) -> List[Stock]:
    """Decode the stock listing of a venue."""

    payload = decode_response(raw)
    return list(_records(payload, "symbols", Stock.from_payload))


def decode_heartbeat(raw: bytes | str) -> bool:
    """Return True when a heartbeat response reports the venue as up."""

    decode_response(raw)
    return True


@dataclass(frozen=True)
class PriceLevel:
    """One resting bid or ask in an order book snapshot."""

    price: int
    qty: int
    is_buy: bool

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PriceLevel":
        return cls(
            price=_int(payload, "price"),
            qty=_int(payload, "qty"),
            is_buy=_bool(payload, "isBuy"),
        )


@dataclass(frozen=True)
class OrderBook:
    """Point-in-time snapshot of a stock's book; each fetch replaces the last."""

    venue: str
    symbol: str
    bids: Tuple[PriceLevel, ...]
    asks: Tuple[PriceLevel, ...]
    ts: datetime

    @property
    def best_bid(self) -> Optional[PriceLevel]:
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> Optional[PriceLevel]:
        return self.asks[0] if self.asks else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OrderBook":
        return cls(
            venue=_str(payload, "venue"),
            symbol=_str(payload, "symbol"),
            bids=_records(payload, "bids", PriceLevel.from_payload),
            asks=_records(payload, "asks", PriceLevel.from_payload),
            ts=_ts(payload, "ts"),
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "OrderBook":
        return cls.from_payload(decode_response(raw))


@dataclass(frozen=True)
class Quote:
    """Top of book plus last trade, as served by the quote endpoint and tickertape.

    ``bid``, ``ask``, ``last`` and ``last_trade`` are omitted by the service
    while there is no such price, so they may be ``None``.
    """

    symbol: str
    venue: str
    quote_time: datetime
    bid: Optional[int] = None
    ask: Optional[int] = None
    bid_size: int = 0
    ask_size: int = 0
    bid_depth: int = 0
    ask_depth: int = 0
    last: Optional[int] = None
    last_size: int = 0
    last_trade: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation using wire field names."""

        return {
            "symbol": self.symbol,
            "venue": self.venue,
            "bid": self.bid,
            "ask": self.ask,
            "bidSize": self.bid_size,
            "askSize": self.ask_size,
            "bidDepth": self.bid_depth,
            "askDepth": self.ask_depth,
            "last": self.last,
            "lastSize": self.last_size,
            "lastTrade": _isoformat(self.last_trade),
            "quoteTime": _isoformat(self.quote_time),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Quote":
        return cls(
            symbol=_str(payload, "symbol"),
            venue=_str(payload, "venue"),
            quote_time=_ts(payload, "quoteTime"),
            bid=_int(payload, "bid", None),
            ask=_int(payload, "ask", None),
            bid_size=_int(payload, "bidSize", 0),
            ask_size=_int(payload, "askSize", 0),
            bid_depth=_int(payload, "bidDepth", 0),
            ask_depth=_int(payload, "askDepth", 0),
            last=_int(payload, "last", None),
            last_size=_int(payload, "lastSize", 0),
            last_trade=_ts(payload, "lastTrade", None),
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "Quote":
        """Decode a REST quote response (quote fields at the top level)."""

        return cls.from_payload(decode_response(raw))

    @classmethod
    def decode_ticker(cls, raw: bytes | str) -> "Quote":
        """Decode a tickertape message, which wraps the quote in ``quote``."""

        return cls.from_payload(_obj(decode_response(raw), "quote"))


@dataclass(frozen=True)
class Execution:
    """A fill pairing a standing order with an incoming order."""

    account: str
    venue: str
    symbol: str
    orders: Tuple[ExecutedOrder, ...]
    standing_id: int
    incoming_id: int
    price: int
    filled: int
    filled_at: datetime
    standing_complete: bool
    incoming_complete: bool

    @property
    def order(self) -> Optional[ExecutedOrder]:
        return self.orders[0] if self.orders else None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Execution":
        raw_orders = _field(payload, "order")
        if isinstance(raw_orders, dict):
            raw_orders = [raw_orders]
        if not isinstance(raw_orders, list):
            raise DecodeError(f"field 'order' must be an object or a list, got {raw_orders!r}")
        return cls(
            account=_str(payload, "account"),
            venue=_str(payload, "venue"),
            symbol=_str(payload, "symbol"),
            orders=_records({"order": raw_orders}, "order", ExecutedOrder.from_payload),
            standing_id=_int(payload, "standingId"),
            incoming_id=_int(payload, "incomingId"),
            price=_int(payload, "price"),
            filled=_int(payload, "filled"),
            filled_at=_ts(payload, "filledAt"),
            standing_complete=_bool(payload, "standingComplete"),
            incoming_complete=_bool(payload, "incomingComplete"),
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "Execution":
        return cls.from_payload(decode_response(raw))


# --- Game master -----------------------------------------------------------
@dataclass(frozen=True)
class LevelInfo:
    """Metadata returned when a level is started."""

    account: str
    instance_id: int
    tickers: Tuple[str, ...]
    venues: Tuple[str, ...]
    seconds_per_trading_day: int = 0
    instructions: Dict[str, str] = field(default_factory=dict)
    balances: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "LevelInfo":
        tickers = _list(payload, "tickers", [])
        venues = _list(payload, "venues", [])
        if not all(isinstance(item, str) for item in tickers + venues):
            raise DecodeError("'tickers' and 'venues' must be lists of strings")
        instructions = _as(payload, "instructions", dict, {})
        balances = _as(payload, "balances", dict, {})
        return cls(
            account=_str(payload, "account"),
            instance_id=_int(payload, "instanceId"),
            tickers=tuple(tickers),
            venues=tuple(venues),
            seconds_per_trading_day=_int(payload, "secondsPerTradingDay", 0),
            instructions={key: _str(instructions, key) for key in instructions},
            balances={key: _int(balances, key) for key in balances},
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "LevelInfo":
        return cls.from_payload(decode_response(raw))


@dataclass(frozen=True)
class Instance:
    """State of a running level instance."""

    id: int
    done: bool
    state: str
    trading_day: int = 0
    end_of_the_world_day: int = 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Instance":
        details = _as(payload, "details", dict, {})
        return cls(
            id=_int(payload, "id"),
            done=_bool(payload, "done", False),
            state=_str(payload, "state", ""),
            trading_day=_int(details, "tradingDay", 0),
            end_of_the_world_day=_int(details, "endOfTheWorldDay", 0),
        )

    @classmethod
    def decode(cls, raw: bytes | str) -> "Instance":
        return cls.from_payload(decode_response(raw))


__all__ = [
    "Direction",
    "OrderType",
    "Order",
    "Fill",
    "ExecutedOrder",
    "Stock",
    "PriceLevel",
    "OrderBook",
    "Quote",
    "Execution",
    "LevelInfo",
    "Instance",
    "parse_json",
    "check_ok",
    "decode_response",
    "decode_stocks",
    "decode_heartbeat",
    "parse_timestamp",
]
