"""REST operations against a single Stockfighter venue."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import quote

from .clients import WireClient
from .errors import RemoteRejected
from .models import ExecutedOrder, Order, OrderBook, Quote, Stock, decode_heartbeat, decode_stocks
from .websocket import StreamSubscription


def segment(value: object) -> str:
    """Quote a path segment; symbols and order ids are opaque tokens."""

    return quote(str(value), safe="")


@dataclass
class Venue:
    """Stateless handle on a venue.

    Every operation is a function of the venue symbol and the wire client's
    endpoint and credential; nothing is cached between calls.
    """

    symbol: str
    client: WireClient
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__), repr=False)

    @property
    def base_path(self) -> str:
        return f"/venues/{segment(self.symbol)}"

    def stock_path(self, stock: str) -> str:
        return f"{self.base_path}/stocks/{segment(stock)}"

    def order_path(self, stock: str, order_id: object) -> str:
        return f"{self.stock_path(stock)}/orders/{segment(order_id)}"

    def up(self) -> bool:
        """Return True if the venue answers its heartbeat.

        A down or unknown venue is reported by the service as a rejection and
        yields False; transport failures still raise :class:`TransportError`.
        """

        try:
            return decode_heartbeat(self.client.get(f"{self.base_path}/heartbeat"))
        except RemoteRejected as exc:
            self.logger.info(
                "Venue %s is down: %s",
                self.symbol,
                exc,
                extra={"event": "venue_down", "venue": self.symbol},
            )
            return False

    def stocks(self) -> List[Stock]:
        """List the stocks traded on the venue."""

        return decode_stocks(self.client.get(f"{self.base_path}/stocks"))

    def order_book(self, stock: str) -> OrderBook:
        """Fetch a full order book snapshot for ``stock``."""

        return OrderBook.decode(self.client.get(self.stock_path(stock)))

    def quote(self, stock: str) -> Quote:
        """Fetch the latest quote for ``stock``."""

        return Quote.decode(self.client.get(f"{self.stock_path(stock)}/quote"))

    def place_order(self, order: Order) -> ExecutedOrder:
        """Submit ``order`` and return the venue's view of it after acceptance."""

        if order.venue != self.symbol:
            raise ValueError(f"Order for venue {order.venue} submitted to {self.symbol}")
        executed = ExecutedOrder.decode(
            self.client.post(f"{self.stock_path(order.stock)}/orders", order.encode())
        )
        self.logger.info(
            "Order %s accepted on %s",
            executed.id,
            self.symbol,
            extra={
                "event": "order_accepted",
                "venue": self.symbol,
                "stock": order.stock,
                "order_id": executed.id,
                "direction": order.direction,
                "qty": order.qty,
                "price": order.price,
                "total_filled": executed.total_filled,
            },
        )
        return executed

    def order_status(self, stock: str, order_id: object) -> ExecutedOrder:
        """Fetch the current state of a previously accepted order."""

        return ExecutedOrder.decode(self.client.get(self.order_path(stock, order_id)))

    def cancel_order(self, stock: str, order_id: object) -> bool:
        """Ask the venue to cancel an order; True when the request was acknowledged."""

        cancelled = self.client.delete(self.order_path(stock, order_id))
        self.logger.info(
            "Cancel request for order %s on %s: %s",
            order_id,
            self.symbol,
            "acknowledged" if cancelled else "refused",
            extra={"event": "order_cancel", "venue": self.symbol, "order_id": str(order_id), "ok": cancelled},
        )
        return cancelled

    def cancel(self, order: Order) -> bool:
        """Cancel an accepted :class:`Order`."""

        if order.id is None:
            raise ValueError("Order has no id; it was never accepted by the venue")
        return self.cancel_order(order.stock, order.id)

    def tickertape(self, account: str, stock: Optional[str] = None) -> StreamSubscription:
        """Describe the quote stream for this venue, optionally one stock."""

        return StreamSubscription(
            channel="tickertape",
            account=account,
            venue=self.symbol,
            stock=stock,
            base_url=self.client.endpoint.websocket_url,
        )

    def executions(self, account: str, stock: Optional[str] = None) -> StreamSubscription:
        """Describe the execution stream for this venue, optionally one stock."""

        return StreamSubscription(
            channel="executions",
            account=account,
            venue=self.symbol,
            stock=stock,
            base_url=self.client.endpoint.websocket_url,
        )


def api_up(client: WireClient) -> bool:
    """Return True if the Stockfighter API as a whole answers its heartbeat."""

    try:
        return decode_heartbeat(client.get("/heartbeat"))
    except RemoteRejected:
        return False


__all__ = ["Venue", "api_up", "segment"]
