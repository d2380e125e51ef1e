"""Entry point wiring config, a venue and a streaming session together."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from stockfighter.data.dispatch import EventConsumer, ExecutionEvent, QuoteEvent, QuoteRecorder, StreamEvent
from stockfighter.data.models import Quote
from stockfighter.data.session import StreamingSession
from stockfighter.data.venue import Venue
from stockfighter.infra.config import AppConfig, load_config
from stockfighter.infra.logging import configure_logging
from stockfighter.infra.metrics import MetricsSink
from stockfighter.infra.persistence import build_quote_store


def _price(value: Optional[int]) -> str:
    return f"{value:8d}" if value is not None else f"{'-':>8}"


def format_quote(quote: Quote) -> str:
    """One tab-separated line per quote, in tickertape column order."""

    last_trade = quote.last_trade.isoformat() if quote.last_trade else "-"
    return (
        f"{quote.symbol}\tBID\t{_price(quote.bid)}\tASK\t{_price(quote.ask)}"
        f"\tBIDSIZE\t{quote.bid_size:8d}\tASKSIZE\t{quote.ask_size:8d}"
        f"\tBIDDEPTH\t{quote.bid_depth:8d}\tASKDEPTH\t{quote.ask_depth:8d}"
        f"\tLAST\t{_price(quote.last)}\tLASTSIZE\t{quote.last_size:8d}"
        f"\tTRADE\t{last_trade}\tQUOTE\t{quote.quote_time.isoformat()}"
    )


def print_event(event: StreamEvent) -> None:
    if isinstance(event, QuoteEvent):
        print(format_quote(event.quote), flush=True)
    elif isinstance(event, ExecutionEvent):
        execution = event.execution
        print(
            f"EXEC\t{execution.symbol}\t{execution.filled}@{execution.price}"
            f"\tstanding={execution.standing_id}\tincoming={execution.incoming_id}"
            f"\t{execution.filled_at.isoformat()}",
            flush=True,
        )


async def run_stream(cfg: AppConfig, channel: str, account: str, venue_symbol: str, stock: Optional[str]) -> int:
    logger = logging.getLogger("stockfighter.app")
    venue = Venue(venue_symbol, cfg.wire_client())
    if channel == "tickertape":
        subscription = venue.tickertape(account, stock)
    else:
        subscription = venue.executions(account, stock)

    consumer: EventConsumer = print_event
    if channel == "tickertape" and cfg.persistence.quote_store:
        store = build_quote_store(cfg.persistence.quote_store, cfg.persistence.store_path())
        consumer = QuoteRecorder(store, downstream=print_event)

    metrics = MetricsSink(metrics_file=cfg.metrics.metrics_file, emit_textfile=cfg.metrics.emit_textfile)
    session = StreamingSession(
        subscription,
        consumer,
        api_key=cfg.api.api_key,
        idle_timeout=cfg.stream.idle_timeout_seconds,
        watchdog_interval=cfg.stream.watchdog_interval_seconds,
        open_timeout=cfg.stream.open_timeout_seconds,
        metrics_callback=metrics.observe,
        logger=logger.getChild("session"),
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, session.stop)
        except NotImplementedError:
            # Windows/limited environments
            pass

    closed = await session.run()
    if closed.error is not None:
        logger.error("Stream ended with error: %s", closed.error, extra={"event": "stream_failed"})
        return 1
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Stockfighter client")
    parser.add_argument("--config", default=None, help="YAML config file (defaults to $STOCKFIGHTER_CONFIG)")
    sub = parser.add_subparsers(dest="command", required=True)

    heartbeat = sub.add_parser("heartbeat", help="Check whether a venue is up")
    heartbeat.add_argument("--venue")

    for channel in ("tickertape", "executions"):
        stream = sub.add_parser(channel, help=f"Stream {channel} events to stdout")
        stream.add_argument("--account")
        stream.add_argument("--venue")
        stream.add_argument("--stock")

    args = parser.parse_args(argv)
    configure_logging()
    cfg = load_config(args.config)

    venue_symbol = args.venue or cfg.venue
    if not venue_symbol:
        parser.error("a venue is required (--venue or 'venue' in config)")

    if args.command == "heartbeat":
        up = Venue(venue_symbol, cfg.wire_client()).up()
        print(f"{venue_symbol} is {'up' if up else 'down'}")
        return 0 if up else 1

    account = args.account or cfg.account
    if not account:
        parser.error("an account is required (--account or 'account' in config)")
    return asyncio.run(run_stream(cfg, args.command, account, venue_symbol, args.stock or cfg.stock))


if __name__ == "__main__":
    sys.exit(main())
