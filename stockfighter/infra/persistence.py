"""Quote sinks: durable records of every quote seen on a tickertape."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import closing
from pathlib import Path
from typing import List, Protocol

from stockfighter.data.models import Quote

QUOTES_SCHEMA = """
CREATE TABLE IF NOT EXISTS quotes (
    symbol TEXT NOT NULL,
    venue TEXT NOT NULL,
    bid INTEGER,
    ask INTEGER,
    bid_size INTEGER NOT NULL,
    ask_size INTEGER NOT NULL,
    bid_depth INTEGER NOT NULL,
    ask_depth INTEGER NOT NULL,
    last INTEGER,
    last_size INTEGER NOT NULL,
    last_trade TEXT,
    quote_time TEXT NOT NULL
)
"""


class QuoteStore(Protocol):
    """Protocol for quote sinks."""

    def save_quote(self, quote: Quote) -> None:
        """Durably record ``quote``."""


class SQLiteQuoteStore:
    """Persist quotes to the ``quotes`` table of a SQLite database."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with closing(sqlite3.connect(self.path)) as conn, conn:
            conn.execute(QUOTES_SCHEMA)

    def save_quote(self, quote: Quote) -> None:
        row = quote.to_dict()
        with self._lock, closing(sqlite3.connect(self.path)) as conn, conn:
            conn.execute(
                """
                INSERT INTO quotes (symbol, venue, bid, ask, bid_size, ask_size,
                                    bid_depth, ask_depth, last, last_size,
                                    last_trade, quote_time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    row["symbol"],
                    row["venue"],
                    row["bid"],
                    row["ask"],
                    row["bidSize"],
                    row["askSize"],
                    row["bidDepth"],
                    row["askDepth"],
                    row["last"],
                    row["lastSize"],
                    row["lastTrade"],
                    row["quoteTime"],
                ),
            )

    def count(self, symbol: str | None = None) -> int:
        """Number of stored quotes, optionally for one symbol."""

        with closing(sqlite3.connect(self.path)) as conn:
            if symbol is None:
                (total,) = conn.execute("SELECT COUNT(*) FROM quotes").fetchone()
            else:
                (total,) = conn.execute("SELECT COUNT(*) FROM quotes WHERE symbol = ?", (symbol,)).fetchone()
        return int(total)


class JsonLinesQuoteStore:
    """Append-only JSONL quote log, one file per venue."""

    def __init__(self, base_dir: str | Path = "var/quotes") -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def path_for(self, venue: str) -> Path:
        return self.base_dir / f"{venue}.jsonl"

    def save_quote(self, quote: Quote) -> None:
        line = json.dumps(quote.to_dict()).encode("utf-8")
        with self._lock, self.path_for(quote.venue).open("ab") as f:
            f.write(line + b"\n")

    def read(self, venue: str) -> List[dict]:
        path = self.path_for(venue)
        if not path.exists():
            return []
        with path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]


def build_quote_store(backend: str, path: str | Path) -> QuoteStore:
    """Instantiate the configured quote store backend ("sqlite" or "jsonl")."""

    if backend == "sqlite":
        return SQLiteQuoteStore(Path(path))
    if backend == "jsonl":
        return JsonLinesQuoteStore(path)
    raise ValueError(f"Unknown quote store backend: {backend}")


__all__ = ["QuoteStore", "SQLiteQuoteStore", "JsonLinesQuoteStore", "build_quote_store", "QUOTES_SCHEMA"]
