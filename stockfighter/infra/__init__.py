"""Infrastructure utilities for configuration, logging, metrics, and quote storage."""

from .config import AppConfig, load_config
from .logging import configure_logging
from .metrics import MetricsSink
from .persistence import JsonLinesQuoteStore, QuoteStore, SQLiteQuoteStore, build_quote_store

__all__ = [
    "AppConfig",
    "load_config",
    "configure_logging",
    "MetricsSink",
    "JsonLinesQuoteStore",
    "QuoteStore",
    "SQLiteQuoteStore",
    "build_quote_store",
]
