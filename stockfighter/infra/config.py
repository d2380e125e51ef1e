"""Config loading for the Stockfighter client.

Settings come from an optional YAML file; the API key is normally supplied
through ``STOCKFIGHTER_API_KEY`` and always wins over the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from stockfighter.data.clients import VenueEndpoint, WireClient

API_KEY_ENV = "STOCKFIGHTER_API_KEY"
CONFIG_PATH_ENV = "STOCKFIGHTER_CONFIG"
DEFAULT_QUOTE_STORE_PATHS = {"sqlite": "var/quotes.db", "jsonl": "var/quotes"}


@dataclass
class ApiConfig:
    api_key: Optional[str] = None
    rest_url: str = "https://api.stockfighter.io/ob/api"
    gm_url: str = "https://www.stockfighter.io/gm"
    websocket_url: str = "wss://api.stockfighter.io/ob/api/ws"
    timeout_seconds: float = 10.0

    def endpoint(self) -> VenueEndpoint:
        return VenueEndpoint(rest_url=self.rest_url, gm_url=self.gm_url, websocket_url=self.websocket_url)


@dataclass
class StreamConfig:
    idle_timeout_seconds: float = 10.0
    watchdog_interval_seconds: float = 1.0
    open_timeout_seconds: float = 10.0


@dataclass
class PersistenceConfig:
    quote_store: Optional[str] = None  # "sqlite", "jsonl" or None
    quote_store_path: Optional[str] = None

    def store_path(self) -> str:
        """Configured store location, or the default for the selected backend."""

        if self.quote_store_path:
            return self.quote_store_path
        return DEFAULT_QUOTE_STORE_PATHS.get(self.quote_store or "", "var/quotes")


@dataclass
class MetricsConfig:
    emit_textfile: bool = False
    metrics_file: str = "var/metrics.prom"


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    account: Optional[str] = None
    venue: Optional[str] = None
    stock: Optional[str] = None

    def wire_client(self) -> WireClient:
        """Build a :class:`WireClient` carrying this config's credential and endpoints."""

        return WireClient(
            api_key=self.api.api_key,
            endpoint=self.api.endpoint(),
            timeout=self.api.timeout_seconds,
        )


def load_config(path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load configuration from YAML and environment overrides.

    ``path`` defaults to ``$STOCKFIGHTER_CONFIG``; a missing default file is
    not an error and yields the built-in defaults.
    """

    env = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}
    explicit = path is not None
    candidate = path if explicit else env.get(CONFIG_PATH_ENV)
    if candidate:
        resolved = Path(candidate).expanduser().resolve()
        if resolved.exists() or explicit:
            with resolved.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {candidate} must contain a mapping")

    api = raw.get("api", {})
    stream = raw.get("stream", {})
    persistence = raw.get("persistence", {})
    metrics = raw.get("metrics", {})

    return AppConfig(
        api=ApiConfig(
            api_key=env.get(API_KEY_ENV) or api.get("api_key"),
            rest_url=api.get("rest_url", ApiConfig.rest_url),
            gm_url=api.get("gm_url", ApiConfig.gm_url),
            websocket_url=api.get("websocket_url", ApiConfig.websocket_url),
            timeout_seconds=float(api.get("timeout_seconds", ApiConfig.timeout_seconds)),
        ),
        stream=StreamConfig(
            idle_timeout_seconds=float(stream.get("idle_timeout_seconds", StreamConfig.idle_timeout_seconds)),
            watchdog_interval_seconds=float(
                stream.get("watchdog_interval_seconds", StreamConfig.watchdog_interval_seconds)
            ),
            open_timeout_seconds=float(stream.get("open_timeout_seconds", StreamConfig.open_timeout_seconds)),
        ),
        persistence=PersistenceConfig(
            quote_store=persistence.get("quote_store"),
            quote_store_path=persistence.get("quote_store_path"),
        ),
        metrics=MetricsConfig(
            emit_textfile=bool(metrics.get("emit_textfile", False)),
            metrics_file=metrics.get("metrics_file", MetricsConfig.metrics_file),
        ),
        account=raw.get("account"),
        venue=raw.get("venue"),
        stock=raw.get("stock"),
    )


__all__ = [
    "load_config",
    "AppConfig",
    "ApiConfig",
    "StreamConfig",
    "PersistenceConfig",
    "MetricsConfig",
    "API_KEY_ENV",
    "CONFIG_PATH_ENV",
    "DEFAULT_QUOTE_STORE_PATHS",
]
