"""Game master client for starting levels and following their instances."""

from __future__ import annotations

import logging
from typing import Optional

from .clients import WireClient
from .models import Instance, LevelInfo
from .venue import segment


class GameMaster:
    """Thin wrapper over the game master endpoints (levels and instances)."""

    def __init__(self, client: WireClient, logger: Optional[logging.Logger] = None) -> None:
        self.client = client
        self.logger = logger or logging.getLogger(__name__)

    def _url(self, path: str) -> str:
        return f"{self.client.endpoint.gm_url.rstrip('/')}{path}"

    def start_level(self, level: str) -> LevelInfo:
        """Start ``level`` and return the account, venues and tickers assigned to it."""

        info = LevelInfo.decode(self.client.post(self._url(f"/levels/{segment(level)}")))
        self.logger.info(
            "Started level %s as instance %s",
            level,
            info.instance_id,
            extra={
                "event": "level_started",
                "level": level,
                "instance_id": info.instance_id,
                "account": info.account,
                "venues": list(info.venues),
            },
        )
        return info

    def instance(self, instance_id: int) -> Instance:
        """Fetch the current state of a level instance."""

        return Instance.decode(self.client.get(self._url(f"/instances/{segment(instance_id)}")))


__all__ = ["GameMaster"]
