"""In-process counters and gauges for stream instrumentation."""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping


@dataclass
class MetricsSink:
    """Collects counters and gauges; pass :meth:`observe` as a ``metrics_callback``."""

    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, float] = field(default_factory=dict)
    metrics_file: Path = Path("var/metrics.prom")
    emit_textfile: bool = False
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("stockfighter.metrics"))
    _lock: threading.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lock = threading.Lock()
        self.metrics_file = Path(self.metrics_file)

    def incr(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + value
            self._persist_unlocked()

    def observe(self, name: str, values: Mapping[str, Any]) -> None:
        """Count an occurrence of ``name`` and record its numeric values as gauges."""

        with self._lock:
            counter_name = f"{name}_total"
            self.counters[counter_name] = self.counters.get(counter_name, 0) + 1
            for key, value in values.items():
                if isinstance(value, (int, float)):
                    self.gauges[f"{name}_{key}"] = float(value)
            self._persist_unlocked()
        self.logger.debug(name, extra={"event": "metric", "metric": name, **dict(values)})

    def export(self) -> Dict[str, float | int]:
        """Return a merged view of all current metrics."""

        with self._lock:
            return {**self.counters, **self.gauges}

    def _persist_unlocked(self) -> None:
        if not self.emit_textfile:
            return
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            temp_path = self.metrics_file.with_suffix(".tmp")
            temp_path.write_text(self._render_prom_text(), encoding="utf-8")
            os.replace(temp_path, self.metrics_file)
        except OSError as exc:
            self.logger.warning("Could not write metrics file %s: %s", self.metrics_file, exc)

    def _render_prom_text(self) -> str:
        lines = [f"stockfighter_{name} {int(value)}" for name, value in sorted(self.counters.items())]
        lines += [f"stockfighter_{name} {float(value)}" for name, value in sorted(self.gauges.items())]
        return "\n".join(lines) + "\n"
