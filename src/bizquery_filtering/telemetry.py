"""Per-stage timing and the structured execution log entry."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from bizquery_core.correlation import get_correlation_id

_log = logging.getLogger("bizquery.engine")


class PerformanceRecorder:
    """Collects ``{name, durationMs, **facts}`` entries, one per stage."""

    def __init__(self) -> None:
        self.stages: list[dict[str, Any]] = []
        self._start = time.perf_counter()

    @contextmanager
    def stage(self, name: str, **facts: Any) -> Iterator[dict[str, Any]]:
        """Time a block. Facts may be added to the yielded dict inside it."""
        entry: dict[str, Any] = {"name": name, **facts}
        start = time.perf_counter()
        try:
            yield entry
        finally:
            entry["durationMs"] = _ms(time.perf_counter() - start)
            self.stages.append(entry)

    @property
    def elapsed_ms(self) -> float:
        return _ms(time.perf_counter() - self._start)


def log_execution(
    *,
    entity: str,
    outcome: str,
    duration_ms: float,
    cache_hit: bool,
    request_id: str,
    logger: logging.Logger | None = None,
    **extra: Any,
) -> None:
    """Emit one JSON log entry for an engine execution."""
    log = logger or _log
    try:
        entry = {
            "entity": entity,
            "outcome": outcome,
            "duration_ms": round(duration_ms, 2),
            "cache_hit": cache_hit,
            "request_id": request_id,
            "correlation_id": get_correlation_id(),
            **extra,
        }
        log.info(json.dumps(entry, default=str))
    except Exception:  # noqa: BLE001
        _log.debug("Failed to emit structured log entry", exc_info=True)


def _ms(seconds: float) -> float:
    return round(seconds * 1000, 3)
