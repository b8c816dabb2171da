from __future__ import annotations

import json
import logging
import time
from importlib import import_module
from typing import Any

from bundlesync.core.runtime.settings import SyncSettings

log = logging.getLogger("bundlesync.core.observability")


class MetricsSink:
    """Receives fetch and snapshot counters from the engine.

    Point BUNDLESYNC_METRICS_MODULE at a module with a module-level `METRICS` object
    implementing these hooks. The base class ignores everything.
    """

    def on_fetch_start(self, *, identity: str, kind: str) -> None:  # pragma: no cover
        pass

    def on_fetch_end(self, *, identity: str, kind: str, status: str, duration_ms: int) -> None:  # pragma: no cover
        pass

    def on_snapshot(self, *, identity: str | None, view_state: str, error_count: int) -> None:  # pragma: no cover
        pass


def load_metrics_sink(settings: SyncSettings) -> MetricsSink:
    if not settings.metrics_module:
        return MetricsSink()
    module = import_module(settings.metrics_module)
    try:
        return getattr(module, "METRICS")
    except AttributeError:
        raise AttributeError(f"metrics module {settings.metrics_module} must expose METRICS") from None


def configure_logging(settings: SyncSettings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def log_event(logger: logging.Logger, *, settings: SyncSettings, level: int, event: str, **fields: Any) -> None:
    """Log one engine event, either as `event k=v ...` or as a JSON line (log_format=json)."""
    if settings.log_format.lower() == "json":
        record = {"ts_ms": _epoch_ms(), "event": event}
        record.update(fields)
        logger.log(level, json.dumps(record, ensure_ascii=False, default=str))
    else:
        logger.log(level, " ".join([event, *(f"{key}={value}" for key, value in fields.items())]))


class FetchObserver:
    """Times fetches per resource kind and forwards them to logs and the metrics sink."""

    def __init__(self, *, settings: SyncSettings, logger: logging.Logger, metrics: MetricsSink | None = None):
        self.settings = settings
        self.logger = logger
        self.metrics = metrics if metrics is not None else load_metrics_sink(settings)

    def fetch_start(self, *, identity: str, kind: str) -> float:
        log_event(self.logger, settings=self.settings, level=logging.DEBUG, event="fetch_start", identity=identity, kind=kind)
        try:
            self.metrics.on_fetch_start(identity=identity, kind=kind)
        except Exception:
            # Metrics must never break fetching.
            log.warning("FetchObserver.fetch_start failed", exc_info=True)
        return time.perf_counter()

    def fetch_end(self, *, identity: str, kind: str, status: str, t0: float, **fields: Any) -> None:
        dur = _elapsed_ms(t0)
        level = logging.WARNING if status == "failed" else logging.DEBUG
        log_event(self.logger, settings=self.settings, level=level, event="fetch_end", identity=identity, kind=kind, status=status, duration_ms=dur, **fields)
        try:
            self.metrics.on_fetch_end(identity=identity, kind=kind, status=status, duration_ms=dur)
        except Exception:
            log.warning("FetchObserver.fetch_end failed", exc_info=True)

    def fetch_skipped(self, *, identity: str, kind: str) -> None:
        log_event(self.logger, settings=self.settings, level=logging.DEBUG, event="fetch_skipped", identity=identity, kind=kind, reason="in_flight")

    def snapshot(self, *, identity: str | None, view_state: str, error_count: int) -> None:
        try:
            self.metrics.on_snapshot(identity=identity, view_state=view_state, error_count=error_count)
        except Exception:
            log.warning("FetchObserver.snapshot failed", exc_info=True)
