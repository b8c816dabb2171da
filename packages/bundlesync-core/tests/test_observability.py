from __future__ import annotations

import json
import logging
import sys
import types

import pytest
from conftest import bundle_doc

from bundlesync.core.engine import SyncEngine
from bundlesync.core.exception import ConnectorError
from bundlesync.core.observability import MetricsSink, load_metrics_sink, log_event


class RecordingSink(MetricsSink):
    def __init__(self) -> None:
        self.events = []

    def on_fetch_start(self, *, identity, kind):
        self.events.append(("start", identity, kind))

    def on_fetch_end(self, *, identity, kind, status, duration_ms):
        assert duration_ms >= 0
        self.events.append(("end", identity, kind, status))

    def on_snapshot(self, *, identity, view_state, error_count):
        self.events.append(("snapshot", identity, view_state, error_count))


def test_log_event_text_format(settings, caplog):
    logger = logging.getLogger("bundlesync.tests")
    with caplog.at_level(logging.INFO, logger="bundlesync.tests"):
        log_event(logger, settings=settings, level=logging.INFO, event="identity_change", previous=None, identity="0x1")
    assert caplog.records[-1].getMessage() == "identity_change previous=None identity=0x1"


@pytest.mark.anyio
async def test_failed_fetch_logs_json_event(source, settings, caplog):
    source.bundles["0x1"] = [ConnectorError("HTTP 500")]
    engine = SyncEngine(source, settings=settings.model_copy(update={"log_format": "json"}), metrics=MetricsSink())
    engine.set_identity("0x1")

    with caplog.at_level(logging.WARNING, logger="bundlesync.core.engine"):
        await engine.refresh_metadata()

    events = [json.loads(r.getMessage()) for r in caplog.records if r.name == "bundlesync.core.engine"]
    end = [e for e in events if e["event"] == "fetch_end"][-1]
    assert end["identity"] == "0x1"
    assert end["kind"] == "metadata"
    assert end["status"] == "failed"
    assert "HTTP 500" in end["error"]
    assert isinstance(end["ts_ms"], int)


@pytest.mark.anyio
async def test_metrics_sink_sees_fetches_and_snapshots(source, settings):
    source.bundles["0x1"] = [bundle_doc("0x1")]
    sink = RecordingSink()
    engine = SyncEngine(source, settings=settings, metrics=sink)
    engine.set_identity("0x1")

    await engine.refresh_metadata()

    assert sink.events == [
        ("snapshot", "0x1", "placeholder", 0),
        ("start", "0x1", "metadata"),
        ("end", "0x1", "metadata", "success"),
        ("snapshot", "0x1", "ready", 0),
    ]


@pytest.mark.anyio
async def test_failing_metrics_sink_does_not_break_fetching(source, settings, caplog):
    class BrokenSink(MetricsSink):
        def on_fetch_start(self, *, identity, kind):
            raise RuntimeError("statsd down")

    source.bundles["0x1"] = [bundle_doc("0x1")]
    engine = SyncEngine(source, settings=settings, metrics=BrokenSink())
    engine.set_identity("0x1")

    await engine.refresh_metadata()

    assert engine.snapshot.ready
    assert "FetchObserver.fetch_start failed" in caplog.text


def test_load_metrics_sink_from_module(settings, monkeypatch):
    mod = types.ModuleType("bundlesync_test_metrics")
    mod.METRICS = RecordingSink()
    monkeypatch.setitem(sys.modules, "bundlesync_test_metrics", mod)

    sink = load_metrics_sink(settings.model_copy(update={"metrics_module": "bundlesync_test_metrics"}))
    assert sink is mod.METRICS

    empty = types.ModuleType("bundlesync_test_empty")
    monkeypatch.setitem(sys.modules, "bundlesync_test_empty", empty)
    with pytest.raises(AttributeError, match="must expose METRICS"):
        load_metrics_sink(settings.model_copy(update={"metrics_module": "bundlesync_test_empty"}))

    assert type(load_metrics_sink(settings)) is MetricsSink
