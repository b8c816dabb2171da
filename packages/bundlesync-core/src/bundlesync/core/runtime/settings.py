from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict

import yaml
from pydantic import BaseModel, Field


class SyncSettings(BaseModel):
    # Defaults are static. Use load_settings(env=...) to read from an env snapshot.
    base_url: str = "http://localhost/rest"
    headers: Dict[str, str] = Field(default_factory=dict)
    bearer_token: str | None = None
    timeout: float = 30.0
    verify_ssl: bool = True

    # Transport retries (tenacity). 0 means a single attempt.
    retries: int = 0
    retry_backoff: float = 1.0

    # Polling cadence, in seconds. Both data loops share refresh_interval;
    # the keepalive notification runs on its own timer.
    refresh_interval: float = 4.0
    keepalive_interval: float = 4.0
    contents_depth: int = 1

    # File summaries: head/tail line counts requested from the blob endpoint.
    summary_head: int = 50
    summary_tail: int = 50
    truncation_text: str = "\n... [truncated] ...\n\n"

    # Error log policy
    # - record_summary_errors: also record stdout/stderr summary failures (otherwise
    #   they only release the contents guard).
    # - clear_errors_on_success: drop accumulated errors after any successful fetch.
    record_summary_errors: bool = True
    clear_errors_on_success: bool = False

    log_level: str = "INFO"

    # Observability
    # - log_format: "text" (default) or "json". When json, bundlesync logs emit a single JSON
    #   object per line, suitable for log aggregation.
    log_format: str = "text"

    # Optional metrics sink module (exposes METRICS: MetricsSink)
    metrics_module: str | None = None

    @classmethod
    def from_env(cls, env: dict[str, str], overrides: dict | None = None) -> "SyncSettings":
        """Build settings from an explicit env snapshot (does not read os.environ)."""
        def g(key: str, default: str | None = None) -> str | None:
            return env.get(key, default)  # type: ignore[return-value]

        data = {
            "base_url": g("BUNDLESYNC_BASE_URL", "http://localhost/rest"),
            "headers": json.loads(g("BUNDLESYNC_HEADERS") or "{}"),
            "bearer_token": g("BUNDLESYNC_BEARER_TOKEN") or None,
            "timeout": float(g("BUNDLESYNC_TIMEOUT", "30") or 30),
            "verify_ssl": (g("BUNDLESYNC_VERIFY_SSL", "true") or "true").lower() == "true",
            "retries": int(g("BUNDLESYNC_RETRIES", "0") or 0),
            "retry_backoff": float(g("BUNDLESYNC_RETRY_BACKOFF", "1") or 1),
            "refresh_interval": float(g("BUNDLESYNC_REFRESH_INTERVAL", "4") or 4),
            "keepalive_interval": float(g("BUNDLESYNC_KEEPALIVE_INTERVAL", "4") or 4),
            "contents_depth": int(g("BUNDLESYNC_CONTENTS_DEPTH", "1") or 1),
            "summary_head": int(g("BUNDLESYNC_SUMMARY_HEAD", "50") or 50),
            "summary_tail": int(g("BUNDLESYNC_SUMMARY_TAIL", "50") or 50),
            "truncation_text": g("BUNDLESYNC_TRUNCATION_TEXT", "\n... [truncated] ...\n\n"),
            "record_summary_errors": (g("BUNDLESYNC_RECORD_SUMMARY_ERRORS", "true") or "true").lower() == "true",
            "clear_errors_on_success": (g("BUNDLESYNC_CLEAR_ERRORS_ON_SUCCESS", "false") or "false").lower() == "true",
            "log_level": g("BUNDLESYNC_LOG_LEVEL", "INFO"),
            "log_format": g("BUNDLESYNC_LOG_FORMAT", "text"),
            "metrics_module": g("BUNDLESYNC_METRICS_MODULE") or None,
        }
        if overrides:
            data.update(overrides)
        return cls(**data)


def _read_settings_file(path: str) -> dict:
    p = Path(path).expanduser()
    with open(p, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise TypeError(f"Settings file must contain a YAML mapping: {p}")
    return data


def load_settings(
    overrides: dict | None = None,
    *,
    env: dict[str, str] | None = None,
    config_file: str | None = None,
) -> SyncSettings:
    """Load settings from (1) env snapshot, (2) optional YAML settings file, (3) explicit overrides.

    The settings file defaults to BUNDLESYNC_CONFIG_FILE from the env snapshot. If env is
    not provided, a snapshot is built from os.environ.
    """
    env2 = {k: str(v) for k, v in os.environ.items()} if env is None else env
    s = SyncSettings.from_env(env2)
    path = config_file or env2.get("BUNDLESYNC_CONFIG_FILE")
    if path:
        s = s.model_copy(update=_read_settings_file(path))
    if overrides:
        s = s.model_copy(update=overrides)
    return s
