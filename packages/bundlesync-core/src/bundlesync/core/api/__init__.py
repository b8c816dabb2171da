"""Public, stable API surface for bundlesync.

If you're embedding the engine or writing a custom backend source, import from
**`bundlesync.core.api`**.

Everything outside this package is considered internal and may change without
notice, even in minor releases.
"""

from __future__ import annotations

# Backend source contract
from bundlesync.core.connectors.base import BundleSource
from bundlesync.core.connectors.rest import HttpxBundleSource
# Content branching
from bundlesync.core.contents import ContentSynchronizer, ContentUpdate, RootType
# Engine
from bundlesync.core.engine import SyncEngine
# Error log + exceptions
from bundlesync.core.errorlog import ErrorLog
from bundlesync.core.exception import (
    ConnectorError,
    ContentsInfoFetchError,
    DocumentError,
    FetchError,
    MetadataFetchError,
    SummaryFetchError,
)
from bundlesync.core.guard import FetchGuard, GuardState, ResourceKind
# Lifecycle classification + cadence
from bundlesync.core.lifecycle import TERMINAL_STATES, TRANSIENT_STATES, LifecycleClass, classify, is_terminal
from bundlesync.core.normalize import JsonApiStore, normalize_bundle_document
# Observability
from bundlesync.core.observability import MetricsSink
# Presentation contract
from bundlesync.core.presentation import NullPresenter, PresentationCallbacks, Presenter
# Settings
from bundlesync.core.runtime.settings import SyncSettings, load_settings
from bundlesync.core.scheduler import refresh_interval
# View model
from bundlesync.core.views import BundleMetadataView, ContentSummary, SyncSnapshot, ViewState

__all__ = [
    # engine
    "SyncEngine",
    # sources
    "BundleSource",
    "HttpxBundleSource",
    # lifecycle
    "LifecycleClass",
    "TRANSIENT_STATES",
    "TERMINAL_STATES",
    "classify",
    "is_terminal",
    "refresh_interval",
    # guards
    "FetchGuard",
    "GuardState",
    "ResourceKind",
    # normalization + contents
    "JsonApiStore",
    "normalize_bundle_document",
    "ContentSynchronizer",
    "ContentUpdate",
    "RootType",
    # views
    "BundleMetadataView",
    "ContentSummary",
    "SyncSnapshot",
    "ViewState",
    # errors
    "ErrorLog",
    "ConnectorError",
    "DocumentError",
    "FetchError",
    "MetadataFetchError",
    "ContentsInfoFetchError",
    "SummaryFetchError",
    # presentation
    "Presenter",
    "NullPresenter",
    "PresentationCallbacks",
    # settings + observability
    "SyncSettings",
    "load_settings",
    "MetricsSink",
]
