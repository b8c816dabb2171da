from __future__ import annotations

from bundlesync.core.connectors.base import BundleSource
from bundlesync.core.connectors.rest import HttpxBundleSource

__all__ = ["BundleSource", "HttpxBundleSource"]
