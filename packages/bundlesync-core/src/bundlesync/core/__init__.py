"""bundlesync core package.

Public entrypoints:
- bundlesync.core.api: stable API surface for integrations
- bundlesync.core.engine.SyncEngine: keep a bundle snapshot in sync with the REST backend

Internal modules may change without notice.
"""

from __future__ import annotations

from bundlesync.core.engine import SyncEngine

__all__ = ["SyncEngine"]
