from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from bundlesync.core.views import SyncSnapshot


@dataclass(frozen=True)
class PresentationCallbacks:
    """Callbacks handed through to the presentation layer untouched.

    `on_open` doubles as the keepalive target: the engine calls it on a fixed
    interval for as long as it runs.
    """

    on_open: Optional[Callable[[], None]] = None
    on_update: Optional[Callable[..., None]] = None
    on_close: Optional[Callable[[], None]] = None
    on_metadata_change: Optional[Callable[[], None]] = None
    edit_permission: bool = False


@runtime_checkable
class Presenter(Protocol):
    """Renders snapshots. PLACEHOLDER and RESTRICTED view states are not errors."""

    def render(self, snapshot: SyncSnapshot, callbacks: PresentationCallbacks) -> None: ...


class NullPresenter:
    def render(self, snapshot: SyncSnapshot, callbacks: PresentationCallbacks) -> None:
        return None
