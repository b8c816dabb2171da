"""Bundle synchronization engine.

The engine keeps one composed, immutable snapshot of a bundle up to date:

    async with SyncEngine(HttpxBundleSource(settings), settings=settings) as engine:
        engine.subscribe(print)
        engine.set_identity("0x5f1c...")
        ...

Two polling loops (metadata, contents) run per identity on one anyio task group.
Each fetch holds its kind's guard for its whole duration and is tagged with the
session it was issued for; results that come back after the identity changed are
dropped. Fetch failures are recorded in the error log and never leave the engine.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, List, Optional

import anyio
from anyio.abc import TaskGroup

from bundlesync.core.connectors.base import BundleSource
from bundlesync.core.contents import ContentSynchronizer
from bundlesync.core.errorlog import ErrorLog
from bundlesync.core.exception import MetadataFetchError
from bundlesync.core.guard import FetchGuards, ResourceKind
from bundlesync.core.normalize import normalize_bundle_document
from bundlesync.core.observability import FetchObserver, MetricsSink, log_event
from bundlesync.core.presentation import NullPresenter, PresentationCallbacks, Presenter
from bundlesync.core.runtime.settings import SyncSettings, load_settings
from bundlesync.core.scheduler import PollingScheduler, PollSession, SleepFn
from bundlesync.core.views import BundleMetadataView, ContentSummary, SyncSnapshot

log = logging.getLogger("bundlesync.core.engine")

Subscriber = Callable[[SyncSnapshot], None]


class SyncEngine:
    def __init__(
        self,
        source: BundleSource,
        *,
        settings: SyncSettings | None = None,
        presenter: Presenter | None = None,
        callbacks: PresentationCallbacks | None = None,
        sleep: SleepFn | None = None,
        metrics: MetricsSink | None = None,
    ):
        self.settings = settings or load_settings()
        self.source = source
        self.presenter: Presenter = presenter or NullPresenter()
        callbacks = callbacks or PresentationCallbacks()
        if callbacks.on_metadata_change is None:
            callbacks = replace(callbacks, on_metadata_change=lambda: self.revalidate(ResourceKind.METADATA))
        self.callbacks = callbacks

        self.observer = FetchObserver(settings=self.settings, logger=log, metrics=metrics)
        self.errors = ErrorLog()
        self.guards = FetchGuards()
        self.contents = ContentSynchronizer(
            source,
            depth=self.settings.contents_depth,
            record_summary_errors=self.settings.record_summary_errors,
        )
        self.scheduler = PollingScheduler(
            state_source=self._last_state,
            interval=self.settings.refresh_interval,
            keepalive_interval=self.settings.keepalive_interval,
            sleep=sleep,
        )

        self._identity: Optional[str] = None
        self._session: Optional[PollSession] = None
        self._metadata: Optional[BundleMetadataView] = None
        self._content = ContentSummary.empty()
        self._subscribers: List[Subscriber] = []
        self._tg: Optional[TaskGroup] = None
        self._snapshot = SyncSnapshot(identity=None)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def identity(self) -> Optional[str]:
        return self._identity

    @property
    def running(self) -> bool:
        return self._tg is not None

    @property
    def snapshot(self) -> SyncSnapshot:
        return self._snapshot

    async def __aenter__(self) -> "SyncEngine":
        if self._tg is not None:
            raise RuntimeError("SyncEngine is already running")
        tg = anyio.create_task_group()
        await tg.__aenter__()
        self._tg = tg
        if self.callbacks.on_open is not None:
            tg.start_soon(self.scheduler.keepalive, self.callbacks.on_open, name="bundlesync-keepalive")
        if self._identity is not None:
            if self._session is not None:
                self._session.close()
            self._session = PollSession(self._identity)
            self._start_loops(self._session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> Optional[bool]:
        if self._tg is None:
            raise RuntimeError("SyncEngine is not running")
        tg, self._tg = self._tg, None
        if self._session is not None:
            self._session.close()
        tg.cancel_scope.cancel()
        return await tg.__aexit__(exc_type, exc, tb)

    def set_identity(self, identity: Optional[str]) -> None:
        """Switch the bundle being synchronized.

        Everything derived from the previous identity is dropped: metadata, content,
        errors, and the results of its still-running fetches.
        """
        if identity == self._identity and (identity is None or (self._session is not None and self._session.active)):
            return
        previous = self._identity
        if self._session is not None:
            self._session.close()

        self._identity = identity
        self._session = PollSession(identity) if identity is not None else None
        self.errors.clear()
        self._metadata = None
        self._content = ContentSummary.empty()
        log_event(log, settings=self.settings, level=logging.INFO, event="identity_change", previous=previous, identity=identity)

        if self._session is not None and self._tg is not None:
            self._start_loops(self._session)
        self._emit()

    def _start_loops(self, session: PollSession) -> None:
        if self._tg is None:
            raise RuntimeError("SyncEngine is not running")
        self._tg.start_soon(self.scheduler.poll, session, self._metadata_tick, name=f"bundlesync-metadata-{session.identity}")
        self._tg.start_soon(self.scheduler.poll, session, self._contents_tick, name=f"bundlesync-contents-{session.identity}")

    # ------------------------------------------------------------------
    # subscriptions
    # ------------------------------------------------------------------
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _emit(self) -> None:
        snap = SyncSnapshot(
            identity=self._identity,
            metadata=self._metadata,
            content=self._content,
            errors=self.errors.records,
        )
        self._snapshot = snap
        self.observer.snapshot(identity=snap.identity, view_state=snap.view_state.value, error_count=len(snap.errors))
        try:
            self.presenter.render(snap, self.callbacks)
        except Exception:
            log.warning("presenter failed to render snapshot; continuing", exc_info=True)
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:
                log.warning("snapshot subscriber failed; continuing", exc_info=True)

    # ------------------------------------------------------------------
    # fetches
    # ------------------------------------------------------------------
    def _last_state(self) -> Optional[str]:
        return self._metadata.state if self._metadata is not None else None

    def _is_current(self, session: PollSession) -> bool:
        return session.active and session is self._session

    def _resume_current(self) -> None:
        # Ticks of the current identity were skipped while a stale fetch held the guard.
        if self._session is not None:
            self._session.wake()

    def _require_session(self) -> PollSession:
        if self._session is None:
            raise RuntimeError("No bundle identity set; call set_identity() first")
        return self._session

    async def refresh_metadata(self) -> bool:
        """Run one guarded metadata fetch; False when one is already in flight."""
        return await self._metadata_tick(self._require_session())

    async def refresh_contents(self) -> bool:
        """Run one guarded contents fetch; False when one is already in flight."""
        return await self._contents_tick(self._require_session())

    def revalidate(self, kind: ResourceKind | None = None) -> bool:
        """Schedule an immediate fetch of one kind (or both) on the running engine.

        Returns False when the engine is not running or has no identity.
        """
        if self._tg is None or self._session is None:
            log.debug("revalidate ignored: engine not running or no identity")
            return False
        session = self._session
        if kind in (None, ResourceKind.METADATA):
            self._tg.start_soon(self._metadata_tick, session)
        if kind in (None, ResourceKind.CONTENTS):
            self._tg.start_soon(self._contents_tick, session)
        return True

    async def _metadata_tick(self, session: PollSession) -> bool:
        guard = self.guards.metadata
        kind = ResourceKind.METADATA.value
        if not guard.try_acquire():
            self.observer.fetch_skipped(identity=session.identity, kind=kind)
            return False
        t0 = self.observer.fetch_start(identity=session.identity, kind=kind)
        stale = False
        try:
            error: Optional[MetadataFetchError] = None
            view: Optional[BundleMetadataView] = None
            try:
                view = normalize_bundle_document(await self.source.get_bundle(session.identity))
            except Exception as e:
                error = MetadataFetchError(session.identity, str(e))
                error.__cause__ = e

            if not self._is_current(session):
                stale = True
                self.observer.fetch_end(identity=session.identity, kind=kind, status="stale", t0=t0)
                return True
            cadence_before = self.scheduler.cadence()
            if error is not None:
                # Content is meaningless without a resolvable bundle.
                self.errors.append(error)
                self._metadata = None
                self._content = ContentSummary.empty()
            else:
                self._metadata = view
                if self.settings.clear_errors_on_success:
                    self.errors.clear()
            if cadence_before is None and self.scheduler.cadence() is not None:
                session.wake()
            if error is not None:
                self.observer.fetch_end(identity=session.identity, kind=kind, status="failed", t0=t0, error=error.reason)
            else:
                self.observer.fetch_end(identity=session.identity, kind=kind, status="success", t0=t0, state=self._last_state())
            self._emit()
            return True
        finally:
            guard.release()
            if stale:
                self._resume_current()

    async def _contents_tick(self, session: PollSession) -> bool:
        guard = self.guards.contents
        kind = ResourceKind.CONTENTS.value
        if not guard.try_acquire():
            self.observer.fetch_skipped(identity=session.identity, kind=kind)
            return False
        t0 = self.observer.fetch_start(identity=session.identity, kind=kind)
        stale = False
        try:
            update = await self.contents.synchronize(session.identity)
            if not self._is_current(session):
                stale = True
                self.observer.fetch_end(identity=session.identity, kind=kind, status="stale", t0=t0)
                return True
            self._content = update.apply(self._content)
            for error in update.errors:
                self.errors.append(error)
            if not update.failed and self.settings.clear_errors_on_success:
                self.errors.clear()
            if update.failed:
                self.observer.fetch_end(identity=session.identity, kind=kind, status="failed", t0=t0, errors=len(update.errors))
            else:
                self.observer.fetch_end(identity=session.identity, kind=kind, status="success", t0=t0)
            self._emit()
            return True
        finally:
            guard.release()
            if stale:
                self._resume_current()
