from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, Set

import anyio

from bundlesync.core.lifecycle import LifecycleClass, classify

log = logging.getLogger("bundlesync.core.scheduler")

DEFAULT_REFRESH_INTERVAL = 4.0

SleepFn = Callable[[float], Awaitable[None]]
TickFn = Callable[["PollSession"], Awaitable[Any]]


def refresh_interval(state: Optional[str], *, interval: float = DEFAULT_REFRESH_INTERVAL) -> Optional[float]:
    """Seconds until the next poll, or None once the bundle can no longer change.

    No known state (nothing fetched yet, or the last fetch failed) keeps polling.
    """
    if state is None or classify(state) is LifecycleClass.TRANSIENT:
        return interval
    return None


class PollSession:
    """Polling state for one bundle identity.

    Fetches are tagged with the session they were issued for; once the session is
    closed their results are stale and must be dropped.
    """

    def __init__(self, identity: str):
        self.identity = identity
        self.active = True
        self._pauses: Set[anyio.CancelScope] = set()

    def wake(self) -> None:
        """Interrupt every paused loop of this session so it re-evaluates its cadence."""
        for scope in list(self._pauses):
            scope.cancel()

    def close(self) -> None:
        self.active = False
        self.wake()

    def __repr__(self) -> str:
        return f"PollSession(identity={self.identity!r}, active={self.active})"


class PollingScheduler:
    """Owns the cadence and the loops that drive metadata/contents fetches.

    Both data loops read the same cadence, derived from the latest known lifecycle
    state. The keepalive loop is independent of identity and bundle state.
    """

    def __init__(
        self,
        *,
        state_source: Callable[[], Optional[str]],
        interval: float = DEFAULT_REFRESH_INTERVAL,
        keepalive_interval: float = DEFAULT_REFRESH_INTERVAL,
        sleep: SleepFn | None = None,
    ):
        self._state_source = state_source
        self.interval = float(interval)
        self.keepalive_interval = float(keepalive_interval)
        self._sleep: SleepFn = sleep or anyio.sleep

    def cadence(self) -> Optional[float]:
        return refresh_interval(self._state_source(), interval=self.interval)

    async def poll(self, session: PollSession, tick: TickFn) -> None:
        """Fetch immediately, then keep fetching at the current cadence until the session closes."""
        while session.active:
            await tick(session)
            if not session.active:
                break
            await self.pause(session, self.cadence())
        log.debug(f"Polling loop finished for {session!r}")

    async def pause(self, session: PollSession, interval: Optional[float]) -> None:
        with anyio.CancelScope() as scope:
            session._pauses.add(scope)
            try:
                if interval is None:
                    await anyio.sleep_forever()
                else:
                    await self._sleep(interval)
            finally:
                session._pauses.discard(scope)

    async def keepalive(self, notify: Callable[[], None]) -> None:
        while True:
            await self._sleep(self.keepalive_interval)
            try:
                notify()
            except Exception:
                # The embedding context's notification must never stop the timer.
                log.warning("keepalive notification failed; continuing", exc_info=True)
