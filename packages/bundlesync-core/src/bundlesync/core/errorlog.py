from __future__ import annotations

from typing import Iterator, List, Tuple

from bundlesync.core.exception import FetchError


class ErrorLog:
    """Ordered, append-only record of fetch failures for the current identity.

    Repeated identical failures are all kept; the engine clears the log when the
    identity changes.
    """

    def __init__(self) -> None:
        self._items: List[FetchError] = []

    def append(self, error: FetchError) -> None:
        self._items.append(error)

    def clear(self) -> None:
        self._items.clear()

    @property
    def records(self) -> Tuple[FetchError, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[FetchError]:
        return iter(self.records)

    def __bool__(self) -> bool:
        return bool(self._items)
