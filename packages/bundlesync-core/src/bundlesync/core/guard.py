from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ResourceKind(str, Enum):
    METADATA = "metadata"
    CONTENTS = "contents"


class GuardState(str, Enum):
    IDLE = "idle"
    IN_FLIGHT = "in_flight"


class FetchGuard:
    """At-most-one-outstanding gate for one resource kind.

    A caller that fails to acquire must skip its fetch; nothing is queued.
    """

    def __init__(self, kind: ResourceKind):
        self.kind = kind
        self.state = GuardState.IDLE

    @property
    def in_flight(self) -> bool:
        return self.state is GuardState.IN_FLIGHT

    def try_acquire(self) -> bool:
        if self.state is GuardState.IN_FLIGHT:
            return False
        self.state = GuardState.IN_FLIGHT
        return True

    def release(self) -> None:
        if self.state is not GuardState.IN_FLIGHT:
            raise RuntimeError(f"{self.kind.value} guard released while idle")
        self.state = GuardState.IDLE

    def __repr__(self) -> str:
        return f"FetchGuard(kind={self.kind.value}, state={self.state.value})"


@dataclass
class FetchGuards:
    """The pair of guards owned by the engine, shared by every identity it syncs."""

    metadata: FetchGuard = field(default_factory=lambda: FetchGuard(ResourceKind.METADATA))
    contents: FetchGuard = field(default_factory=lambda: FetchGuard(ResourceKind.CONTENTS))

    def for_kind(self, kind: ResourceKind) -> FetchGuard:
        return self.metadata if kind is ResourceKind.METADATA else self.contents
