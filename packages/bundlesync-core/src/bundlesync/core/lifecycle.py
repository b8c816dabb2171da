from __future__ import annotations

from enum import Enum
from typing import FrozenSet


class LifecycleClass(str, Enum):
    """Whether a bundle may still change (TRANSIENT) or has settled (TERMINAL)."""

    TRANSIENT = "transient"
    TERMINAL = "terminal"


TRANSIENT_STATES: FrozenSet[str] = frozenset(
    {
        "uploading",
        "created",
        "staged",
        "making",
        "starting",
        "preparing",
        "running",
        "finalizing",
        "worker_offline",
    }
)

TERMINAL_STATES: FrozenSet[str] = frozenset({"ready", "failed", "killed"})


def classify(state: str) -> LifecycleClass:
    """Classify a lifecycle state string (exact, case-sensitive match).

    Anything outside the terminal set, including states this client does not know
    about yet, is transient.
    """
    if state in TERMINAL_STATES:
        return LifecycleClass.TERMINAL
    return LifecycleClass.TRANSIENT


def is_terminal(state: str | None) -> bool:
    return state is not None and classify(state) is LifecycleClass.TERMINAL
