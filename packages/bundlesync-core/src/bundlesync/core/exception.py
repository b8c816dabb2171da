"""Centralized customized exceptions for bundlesync.

All project-specific exceptions live in this module. Internal code should prefer
explicit imports:

    from bundlesync.core.exception import MetadataFetchError

Fetch errors are recorded by the engine (see ``bundlesync.core.errorlog``) and are
never raised out of the polling loops.
"""

from __future__ import annotations

__all__ = [
    "ConnectorError",
    "DocumentError",
    "FetchError",
    "MetadataFetchError",
    "ContentsInfoFetchError",
    "SummaryFetchError",
]


class ConnectorError(RuntimeError):
    """Base error for backend transport failures."""


class DocumentError(ValueError):
    """Raised when a backend response does not have the expected shape."""


class FetchError(RuntimeError):
    """A failed fetch of one resource kind for one bundle identity."""

    kind = "fetch"

    def __init__(self, identity: str, message: str):
        super().__init__(f"{self.kind} fetch failed for bundle {identity}: {message}")
        self.identity = identity
        self.reason = message

    def as_dict(self) -> dict:
        return {"kind": self.kind, "identity": self.identity, "message": self.reason}


class MetadataFetchError(FetchError):
    """Raised when the bundle metadata document cannot be fetched or parsed."""

    kind = "metadata"


class ContentsInfoFetchError(FetchError):
    """Raised when the contents-info request for the bundle root fails."""

    kind = "contents_info"


class SummaryFetchError(FetchError):
    """Raised when a file summary (root file, stdout or stderr) cannot be fetched."""

    kind = "summary"

    def __init__(self, identity: str, message: str, *, target: str):
        self.target = target
        super().__init__(identity, f"[{target}] {message}")

    def as_dict(self) -> dict:
        d = super().as_dict()
        d["target"] = self.target
        return d
