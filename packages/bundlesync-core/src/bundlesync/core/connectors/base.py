from __future__ import annotations

from typing import Any, Dict, Protocol, runtime_checkable


@runtime_checkable
class BundleSource(Protocol):
    """
    Public backend contract used by the sync engine.

    A source is a thin async wrapper around a concrete transport (usually the REST
    API). The engine only ever calls these primitives and records whatever they raise
    as a fetch failure.

    Sources should:
      - return parsed JSON mappings from get_bundle()/get_contents_info()
      - return the summary text from fetch_summary()
      - raise ConnectorError for transport and HTTP status failures
      - expose a best-effort lifecycle via aclose() / async context manager
    """

    async def get_bundle(self, identity: str) -> Dict[str, Any]: ...

    async def get_contents_info(self, identity: str, *, depth: int = 1) -> Dict[str, Any]: ...

    async def fetch_summary(self, identity: str, path: str) -> str: ...

    async def aclose(self) -> None: ...
