from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import sys

# Allow running tests without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import anyio
import pytest
from bundlesync.core.exception import ConnectorError
from bundlesync.core.runtime.settings import SyncSettings


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def settings():
    return SyncSettings(
        base_url="http://codalab.test/rest",
        refresh_interval=4.0,
        keepalive_interval=4.0,
        log_level="INFO",
    )


def bundle_doc(
    uuid: str = "0x1",
    *,
    state: Optional[str] = "running",
    bundle_type: str = "run",
    editable: Optional[List[str]] = None,
    metadata_type: str = "run",
) -> Dict[str, Any]:
    """A bundle document shaped like the metadata endpoint's response."""
    attributes: Dict[str, Any] = {
        "uuid": uuid,
        "bundle_type": bundle_type,
        "command": "python train.py",
        "metadata": {"name": "train", "description": "a run"},
    }
    if state is not None:
        attributes["state"] = state
    return {
        "data": {
            "type": "bundles",
            "id": uuid,
            "attributes": attributes,
            "relationships": {
                "owner": {"data": {"type": "users", "id": "0xu1"}},
                "group_permissions": {"data": [{"type": "bundle-permissions", "id": "0xp1"}]},
                "host_worksheets": {"data": [{"type": "worksheets", "id": "0xw1"}]},
            },
            "meta": {
                "editable_metadata_keys": editable if editable is not None else ["name", "description"],
                "metadata_type": metadata_type,
            },
        },
        "included": [
            {"type": "users", "id": "0xu1", "attributes": {"user_name": "codalab"}},
            {
                "type": "bundle-permissions",
                "id": "0xp1",
                "attributes": {"group_name": "public", "permission": 1},
            },
            {"type": "worksheets", "id": "0xw1", "attributes": {"name": "home", "title": "Home"}},
        ],
    }


class FakeSource:
    """In-memory BundleSource.

    Responses are queued per identity; the last queued response repeats. A queued
    Exception is raised instead of returned. Gates let a test hold a call in flight.
    """

    def __init__(self) -> None:
        self.bundles: Dict[str, List[Any]] = {}
        self.infos: Dict[str, List[Any]] = {}
        self.summaries: Dict[Tuple[str, str], Any] = {}
        self.gates: Dict[Tuple[str, str], anyio.Event] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.in_flight: Dict[str, int] = {}
        self.max_in_flight: Dict[str, int] = {}
        self.closed = False

    # -- test helpers -------------------------------------------------
    def count(self, method: str, identity: Optional[str] = None, path: Optional[str] = None) -> int:
        return sum(
            1
            for (m, i, p) in self.calls
            if m == method and (identity is None or i == identity) and (path is None or p == path)
        )

    def hold(self, method: str, identity: str) -> anyio.Event:
        ev = anyio.Event()
        self.gates[(method, identity)] = ev
        return ev

    @staticmethod
    def _next(queue: List[Any]) -> Any:
        item = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def _wait(self, method: str, identity: str) -> None:
        self.in_flight[method] = self.in_flight.get(method, 0) + 1
        self.max_in_flight[method] = max(self.max_in_flight.get(method, 0), self.in_flight[method])
        try:
            ev = self.gates.get((method, identity))
            if ev is not None:
                await ev.wait()
            else:
                await anyio.sleep(0)
        finally:
            self.in_flight[method] -= 1

    # -- BundleSource -------------------------------------------------
    async def get_bundle(self, identity: str) -> Dict[str, Any]:
        self.calls.append(("bundle", identity, ""))
        await self._wait("bundle", identity)
        if identity not in self.bundles:
            raise ConnectorError(f"REST request returned HTTP 404: GET /bundles/{identity}")
        return self._next(self.bundles[identity])

    async def get_contents_info(self, identity: str, *, depth: int = 1) -> Dict[str, Any]:
        self.calls.append(("info", identity, str(depth)))
        await self._wait("info", identity)
        if identity not in self.infos:
            raise ConnectorError(f"REST request returned HTTP 404: GET /bundles/{identity}/contents/info/")
        return self._next(self.infos[identity])

    async def fetch_summary(self, identity: str, path: str) -> str:
        self.calls.append(("summary", identity, path))
        await self._wait("summary", identity)
        item = self.summaries.get((identity, path))
        if item is None:
            raise ConnectorError(f"REST request returned HTTP 404: GET /bundles/{identity}/contents/blob{path}")
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True

    async def __aenter__(self) -> "FakeSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


@pytest.fixture()
def source():
    return FakeSource()
