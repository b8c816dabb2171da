from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import anyio
from pydantic import ValidationError

from bundlesync.core.connectors.base import BundleSource
from bundlesync.core.exception import ContentsInfoFetchError, DocumentError, FetchError, SummaryFetchError
from bundlesync.core.spec import ContentsInfoSpec
from bundlesync.core.views import ContentSummary

log = logging.getLogger("bundlesync.core.contents")

# Directory entries whose summaries are surfaced for a directory root.
SUMMARY_STREAMS: Tuple[str, ...] = ("stdout", "stderr")

_CLEARED: Dict[str, Optional[str]] = {"file_contents": None, "stdout": None, "stderr": None}


class RootType(str, Enum):
    FILE = "file"
    LINK = "link"
    DIRECTORY = "directory"

    @classmethod
    def parse(cls, value: str) -> Optional["RootType"]:
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class ContentUpdate:
    """Result of one contents tick: the ContentSummary fields to replace plus failures.

    Fields missing from `changes` keep their current value.
    """

    changes: Dict[str, Optional[str]] = field(default_factory=dict)
    errors: Tuple[FetchError, ...] = ()

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def apply(self, current: ContentSummary) -> ContentSummary:
        if not self.changes:
            return current
        return replace(current, **self.changes)


def parse_contents_info(payload: Any) -> Optional[ContentsInfoSpec]:
    """Validate a contents-info response; `{"data": {...}}` envelopes are unwrapped.

    Returns None for an empty payload.
    """
    if isinstance(payload, dict) and "data" in payload and "type" not in payload:
        payload = payload["data"]
    if not payload:
        return None
    try:
        return ContentsInfoSpec.model_validate(payload)
    except ValidationError as e:
        raise DocumentError(f"Invalid contents info: {e.error_count()} error(s)") from e


class ContentSynchronizer:
    """Fetches the content-tree info of a bundle root and the matching summaries."""

    def __init__(self, source: BundleSource, *, depth: int = 1, record_summary_errors: bool = True):
        self._source = source
        self.depth = depth
        self.record_summary_errors = record_summary_errors

    async def synchronize(self, identity: str) -> ContentUpdate:
        try:
            payload = await self._source.get_contents_info(identity, depth=self.depth)
            info = parse_contents_info(payload)
        except Exception as e:
            err = ContentsInfoFetchError(identity, str(e))
            err.__cause__ = e
            return ContentUpdate(changes=dict(_CLEARED), errors=(err,))

        if info is None:
            return ContentUpdate()

        root = RootType.parse(info.type)
        if root is None:
            log.warning(f"Unhandled content root type={info.type!r} for bundle {identity}; contents unchanged")
            return ContentUpdate()
        if root is RootType.DIRECTORY:
            return await self._sync_directory(identity, info)
        return await self._sync_file(identity)

    async def _sync_file(self, identity: str) -> ContentUpdate:
        try:
            blob = await self._source.fetch_summary(identity, "/")
        except Exception as e:
            err = SummaryFetchError(identity, str(e), target="file")
            err.__cause__ = e
            return ContentUpdate(changes=dict(_CLEARED), errors=(err,))
        return ContentUpdate(changes={"file_contents": blob, "stdout": None, "stderr": None})

    async def _sync_directory(self, identity: str, info: ContentsInfoSpec) -> ContentUpdate:
        names = info.entry_names()
        changes: Dict[str, Optional[str]] = {"file_contents": None}
        errors: List[FetchError] = []

        async def _fetch(name: str) -> None:
            try:
                changes[name] = await self._source.fetch_summary(identity, "/" + name)
            except Exception as e:
                # The field keeps its current value; the sibling fetch carries on.
                log.warning(f"Summary fetch failed bundle={identity} target={name}: {e}")
                if self.record_summary_errors:
                    err = SummaryFetchError(identity, str(e), target=name)
                    err.__cause__ = e
                    errors.append(err)

        async with anyio.create_task_group() as tg:
            for name in SUMMARY_STREAMS:
                if name in names:
                    tg.start_soon(_fetch, name)
                else:
                    changes[name] = None

        return ContentUpdate(changes=changes, errors=tuple(errors))
