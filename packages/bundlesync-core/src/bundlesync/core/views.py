from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from bundlesync.core.exception import FetchError

PRIVATE_BUNDLE_TYPE = "private"


class ViewState(str, Enum):
    """What the presentation layer should show for a snapshot."""

    PLACEHOLDER = "placeholder"
    RESTRICTED = "restricted"
    READY = "ready"


@dataclass(frozen=True)
class BundleMetadataView:
    """Flat projection of a bundle's JSON:API document.

    Relationship values are embedded entities (see normalize.JsonApiStore).
    A new instance is built for every successful metadata fetch.
    """

    id: str
    type: str
    state: Optional[str]
    bundle_type: Optional[str]
    attributes: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    owner: Optional[Dict[str, Any]] = None
    group_permissions: List[Dict[str, Any]] = field(default_factory=list)
    host_worksheets: List[Dict[str, Any]] = field(default_factory=list)
    relationships: Dict[str, Any] = field(default_factory=dict)
    editable_metadata_fields: List[str] = field(default_factory=list)
    metadata_type: Optional[str] = None

    @property
    def is_private(self) -> bool:
        return self.bundle_type == PRIVATE_BUNDLE_TYPE

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "state": self.state,
            "bundle_type": self.bundle_type,
            "attributes": dict(self.attributes),
            "metadata": dict(self.metadata),
            "owner": self.owner,
            "group_permissions": list(self.group_permissions),
            "host_worksheets": list(self.host_worksheets),
            "editable_metadata_fields": list(self.editable_metadata_fields),
            "metadata_type": self.metadata_type,
        }


@dataclass(frozen=True)
class ContentSummary:
    """Summaries of a bundle's outputs.

    A file or link root fills `file_contents` only; a directory root fills
    `stdout`/`stderr` when those entries exist. None means "not present".
    """

    file_contents: Optional[str] = None
    stdout: Optional[str] = None
    stderr: Optional[str] = None

    @classmethod
    def empty(cls) -> "ContentSummary":
        return cls()

    def as_dict(self) -> dict:
        return {"file_contents": self.file_contents, "stdout": self.stdout, "stderr": self.stderr}


@dataclass(frozen=True)
class SyncSnapshot:
    identity: Optional[str]
    metadata: Optional[BundleMetadataView] = None
    content: ContentSummary = field(default_factory=ContentSummary)
    errors: Tuple[FetchError, ...] = ()

    @property
    def view_state(self) -> ViewState:
        if self.metadata is None:
            return ViewState.PLACEHOLDER
        if self.metadata.is_private:
            return ViewState.RESTRICTED
        return ViewState.READY

    @property
    def ready(self) -> bool:
        return self.metadata is not None

    @property
    def restricted(self) -> bool:
        return self.view_state is ViewState.RESTRICTED

    def as_dict(self) -> dict:
        return {
            "identity": self.identity,
            "view_state": self.view_state.value,
            "metadata": self.metadata.as_dict() if self.metadata is not None else None,
            "content": self.content.as_dict(),
            "errors": [e.as_dict() for e in self.errors],
        }
