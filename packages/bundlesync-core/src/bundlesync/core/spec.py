from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict

# ---------------------------------------------------------------------------
# JSON:API documents (bundle metadata endpoint)
# ---------------------------------------------------------------------------


class ResourceIdentifier(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    type: str
    id: str


class RelationshipSpec(BaseModel):
    """A relationship object. `data` is absent when only links are provided."""
    model_config = ConfigDict(extra="allow")

    data: Union[ResourceIdentifier, List[ResourceIdentifier], None] = None

    @property
    def has_data(self) -> bool:
        return "data" in self.model_fields_set


class ResourceObject(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    type: str
    id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    relationships: Dict[str, RelationshipSpec] = Field(default_factory=dict)
    meta: Dict[str, Any] = Field(default_factory=dict)


class JsonApiDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    data: Union[ResourceObject, List[ResourceObject], None] = None
    included: List[ResourceObject] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Contents info (bundle contents endpoint)
# ---------------------------------------------------------------------------


class ContentsEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    type: Optional[str] = None
    size: Optional[int] = None


class ContentsInfoSpec(BaseModel):
    """Root entry of a bundle's content tree (depth-limited)."""
    model_config = ConfigDict(extra="allow")

    type: str
    name: Optional[str] = None
    contents: Optional[List[ContentsEntry]] = None

    def entry_names(self) -> set[str]:
        return {e.name for e in self.contents or []}


__all__ = [
    "ResourceIdentifier",
    "RelationshipSpec",
    "ResourceObject",
    "JsonApiDocument",
    "ContentsEntry",
    "ContentsInfoSpec",
]
