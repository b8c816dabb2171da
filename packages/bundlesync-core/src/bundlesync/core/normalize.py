"""Normalize JSON:API bundle documents into flat view records.

A JSON:API document encodes every entity once (in `data` or `included`) and links
them through `relationships` that only carry `{type, id}` references. The store
below resolves those references into embedded entities so callers never deal with
foreign keys:

    {"id": "0x1", "type": "bundles", "owner": {"id": "0x9", "type": "users", "user_name": "codalab"}}

References to resources that are not part of `included` resolve to a stub holding
only `id` and `type`. Cycles are cut the same way.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from bundlesync.core.exception import DocumentError
from bundlesync.core.spec import JsonApiDocument, RelationshipSpec, ResourceIdentifier, ResourceObject
from bundlesync.core.views import BundleMetadataView

log = logging.getLogger("bundlesync.core.normalize")

_Key = Tuple[str, str]


def _stub(ref: ResourceIdentifier) -> Dict[str, Any]:
    return {"id": ref.id, "type": ref.type}


class JsonApiStore:
    """Indexes the resources of one JSON:API document and resolves relationships."""

    def __init__(self) -> None:
        self._records: Dict[_Key, ResourceObject] = {}

    def _index(self, resource: ResourceObject) -> None:
        self._records[(resource.type, resource.id)] = resource

    def sync(self, document: Any) -> Tuple[Any, JsonApiDocument]:
        """Load a document and return (resolved primary data, parsed document)."""
        try:
            doc = JsonApiDocument.model_validate(document)
        except ValidationError as e:
            raise DocumentError(f"Invalid JSON:API document: {e.error_count()} error(s)") from e

        primary: List[ResourceObject]
        if doc.data is None:
            primary = []
        elif isinstance(doc.data, list):
            primary = list(doc.data)
        else:
            primary = [doc.data]
        for r in [*primary, *doc.included]:
            self._index(r)

        if doc.data is None:
            return None, doc
        if isinstance(doc.data, list):
            return [self.resolve(r) for r in doc.data], doc
        return self.resolve(doc.data), doc

    def resolve(self, ref: ResourceIdentifier | ResourceObject, _trail: Tuple[_Key, ...] = ()) -> Dict[str, Any]:
        key = (ref.type, ref.id)
        record = self._records.get(key)
        if record is None or key in _trail:
            return _stub(ref)

        out: Dict[str, Any] = {"id": record.id, "type": record.type}
        out.update(record.attributes)
        trail = _trail + (key,)
        for name, rel in record.relationships.items():
            if not rel.has_data:
                continue
            out[name] = self._resolve_relationship(rel, trail)
        return out

    def _resolve_relationship(self, rel: RelationshipSpec, trail: Tuple[_Key, ...]) -> Any:
        if rel.data is None:
            return None
        if isinstance(rel.data, list):
            return [self.resolve(r, trail) for r in rel.data]
        return self.resolve(rel.data, trail)


def normalize_bundle_document(document: Any) -> BundleMetadataView:
    """Build a BundleMetadataView from the bundle metadata endpoint's response."""
    store = JsonApiStore()
    entity, doc = store.sync(document)
    if not isinstance(entity, dict) or not isinstance(doc.data, ResourceObject):
        raise DocumentError("Bundle document must carry a single resource in `data`")

    resource = doc.data
    # Resource-level meta wins over document-level meta.
    meta = {**doc.meta, **resource.meta}
    relationships = {name: entity[name] for name in resource.relationships if name in entity}

    metadata = resource.attributes.get("metadata")
    editable = meta.get("editable_metadata_keys") or []
    if not isinstance(editable, list):
        log.warning(f"Ignoring non-list editable_metadata_keys for bundle {resource.id}")
        editable = []

    owner = relationships.get("owner")
    return BundleMetadataView(
        id=resource.id,
        type=resource.type,
        state=resource.attributes.get("state"),
        bundle_type=resource.attributes.get("bundle_type"),
        attributes=dict(resource.attributes),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
        owner=owner if isinstance(owner, dict) else None,
        group_permissions=_as_list(relationships.get("group_permissions")),
        host_worksheets=_as_list(relationships.get("host_worksheets")),
        relationships=relationships,
        editable_metadata_fields=[str(k) for k in editable],
        metadata_type=meta.get("metadata_type"),
    )


def _as_list(value: Optional[Any]) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
