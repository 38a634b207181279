# catalog_ingest/sync/hashing.py
import hashlib
import json
from typing import Any, Callable, Iterable

from ..models import SyncableDocument

Serializer = Callable[[Any], str]


def canonical_json(payload: Any) -> str:
    """Key-sorted, whitespace-free JSON. Equal payloads always serialise identically."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_hash(payload: Any, serializer: Serializer = canonical_json) -> str:
    return hashlib.sha256(serializer(payload).encode("utf-8")).hexdigest()


def _strip(value: Any, keys: frozenset) -> Any:
    if isinstance(value, dict):
        return {k: _strip(v, keys) for k, v in value.items() if k not in keys}
    if isinstance(value, list):
        return [_strip(v, keys) for v in value]
    return value


def volatile_serializer(keys: Iterable[str]) -> Serializer:
    """
    Canonical serializer that ignores run-specific keys at any depth.

    Timestamps such as "extractedAt" differ between runs of the same record
    and must not affect its hash.
    """
    ignored = frozenset(keys)

    def serialize(payload: Any) -> str:
        return canonical_json(_strip(payload, ignored))

    return serialize


def make_document(
    collection: str,
    document_id: str,
    payload: Any,
    serializer: Serializer = canonical_json,
) -> SyncableDocument:
    return SyncableDocument(
        collection_name=collection,
        document_id=document_id,
        payload=payload,
        content_hash=content_hash(payload, serializer),
    )
