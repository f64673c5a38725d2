"""
In-memory document and blob stores.

Intent:
    Implement the store ports without any backend so the migration engine can
    be exercised in unit tests and local dry runs. Behaviour mirrors the
    managed backend closely enough for migration semantics:

    - `set_document(merge=True)` deep-merges nested maps, leaving fields that
      are absent from the payload untouched.
    - Reads and writes copy data, so callers never alias stored state.
    - `list_collection` returns direct children only, ordered by id.

Failure injection:
    `fail_writes_under` / `fail_lists_under` (document stores) and
    `fail_reads` (blob stores) let tests simulate backend errors for a path.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Set, Tuple

from .ports import BlobRef, Document


class StoreUnavailable(RuntimeError):
    """Raised by in-memory stores when a failure was injected for a path."""


def _deep_merge(target: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in patch.items():
        current = target.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            target[key] = _deep_merge(dict(current), value)
        else:
            target[key] = copy.deepcopy(value)
    return target


def _matches(path: str, prefixes: Set[str]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


class InMemoryDocumentStore:
    """Dictionary-backed `DocumentStore`."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._docs: Dict[str, Dict[str, Any]] = {}
        self.writes: List[Tuple[str, bool]] = []
        self.fail_writes_under: Set[str] = set()
        self.fail_lists_under: Set[str] = set()
        for path, data in (documents or {}).items():
            self._docs[path.strip("/")] = copy.deepcopy(data)

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        data = self._docs.get(path.strip("/"))
        return copy.deepcopy(data) if data is not None else None

    def set_document(self, path: str, fields: Dict[str, Any], *, merge: bool = False) -> None:
        key = path.strip("/")
        if _matches(key, self.fail_writes_under):
            raise StoreUnavailable(f"write_failed:{key}")
        self.writes.append((key, merge))
        if merge and key in self._docs:
            self._docs[key] = _deep_merge(self._docs[key], fields)
        else:
            self._docs[key] = copy.deepcopy(fields)

    def list_collection(self, path: str) -> List[Document]:
        prefix = path.strip("/")
        if _matches(prefix, self.fail_lists_under):
            raise StoreUnavailable(f"list_failed:{prefix}")
        depth = prefix.count("/") + 2
        docs = [
            Document(id=key.rsplit("/", 1)[-1], path=key, data=copy.deepcopy(data))
            for key, data in self._docs.items()
            if key.startswith(prefix + "/") and key.count("/") + 1 == depth
        ]
        return sorted(docs, key=lambda d: d.id)

    # --- Test helpers ----------------------------------------------------------

    def paths(self) -> List[str]:
        return sorted(self._docs)

    def __contains__(self, path: str) -> bool:
        return path.strip("/") in self._docs


class InMemoryBlobStore:
    """Dictionary-backed `BlobStore` keyed by full object path."""

    def __init__(self, blobs: Optional[Dict[str, bytes]] = None) -> None:
        self._blobs: Dict[str, Tuple[bytes, Optional[str]]] = {}
        self.fail_reads: Set[str] = set()
        for path, body in (blobs or {}).items():
            self._blobs[path.strip("/")] = (bytes(body), None)

    def list_blobs(self, prefix: str) -> List[BlobRef]:
        base = prefix.strip("/") + "/"
        return [
            BlobRef(path=path, content_type=ctype)
            for path, (_body, ctype) in sorted(self._blobs.items())
            if path.startswith(base)
        ]

    def get_blob_bytes(self, ref: BlobRef) -> bytes:
        key = ref.path.strip("/")
        if key in self.fail_reads:
            raise StoreUnavailable(f"read_failed:{key}")
        try:
            return self._blobs[key][0]
        except KeyError:
            raise FileNotFoundError(key) from None

    def put_blob_bytes(self, path: str, body: bytes, *, content_type: Optional[str] = None) -> None:
        self._blobs[path.strip("/")] = (bytes(body), content_type)

    def paths(self) -> List[str]:
        return sorted(self._blobs)


__all__ = ["InMemoryDocumentStore", "InMemoryBlobStore", "StoreUnavailable"]
