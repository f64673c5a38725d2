"""
Store ports used by the data migration engine.

Why:
    The engine moves a user's document graph between two backend projects. It
    must not depend on a specific cloud SDK, so it talks to these small
    protocols only. Adapters (Firestore, Firebase Storage, Supabase Storage,
    in-memory) live next to this module; tests supply the in-memory ones.

Reference handling:
    Legacy data stores pointers either as native document-reference objects or
    as serialized path strings ("teams/abc"). Adapters normalize native objects
    into `Reference` on read and convert `Reference` back on write. Path strings
    stored in reference fields are parsed with `Reference.parse` by the engine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol


_DOCUMENTS_MARKER = "/documents/"


@dataclass(frozen=True)
class Reference:
    """Pointer to a document: (collection path, document id).

    `collection_path` may contain nested segments ("teams/t1/tags"). The value
    is store-agnostic: writing it through the new store's adapter makes it
    point into the new store.
    """

    collection_path: str
    id: str

    @property
    def path(self) -> str:
        return f"{self.collection_path}/{self.id}"

    @property
    def collection_id(self) -> str:
        """Last collection segment, e.g. "tags" for "teams/t1/tags"."""
        return self.collection_path.rsplit("/", 1)[-1]

    @classmethod
    def from_path(cls, path: str) -> "Reference":
        ref = cls.parse(path)
        if ref is None:
            raise ValueError("invalid_document_path")
        return ref

    @classmethod
    def parse(cls, value: Any) -> Optional["Reference"]:
        """Return a Reference for reference-shaped values, else None.

        Accepted shapes:
            - a `Reference` (returned unchanged)
            - a document path string with an even number of segments, with or
              without leading slash; fully qualified Firestore resource names
              ("projects/p/databases/(default)/documents/teams/t1") are trimmed
            - a native reference object exposing a string `.path`

        Dicts are never references: a dict carrying its own `id` is an embedded
        object (e.g. a Tag) and is left to the caller.
        """
        if isinstance(value, Reference):
            return value
        if isinstance(value, dict) or value is None:
            return None
        if isinstance(value, str):
            raw = value
        else:
            raw = getattr(value, "path", None)
            if not isinstance(raw, str):
                return None
        if _DOCUMENTS_MARKER in raw:
            raw = raw.split(_DOCUMENTS_MARKER, 1)[1]
        segments = [s for s in raw.strip().strip("/").split("/") if s]
        if len(segments) < 2 or len(segments) % 2 != 0:
            return None
        return cls("/".join(segments[:-1]), segments[-1])

    def __str__(self) -> str:  # pragma: no cover - debugging helper
        return self.path


def document_path(*segments: str) -> str:
    """Join path segments into a document/collection path ("teams", "t1" → "teams/t1")."""
    return "/".join(s.strip("/") for s in segments if s)


@dataclass(frozen=True)
class Document:
    """A document read from a collection listing."""

    id: str
    path: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BlobRef:
    """A binary object located by its full path inside a bucket."""

    path: str
    content_type: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class DocumentStore(Protocol):
    """CRUD subset of a document database with references.

    Permissions:
        Implementations run with server-side (service account) credentials.
        Errors from the underlying client propagate unchanged; timeouts are
        the client's responsibility.
    """

    def get_document(self, path: str) -> Optional[Dict[str, Any]]: ...

    def set_document(self, path: str, fields: Dict[str, Any], *, merge: bool = False) -> None: ...

    def list_collection(self, path: str) -> List[Document]: ...


class BlobStore(Protocol):
    """Minimal object store interface: list/get/put binary objects by path."""

    def list_blobs(self, prefix: str) -> List[BlobRef]: ...

    def get_blob_bytes(self, ref: BlobRef) -> bytes: ...

    def put_blob_bytes(self, path: str, body: bytes, *, content_type: Optional[str] = None) -> None: ...


__all__ = [
    "Reference",
    "Document",
    "BlobRef",
    "DocumentStore",
    "BlobStore",
    "document_path",
]
