"""
Firestore-backed document store.

This adapter implements `DocumentStore` on top of a provided Firestore client
(`google.cloud.firestore.Client` or `firebase_admin.firestore.client(app)`).
It is duck-typed to avoid a hard dependency during testing. The client is
expected to expose:

- document(path) -> object with get() -> snapshot(.exists, .to_dict()) and set(data, merge=...)
- collection(path) -> object with stream() -> iterable of snapshots (.id, .to_dict())

Reference boundary:
    Native `DocumentReference` values found in read data are converted into
    `Reference`; `Reference` values in written data are converted back into
    native references of *this* client. Copying a document from the legacy
    adapter into the new adapter therefore retargets every pointer to the new
    project without the engine knowing about projects at all.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .ports import Document, Reference


def _is_native_reference(value: Any) -> bool:
    # DocumentReference exposes path/id/parent; snapshots and plain values do not.
    return (
        not isinstance(value, (str, bytes, dict, list, tuple, Reference))
        and isinstance(getattr(value, "path", None), str)
        and isinstance(getattr(value, "id", None), str)
        and hasattr(value, "parent")
    )


class FirestoreDocumentStore:
    """DocumentStore using a Firestore client."""

    def __init__(self, client: Any):
        if client is None or not hasattr(client, "document") or not hasattr(client, "collection"):
            raise RuntimeError("invalid_firestore_client")
        self._client = client

    # --- Conversion ------------------------------------------------------------

    def _from_native(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._from_native(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._from_native(v) for v in value]
        if _is_native_reference(value):
            return Reference.parse(value)
        return value

    def _to_native(self, value: Any) -> Any:
        if isinstance(value, Reference):
            return self._client.document(value.path)
        if isinstance(value, dict):
            return {k: self._to_native(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [self._to_native(v) for v in value]
        return value

    # --- Port methods ----------------------------------------------------------

    def get_document(self, path: str) -> Optional[Dict[str, Any]]:
        snap = self._client.document(path.strip("/")).get()
        if not getattr(snap, "exists", False):
            return None
        return self._from_native(snap.to_dict() or {})

    def set_document(self, path: str, fields: Dict[str, Any], *, merge: bool = False) -> None:
        self._client.document(path.strip("/")).set(self._to_native(fields), merge=merge)

    def list_collection(self, path: str) -> List[Document]:
        base = path.strip("/")
        docs: List[Document] = []
        for snap in self._client.collection(base).stream():
            docs.append(
                Document(
                    id=snap.id,
                    path=f"{base}/{snap.id}",
                    data=self._from_native(snap.to_dict() or {}),
                )
            )
        return docs


__all__ = ["FirestoreDocumentStore"]
