"""
Firebase Storage (Google Cloud Storage) blob store.

Duck-typed over a GCS bucket as returned by `firebase_admin.storage.bucket(...)`
or `google.cloud.storage.Client().bucket(name)`:

- list_blobs(prefix=...) -> iterable of blobs (.name, .content_type)
- blob(name) -> object with download_as_bytes() and upload_from_string(data, content_type=...)
"""
from __future__ import annotations

from typing import Any, List, Optional

from .ports import BlobRef


class FirebaseStorageBlobStore:
    """BlobStore backed by a GCS bucket object."""

    def __init__(self, bucket: Any):
        if bucket is None or not hasattr(bucket, "list_blobs") or not hasattr(bucket, "blob"):
            raise RuntimeError("invalid_storage_bucket")
        self._bucket = bucket

    def list_blobs(self, prefix: str) -> List[BlobRef]:
        base = prefix.strip("/") + "/"
        refs: List[BlobRef] = []
        for blob in self._bucket.list_blobs(prefix=base):
            name = getattr(blob, "name", "") or ""
            # Console-created "folders" show up as zero-byte placeholders ending in "/".
            if not name or name.endswith("/"):
                continue
            refs.append(BlobRef(path=name, content_type=getattr(blob, "content_type", None)))
        return refs

    def get_blob_bytes(self, ref: BlobRef) -> bytes:
        return self._bucket.blob(ref.path).download_as_bytes()

    def put_blob_bytes(self, path: str, body: bytes, *, content_type: Optional[str] = None) -> None:
        blob = self._bucket.blob(path.lstrip("/"))
        blob.upload_from_string(body, content_type=content_type or "application/octet-stream")


__all__ = ["FirebaseStorageBlobStore"]
