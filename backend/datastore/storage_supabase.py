"""
Supabase-backed blob store.

This adapter implements the `BlobStore` port using a provided Supabase client.
It is intentionally duck-typed to avoid a hard dependency during testing. The
client is expected to expose `.storage.from_(bucket)` (or `.from_(bucket)` for a
bare storage3 client) which returns an object offering:

- list(path, options) -> [ { name, id, metadata } ]   (folders have id None)
- download(path) -> bytes
- upload(path, body, options) -> Any

Security:
- The caller must ensure the client is initialized with the Service Role key.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from .ports import BlobRef

_PAGE_SIZE = 100


class SupabaseBlobStore:
    """BlobStore using a supabase client for Storage operations."""

    def __init__(self, client: Any, bucket: str):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client
        self._bucket_name = bucket

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client.

        Supports two client shapes:
        - supabase.create_client(...): expose `.storage.from_(bucket)`
        - storage3 SyncStorageClient: expose `.from_(bucket)` directly
        """
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(self._bucket_name)
        if hasattr(c, "from_"):
            return c.from_(self._bucket_name)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    def _norm_key(self, key: str) -> str:
        # Normalize key to be relative to the bucket (storage3 prepends the bucket id)
        norm_key = key.lstrip("/")
        prefix = f"{self._bucket_name}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    @staticmethod
    def _entries(res: Any) -> List[Dict[str, Any]]:
        # supabase-py variants report either a bare list or nested `data`
        if isinstance(res, dict):
            res = res.get("data") or []
        return [e for e in (res or []) if isinstance(e, dict)]

    # --- Port methods --------------------------------------------------------------

    def list_blobs(self, prefix: str) -> List[BlobRef]:
        """List objects below `prefix`, descending into folders."""
        b = self._bucket()
        refs: List[BlobRef] = []
        pending = [self._norm_key(prefix).rstrip("/")]
        while pending:
            folder = pending.pop()
            offset = 0
            while True:
                page = self._entries(b.list(folder, {"limit": _PAGE_SIZE, "offset": offset}))
                for entry in page:
                    name = entry.get("name")
                    if not name:
                        continue
                    full = f"{folder}/{name}" if folder else name
                    if entry.get("id") is None:
                        pending.append(full)
                        continue
                    meta = entry.get("metadata") or {}
                    refs.append(BlobRef(path=full, content_type=meta.get("mimetype")))
                if len(page) < _PAGE_SIZE:
                    break
                offset += _PAGE_SIZE
        return sorted(refs, key=lambda r: r.path)

    def get_blob_bytes(self, ref: BlobRef) -> bytes:
        res = self._bucket().download(self._norm_key(ref.path))
        if not isinstance(res, (bytes, bytearray)):
            raise RuntimeError("failed_to_download_object")
        return bytes(res)

    def put_blob_bytes(self, path: str, body: bytes, *, content_type: Optional[str] = None) -> None:
        """Upload a binary object, replacing any existing object at `path`.

        Passes content-type via options to be compatible across client versions
        (supports both "content-type" and "contentType" keys). Client errors
        propagate.
        """
        ctype = content_type or "application/octet-stream"
        opts = {"content-type": ctype, "contentType": ctype, "upsert": "true"}
        self._bucket().upload(self._norm_key(path), body, opts)


__all__ = ["SupabaseBlobStore"]
