"""
Supabase blob store over storage client stubs (supabase and bare storage3 shapes).
"""
from __future__ import annotations

import pytest

from backend.datastore.ports import BlobRef
from backend.datastore.storage_supabase import SupabaseBlobStore


class _BucketStub:
    def __init__(self, tree=None):
        # folder -> list of entries as returned by storage3 `list`
        self.tree = tree or {}
        self.objects = {}
        self.calls = {"list": [], "download": [], "upload": []}

    def list(self, path, options=None):
        self.calls["list"].append((path, dict(options or {})))
        entries = self.tree.get(path, [])
        offset = (options or {}).get("offset", 0)
        limit = (options or {}).get("limit", 100)
        return entries[offset:offset + limit]

    def download(self, path):
        self.calls["download"].append(path)
        return self.objects.get(path, {"error": "not_found"})

    def upload(self, path, body, opts=None):
        self.calls["upload"].append((path, body, dict(opts or {})))
        self.objects[path] = body
        return {"data": {"Key": path}}


class _StorageStub:
    def __init__(self, bucket):
        self.bucket = bucket
        self.requested = []

    def from_(self, bucket):
        self.requested.append(bucket)
        return self.bucket


class _SupabaseClientStub:
    def __init__(self, bucket):
        self.storage = _StorageStub(bucket)


def _file(name, mimetype="application/pdf"):
    return {"name": name, "id": f"id-{name}", "metadata": {"mimetype": mimetype}}


def test_list_descends_into_folders():
    bucket = _BucketStub(
        {
            "teams/t1/files": [_file("a.pdf"), {"name": "sub", "id": None}],
            "teams/t1/files/sub": [_file("b.png", "image/png")],
        }
    )
    client = _SupabaseClientStub(bucket)

    refs = SupabaseBlobStore(client, "team-files").list_blobs("/teams/t1/files/")

    assert refs == [
        BlobRef("teams/t1/files/a.pdf", "application/pdf"),
        BlobRef("teams/t1/files/sub/b.png", "image/png"),
    ]
    assert set(client.storage.requested) == {"team-files"}


def test_list_pages_through_large_folders():
    entries = [_file(f"f{i:03d}") for i in range(150)]
    bucket = _BucketStub({"teams/t1/files": entries})

    refs = SupabaseBlobStore(_SupabaseClientStub(bucket), "team-files").list_blobs("teams/t1/files")

    assert len(refs) == 150
    assert [opts["offset"] for _path, opts in bucket.calls["list"]] == [0, 100]


def test_bare_storage3_client_and_bucket_prefixed_keys():
    bucket = _BucketStub()
    bucket.objects["teams/t1/files/a.pdf"] = b"A"
    store = SupabaseBlobStore(_StorageStub(bucket), "team-files")

    assert store.get_blob_bytes(BlobRef("team-files/teams/t1/files/a.pdf")) == b"A"
    store.put_blob_bytes("teams/t1/files/b.txt", b"B", content_type="text/plain")

    path, body, opts = bucket.calls["upload"][0]
    assert (path, body) == ("teams/t1/files/b.txt", b"B")
    assert opts["content-type"] == "text/plain" and opts["upsert"] == "true"


def test_download_error_payload_raises():
    store = SupabaseBlobStore(_SupabaseClientStub(_BucketStub()), "team-files")

    with pytest.raises(RuntimeError, match="failed_to_download_object"):
        store.get_blob_bytes(BlobRef("teams/t1/files/missing.pdf"))


def test_invalid_client_raises():
    with pytest.raises(RuntimeError, match="invalid_supabase_client"):
        SupabaseBlobStore(object(), "team-files").list_blobs("teams/t1/files")
