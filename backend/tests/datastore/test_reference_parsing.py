"""
Reference parsing: paths, resource names and native reference objects.
"""
from __future__ import annotations

import pytest

from backend.datastore.ports import BlobRef, Reference, document_path


class _NativeRef:
    def __init__(self, path):
        self.path = path


@pytest.mark.parametrize(
    "value,expected",
    [
        ("teams/t1", Reference("teams", "t1")),
        ("/teams/t1/", Reference("teams", "t1")),
        ("teams/t1/tags/tg1", Reference("teams/t1/tags", "tg1")),
        ("projects/p/databases/(default)/documents/teams/t1", Reference("teams", "t1")),
        (_NativeRef("users/u1"), Reference("users", "u1")),
    ],
)
def test_parse_reference_shapes(value, expected):
    assert Reference.parse(value) == expected


@pytest.mark.parametrize("value", [None, "", "teams", "teams/t1/tags", {"id": "tg1"}, 42, _NativeRef(None)])
def test_parse_rejects_non_references(value):
    assert Reference.parse(value) is None


def test_parse_returns_reference_unchanged():
    ref = Reference("teams/t1/tags", "tg1")

    assert Reference.parse(ref) is ref
    assert ref.path == "teams/t1/tags/tg1"
    assert ref.collection_id == "tags"


def test_from_path_raises_for_collection_paths():
    with pytest.raises(ValueError, match="invalid_document_path"):
        Reference.from_path("teams/t1/coaches")


def test_document_path_and_blob_name():
    assert document_path("teams", "/t1/", "plans") == "teams/t1/plans"
    assert document_path("users", "", "u1") == "users/u1"
    assert BlobRef("teams/t1/files/a.pdf").name == "a.pdf"
