"""
Pytest configuration for backend tests.

Why: Make `backend.*` importable from the repository root and give every test
a clean migration environment (no real project configured, in-memory stores
seeded per test).
"""
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from backend.datastore.memory import InMemoryBlobStore, InMemoryDocumentStore  # noqa: E402


_MIGRATION_ENV = (
    "LEGACY_FIREBASE_PROJECT_ID",
    "LEGACY_FIREBASE_CREDENTIALS",
    "LEGACY_FIREBASE_API_KEY",
    "LEGACY_FIREBASE_STORAGE_BUCKET",
    "FIREBASE_PROJECT_ID",
    "FIREBASE_CREDENTIALS",
    "FIREBASE_API_KEY",
    "FIREBASE_STORAGE_BUCKET",
    "MIGRATION_BLOB_BACKEND",
    "MIGRATION_LEDGER_DSN",
    "MIGRATION_HTTP_TIMEOUT",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "LEGACY_SUPABASE_URL",
    "LEGACY_SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_STORAGE_BUCKET",
)


@pytest.fixture(autouse=True)
def _clear_migration_env(monkeypatch: pytest.MonkeyPatch):
    """Start every test without a configured project.

    Why:
        A developer shell may export real project settings; tests opt in via
        `monkeypatch.setenv` or the `enabled=` switch of the service.
    """
    for var in _MIGRATION_ENV:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def legacy_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def new_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def legacy_blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def new_blobs() -> InMemoryBlobStore:
    return InMemoryBlobStore()
