"""
Environment-driven wiring of both projects' stores and the migration service.

Why:
    The CLI and the auth flow need a ready `MigrationService` without knowing
    how Firestore apps, storage buckets or Supabase clients are created. This
    module builds them lazily from `backend.migration.config`.

Behavior:
    - Firebase apps are named ("legacy-firebase" / "coachplan-firebase") so both
      projects can live in one process; an existing app is reused.
    - The legacy project is only wired when `is_migration_enabled()`; otherwise
      the service is built with `legacy_store=None` and refuses to run.
    - `MIGRATION_BLOB_BACKEND=supabase` wires `SupabaseBlobStore` with the
      official client, falling back to a bare storage3 client when the
      supabase package rejects the key (local dev keys are not JWTs).
    - `MIGRATION_BLOB_BACKEND=memory` wires empty in-memory blob stores.

Security:
    Requires server-side credentials (service account JSON / service role key).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from backend.datastore.memory import InMemoryBlobStore
from backend.datastore.ports import BlobStore, DocumentStore

from . import config
from .ledger import IdentityLedger, PostgresIdentityLedger
from .service import MigrationService


logger = logging.getLogger("coachplan.migration.wiring")

LEGACY_APP_NAME = "legacy-firebase"
APP_NAME = "coachplan-firebase"


@dataclass
class StoreBundle:
    legacy_store: Optional[DocumentStore]
    new_store: DocumentStore
    legacy_blobs: BlobStore
    new_blobs: BlobStore
    ledger: Optional[IdentityLedger] = None


def firebase_app(
    name: str,
    project_id: Optional[str],
    credentials_path: Optional[str],
    storage_bucket: Optional[str] = None,
) -> Any:
    """Return the named firebase_admin app, initializing it on first use."""
    # Lazy imports keep firebase_admin out of pure engine imports.
    import firebase_admin  # type: ignore
    from firebase_admin import credentials  # type: ignore

    try:
        return firebase_admin.get_app(name)
    except ValueError:
        pass
    cred = (
        credentials.Certificate(credentials_path)
        if credentials_path
        else credentials.ApplicationDefault()
    )
    options = {}
    if project_id:
        options["projectId"] = project_id
    if storage_bucket:
        options["storageBucket"] = storage_bucket
    logger.info("Initializing firebase app %s (project %s)", name, project_id or "default")
    return firebase_admin.initialize_app(cred, options, name=name)


def build_document_store(app: Any) -> DocumentStore:
    from firebase_admin import firestore  # type: ignore

    from backend.datastore.firestore import FirestoreDocumentStore

    return FirestoreDocumentStore(firestore.client(app))


def build_firebase_blob_store(app: Any, bucket_name: Optional[str]) -> BlobStore:
    from firebase_admin import storage  # type: ignore

    from backend.datastore.storage_gcs import FirebaseStorageBlobStore

    return FirebaseStorageBlobStore(storage.bucket(bucket_name, app=app))


def build_supabase_blob_store(*, legacy: bool = False) -> BlobStore:
    from backend.datastore.storage_supabase import SupabaseBlobStore

    url = config.get_supabase_url(legacy)
    key = config.get_supabase_service_role_key(legacy)
    if not url or not key:
        raise RuntimeError("supabase_not_configured")
    bucket = config.get_supabase_bucket()
    try:
        from supabase import create_client  # type: ignore

        return SupabaseBlobStore(create_client(url, key), bucket)
    except Exception as exc:
        logger.warning(
            "Supabase client unavailable: %s: %s, falling back to storage3",
            exc.__class__.__name__,
            str(exc),
        )
    from storage3._sync.client import SyncStorageClient  # type: ignore

    storage_url = f"{url.rstrip('/')}/storage/v1"
    headers = {"Authorization": f"Bearer {key}", "apikey": key}
    return SupabaseBlobStore(SyncStorageClient(storage_url, headers), bucket)


def build_ledger_from_env() -> Optional[IdentityLedger]:
    dsn = config.get_ledger_dsn()
    if not dsn:
        return None
    return PostgresIdentityLedger(dsn)


def build_stores_from_env() -> StoreBundle:
    backend = config.get_blob_backend()
    new_app = firebase_app(
        APP_NAME, config.get_project_id(), config.get_credentials_path(), config.get_storage_bucket()
    )
    new_store = build_document_store(new_app)

    legacy_app = None
    legacy_store: Optional[DocumentStore] = None
    if config.is_migration_enabled():
        legacy_app = firebase_app(
            LEGACY_APP_NAME,
            config.get_legacy_project_id(),
            config.get_legacy_credentials_path(),
            config.get_legacy_storage_bucket(),
        )
        legacy_store = build_document_store(legacy_app)
    else:
        logger.warning("Legacy project not configured; migration disabled")

    legacy_blobs: BlobStore
    new_blobs: BlobStore
    if backend == "supabase":
        legacy_blobs = (
            build_supabase_blob_store(legacy=True) if legacy_app is not None else InMemoryBlobStore()
        )
        new_blobs = build_supabase_blob_store()
    elif backend == "memory" or legacy_app is None:
        legacy_blobs, new_blobs = InMemoryBlobStore(), InMemoryBlobStore()
    else:
        legacy_blobs = build_firebase_blob_store(legacy_app, config.get_legacy_storage_bucket())
        new_blobs = build_firebase_blob_store(new_app, config.get_storage_bucket())
    logger.info("Stores wired (blob backend: %s)", backend)
    return StoreBundle(legacy_store, new_store, legacy_blobs, new_blobs, build_ledger_from_env())


def build_migration_service(bundle: Optional[StoreBundle] = None) -> MigrationService:
    bundle = bundle or build_stores_from_env()
    return MigrationService(
        bundle.legacy_store,
        bundle.new_store,
        bundle.legacy_blobs,
        bundle.new_blobs,
        ledger=bundle.ledger,
    )


__all__ = [
    "StoreBundle",
    "firebase_app",
    "build_stores_from_env",
    "build_migration_service",
    "build_ledger_from_env",
]
