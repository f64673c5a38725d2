"""
Centralized configuration for the legacy → new project data migration.

Intent:
    Provide a single source of truth for the legacy/new backend project
    settings, the team subcollections the engine knows about, and the storage
    layout of team files. Prevents drift between the engine, the auth flow and
    the operator CLI.

Behavior:
    - Getters read environment variables on every call so tests can use
      `monkeypatch.setenv` without reloading modules.
    - `is_migration_enabled()` is false unless the legacy project is configured;
      the engine then refuses to run instead of touching the new project.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os
from typing import Optional


USERS_COLLECTION = "users"
TEAMS_COLLECTION = "teams"
COACHES_COLLECTION = "coaches"
TAGS_COLLECTION = "tags"

# Order matters only for reporting; coaches are always migrated first.
TEAM_SUBCOLLECTIONS = (
    "plans",
    "tags",
    "coaches",
    "periods",
    "templates",
    "files",
    "announcements",
)

MIGRATION_DISABLED_ERROR = "Migration not enabled or old database not available"


def team_files_prefix(team_id: str) -> str:
    """Storage prefix holding a team's uploaded files (same in both projects)."""
    return f"{TEAMS_COLLECTION}/{team_id}/files"


def _env(name: str) -> Optional[str]:
    value = (os.getenv(name) or "").strip()
    return value or None


def get_legacy_project_id() -> Optional[str]:
    return _env("LEGACY_FIREBASE_PROJECT_ID")


def get_legacy_credentials_path() -> Optional[str]:
    """Service account JSON for the legacy project (None → application default)."""
    return _env("LEGACY_FIREBASE_CREDENTIALS")


def get_legacy_api_key() -> Optional[str]:
    """Web API key of the legacy project (used to verify legacy passwords)."""
    return _env("LEGACY_FIREBASE_API_KEY")


def get_legacy_storage_bucket() -> Optional[str]:
    return _env("LEGACY_FIREBASE_STORAGE_BUCKET")


def get_project_id() -> Optional[str]:
    return _env("FIREBASE_PROJECT_ID")


def get_credentials_path() -> Optional[str]:
    return _env("FIREBASE_CREDENTIALS")


def get_api_key() -> Optional[str]:
    return _env("FIREBASE_API_KEY")


def get_storage_bucket() -> Optional[str]:
    return _env("FIREBASE_STORAGE_BUCKET")


def is_migration_enabled() -> bool:
    """True when the legacy project is configured (project id plus key or credentials)."""
    return bool(get_legacy_project_id() and (get_legacy_api_key() or get_legacy_credentials_path()))


def get_blob_backend() -> str:
    """Blob backend for both projects: "firebase" (default), "supabase" or "memory"."""
    value = (_env("MIGRATION_BLOB_BACKEND") or "firebase").lower()
    return value if value in {"firebase", "supabase", "memory"} else "firebase"


def get_supabase_url(legacy: bool = False) -> Optional[str]:
    """Supabase project URL for the supabase blob backend (LEGACY_ prefix for legacy)."""
    return _env("LEGACY_SUPABASE_URL" if legacy else "SUPABASE_URL")


def get_supabase_service_role_key(legacy: bool = False) -> Optional[str]:
    return _env("LEGACY_SUPABASE_SERVICE_ROLE_KEY" if legacy else "SUPABASE_SERVICE_ROLE_KEY")


def get_supabase_bucket() -> str:
    """Bucket holding team files in both Supabase projects (default "team-files")."""
    return _env("SUPABASE_STORAGE_BUCKET") or "team-files"


def get_ledger_dsn() -> Optional[str]:
    """Postgres DSN of the persistent identity ledger (optional)."""
    return _env("MIGRATION_LEDGER_DSN")


def get_http_timeout() -> float:
    """Timeout in seconds for auth REST calls (default 10, invalid values ignored)."""
    raw = _env("MIGRATION_HTTP_TIMEOUT")
    if not raw:
        return 10.0
    try:
        value = float(raw)
    except ValueError:
        return 10.0
    return value if value > 0 else 10.0


__all__ = [
    "USERS_COLLECTION",
    "TEAMS_COLLECTION",
    "COACHES_COLLECTION",
    "TAGS_COLLECTION",
    "TEAM_SUBCOLLECTIONS",
    "MIGRATION_DISABLED_ERROR",
    "team_files_prefix",
    "get_legacy_project_id",
    "get_legacy_credentials_path",
    "get_legacy_api_key",
    "get_legacy_storage_bucket",
    "get_project_id",
    "get_credentials_path",
    "get_api_key",
    "get_storage_bucket",
    "is_migration_enabled",
    "get_blob_backend",
    "get_supabase_url",
    "get_supabase_service_role_key",
    "get_supabase_bucket",
    "get_ledger_dsn",
    "get_http_timeout",
]
