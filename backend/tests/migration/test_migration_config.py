"""
Migration configuration getters read the environment on every call.
"""
from __future__ import annotations

import pytest

from backend.migration import config


def test_migration_disabled_by_default():
    assert config.get_legacy_project_id() is None
    assert config.is_migration_enabled() is False


@pytest.mark.parametrize(
    "env",
    [
        {"LEGACY_FIREBASE_PROJECT_ID": "legacy", "LEGACY_FIREBASE_API_KEY": "k"},
        {"LEGACY_FIREBASE_PROJECT_ID": "legacy", "LEGACY_FIREBASE_CREDENTIALS": "/sa.json"},
    ],
)
def test_migration_enabled_with_project_and_secret(monkeypatch, env):
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    assert config.is_migration_enabled() is True


def test_project_id_alone_does_not_enable(monkeypatch):
    monkeypatch.setenv("LEGACY_FIREBASE_PROJECT_ID", "legacy")
    monkeypatch.setenv("LEGACY_FIREBASE_API_KEY", "   ")

    assert config.is_migration_enabled() is False


def test_blob_backend_values(monkeypatch):
    assert config.get_blob_backend() == "firebase"
    monkeypatch.setenv("MIGRATION_BLOB_BACKEND", "Supabase")
    assert config.get_blob_backend() == "supabase"
    monkeypatch.setenv("MIGRATION_BLOB_BACKEND", "s3")
    assert config.get_blob_backend() == "firebase"


def test_supabase_settings(monkeypatch):
    monkeypatch.setenv("SUPABASE_URL", "http://new.local")
    monkeypatch.setenv("LEGACY_SUPABASE_URL", "http://legacy.local")

    assert config.get_supabase_url() == "http://new.local"
    assert config.get_supabase_url(legacy=True) == "http://legacy.local"
    assert config.get_supabase_bucket() == "team-files"
    monkeypatch.setenv("SUPABASE_STORAGE_BUCKET", "files")
    assert config.get_supabase_bucket() == "files"


@pytest.mark.parametrize("raw,expected", [(None, 10.0), ("2.5", 2.5), ("abc", 10.0), ("-1", 10.0)])
def test_http_timeout(monkeypatch, raw, expected):
    if raw is not None:
        monkeypatch.setenv("MIGRATION_HTTP_TIMEOUT", raw)

    assert config.get_http_timeout() == expected


def test_team_files_prefix_and_subcollections():
    assert config.team_files_prefix("T1") == "teams/T1/files"
    assert "coaches" in config.TEAM_SUBCOLLECTIONS
    assert len(set(config.TEAM_SUBCOLLECTIONS)) == 7
