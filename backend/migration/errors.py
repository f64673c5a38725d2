"""Errors raised inside a migration run."""
from __future__ import annotations


class MigrationError(Exception):
    """Fatal-to-run condition; `str(exc)` is the caller-facing message."""


USER_NOT_FOUND = "Old user document not found"
NO_TEAM_REFERENCE = "User has no team reference"
TEAM_WRITE_FAILED = "Failed to migrate team data"
USER_WRITE_FAILED = "Failed to create user document"
