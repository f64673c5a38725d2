"""
Migration service: the programmatic entry points used by the auth flow and CLI.

Why:
    Callers should not wire the orchestrator, the re-migration driver and the
    stores themselves. This service owns the stores of both projects and guards
    every operation behind `is_migration_enabled()`: with the legacy project
    unavailable the engine refuses to run instead of touching the new project.

Behavior:
    - `migrate_user_data` / `remigrate_user_data` return `MigrationResult`.
    - `check_and_migrate_on_app_load` returns None when nothing had to be done.
    - `check_needs_migration` is True only for a signed-in user without a
      new-store user document.
    - Lookup helpers return None/False on store errors (logged) so the calling
      sign-in flow never fails because of them.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from backend.datastore.ports import BlobStore, DocumentStore, document_path

from . import config
from .config import MIGRATION_DISABLED_ERROR, TEAM_SUBCOLLECTIONS, TEAMS_COLLECTION, USERS_COLLECTION
from .ledger import IdentityLedger
from .orchestrator import MigrationOrchestrator, _now_ms
from .references import team_id_from_ref
from .remigration import ProgressCallback, ReMigrationDriver
from .results import MigrationResult


logger = logging.getLogger("coachplan.migration.service")


def mask_email(email: str) -> str:
    """Mask email for logs to reduce PII exposure."""
    local, _, domain = (email or "").partition("@")
    if not domain:
        return "***"
    return f"{local[:2]}***@{domain}"


class MigrationService:
    def __init__(
        self,
        legacy_store: Optional[DocumentStore],
        new_store: DocumentStore,
        legacy_blobs: BlobStore,
        new_blobs: BlobStore,
        *,
        ledger: Optional[IdentityLedger] = None,
        enabled: Optional[bool] = None,
        clock: Callable[[], int] = _now_ms,
        subcollections: Sequence[str] = TEAM_SUBCOLLECTIONS,
    ):
        self._legacy = legacy_store
        self._new = new_store
        self._enabled = enabled
        self._clock = clock
        self._orchestrator = (
            MigrationOrchestrator(
                legacy_store,
                new_store,
                legacy_blobs,
                new_blobs,
                ledger=ledger,
                subcollections=subcollections,
                clock=clock,
            )
            if legacy_store is not None
            else None
        )
        self._driver = (
            ReMigrationDriver(legacy_store, new_store, ledger=ledger)
            if legacy_store is not None
            else None
        )

    @property
    def enabled(self) -> bool:
        if self._legacy is None:
            return False
        if self._enabled is not None:
            return self._enabled
        return config.is_migration_enabled()

    def migrate_user_data(self, legacy_uid: str, new_uid: str) -> MigrationResult:
        if not self.enabled or self._orchestrator is None:
            return MigrationResult.failed(MIGRATION_DISABLED_ERROR)
        return self._orchestrator.migrate_user_data(legacy_uid, new_uid)

    def remigrate_user_data(
        self,
        legacy_uid: str,
        new_uid: str,
        subcollections: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> MigrationResult:
        if not self.enabled or self._driver is None:
            return MigrationResult.failed(MIGRATION_DISABLED_ERROR)
        return self._driver.remigrate(legacy_uid, new_uid, subcollections, on_progress)

    def team_exists(self, team_id: str) -> bool:
        return self._new.get_document(document_path(TEAMS_COLLECTION, team_id)) is not None

    def find_legacy_uid_by_email(self, email: str) -> Optional[str]:
        """Legacy uid of the user with this e-mail (case-insensitive), else None.

        Several legacy users sharing the e-mail is ambiguous: None is returned
        and a warning logged.
        """
        if not self.enabled or not email:
            return None
        wanted = email.strip().lower()
        try:
            docs = self._legacy.list_collection(USERS_COLLECTION)  # type: ignore[union-attr]
        except Exception as exc:
            logger.warning("Legacy user lookup for %s failed: %s", mask_email(email), exc)
            return None
        matches = [
            d.id
            for d in docs
            if isinstance(d.data.get("email"), str) and d.data["email"].strip().lower() == wanted
        ]
        if len(matches) > 1:
            logger.warning("E-mail %s matches %d legacy users", mask_email(email), len(matches))
            return None
        return matches[0] if matches else None

    def mark_user_as_migrated(self, uid: str) -> bool:
        """Stamp an existing new-store user `dataMigrated=true` + `migratedAt`."""
        path = document_path(USERS_COLLECTION, uid)
        try:
            if self._new.get_document(path) is None:
                logger.warning("Cannot mark missing user %s as migrated", uid)
                return False
            self._new.set_document(
                path, {"dataMigrated": True, "migratedAt": self._clock()}, merge=True
            )
        except Exception as exc:
            logger.warning("Marking user %s as migrated failed: %s", uid, exc)
            return False
        return True

    def check_needs_migration(self, uid: str) -> bool:
        """True when the signed-in user has no new-store user document yet.

        An existing document (migrated or not) counts as set up; the app-load
        check finishes those. Store errors are logged and reported as False.
        """
        if not self.enabled:
            return False
        try:
            user = self._new.get_document(document_path(USERS_COLLECTION, uid))
        except Exception as exc:
            logger.warning("Migration status check for %s failed: %s", uid, exc)
            return False
        return user is None

    def check_and_migrate_on_app_load(self, current_uid: str, email: str) -> Optional[MigrationResult]:
        """Finish the migration of a signed-in user whose data never moved.

        - Already `dataMigrated`: nothing to do (None).
        - User doc points at a team that exists: mark migrated.
        - Legacy user with this e-mail exists: run the migration.
        - No legacy user: mark the existing user migrated (new user), None.
        """
        if not self.enabled:
            return None
        try:
            user = self._new.get_document(document_path(USERS_COLLECTION, current_uid))
            team_id = team_id_from_ref(user.get("teamRef")) if user is not None else None
            team_found = bool(team_id) and self.team_exists(team_id)  # type: ignore[arg-type]
        except Exception as exc:
            logger.warning("App-load migration check for %s failed: %s", current_uid, exc)
            return None
        if user is not None:
            if user.get("dataMigrated"):
                return None
            if team_found:
                self.mark_user_as_migrated(current_uid)
                return MigrationResult(
                    success=True, user_migrated=True, team_migrated=False, team_already_existed=True
                )
        legacy_uid = self.find_legacy_uid_by_email(email)
        if legacy_uid is None:
            if user is not None:
                self.mark_user_as_migrated(current_uid)
            return None
        logger.info("Migrating %s on app load (legacy %s)", mask_email(email), legacy_uid)
        return self.migrate_user_data(legacy_uid, current_uid)


__all__ = ["MigrationService", "mask_email"]
