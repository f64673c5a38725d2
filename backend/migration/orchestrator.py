"""
Migration orchestrator: moves one user's data graph from the legacy project.

States:
    IDLE → LOAD_LEGACY_USER → RESOLVE_TEAM → {CREATE_TEAM | PATCH_TEAM}
    → UPSERT_USER → DONE | FAILED

Team not yet in the new store (CREATE_TEAM):
    1. coaches first (Phase A), building `coach id → new user id`
    2. headCoach resolution (Phase B), omitted when unresolved
    3. every other subcollection; a failing one is logged and skipped
    4. team files; a failing file is logged and skipped
    5. the team document last, merged so a concurrent teammate's patch of
       `headCoach` survives. A failing team write fails the run.

Team already in the new store (PATCH_TEAM):
    The user's coach document and, when they were the legacy head coach, the
    team's `headCoach` are patched with single-field merges. Patch errors are
    logged; the run continues.

UPSERT_USER always runs. A failing user write fails the run. After a team
creation the user's coach document is re-checked and patched if a concurrent
teammate run copied it with the legacy id (logged, never fatal).

Concurrency:
    Two teammates may run this at the same time against the same team. No
    lock is taken: every write after team creation is a targeted merge.
"""
from __future__ import annotations

import enum
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from backend.datastore.ports import BlobStore, DocumentStore, Reference, document_path

from .blobs import BlobMigrator
from .coaches import CoachUserResolver
from .config import COACHES_COLLECTION, TEAM_SUBCOLLECTIONS, TEAMS_COLLECTION, USERS_COLLECTION
from .copier import SubcollectionCopier
from .errors import (
    NO_TEAM_REFERENCE,
    TEAM_WRITE_FAILED,
    USER_NOT_FOUND,
    USER_WRITE_FAILED,
    MigrationError,
)
from .identity import IdentityMap, build_identity_map
from .ledger import IdentityLedger
from .references import add_readable_timestamps, rewrite_references, team_id_from_ref, team_reference
from .results import MigrationResult


logger = logging.getLogger("coachplan.migration")


class MigrationState(enum.Enum):
    IDLE = "IDLE"
    LOAD_LEGACY_USER = "LOAD_LEGACY_USER"
    RESOLVE_TEAM = "RESOLVE_TEAM"
    CREATE_TEAM = "CREATE_TEAM"
    PATCH_TEAM = "PATCH_TEAM"
    UPSERT_USER = "UPSERT_USER"
    DONE = "DONE"
    FAILED = "FAILED"


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_user_document(
    legacy_user: Dict[str, Any], new_uid: str, team_id: str, migrated_at: int
) -> Dict[str, Any]:
    """New-store user document: legacy fields plus identity and migration markers."""
    data = {k: v for k, v in legacy_user.items() if k not in ("ref", "teamRef")}
    data = add_readable_timestamps(data)
    data.update(
        {
            "uid": new_uid,
            "teamRef": team_reference(team_id),
            "ref": Reference(USERS_COLLECTION, new_uid),
            "path": f"{USERS_COLLECTION}/{new_uid}",
            "dataMigrated": True,
            "migratedAt": migrated_at,
        }
    )
    return data


def build_team_document(
    legacy_team: Dict[str, Any],
    team_id: str,
    head_coach: Optional[Reference],
    migrated_at: int,
) -> Dict[str, Any]:
    """New-store team document; `headCoach` only when resolved."""
    data = {k: v for k, v in legacy_team.items() if k != "headCoach"}
    data = add_readable_timestamps(rewrite_references(data, team_id))
    data["id"] = team_id
    data["migratedAt"] = migrated_at
    if head_coach is not None:
        data["headCoach"] = head_coach
    return data


class MigrationOrchestrator:
    """Drive one user's migration to a terminal `MigrationResult`.

    The instance is reusable across users; per-run state lives in locals and
    in `self.state` (last state reached, for observability).
    """

    def __init__(
        self,
        legacy_store: DocumentStore,
        new_store: DocumentStore,
        legacy_blobs: BlobStore,
        new_blobs: BlobStore,
        *,
        ledger: Optional[IdentityLedger] = None,
        subcollections: Sequence[str] = TEAM_SUBCOLLECTIONS,
        clock: Callable[[], int] = _now_ms,
    ):
        self._legacy = legacy_store
        self._new = new_store
        self._ledger = ledger
        self._subcollections = tuple(subcollections)
        self._clock = clock
        self._copier = SubcollectionCopier(legacy_store, new_store)
        self._coaches = CoachUserResolver(legacy_store, new_store, self._copier)
        self._blobs = BlobMigrator(legacy_blobs, new_blobs)
        self.state = MigrationState.IDLE

    def _enter(self, state: MigrationState) -> None:
        logger.debug("Migration state %s -> %s", self.state.value, state.value)
        self.state = state

    def team_exists(self, team_id: str) -> bool:
        return self._new.get_document(document_path(TEAMS_COLLECTION, team_id)) is not None

    # --- Entry point ---------------------------------------------------------------

    def migrate_user_data(self, legacy_uid: str, new_uid: str) -> MigrationResult:
        self.state = MigrationState.IDLE
        flags: Dict[str, Any] = {}
        try:
            return self._run(legacy_uid, new_uid, flags)
        except MigrationError as exc:
            self._enter(MigrationState.FAILED)
            logger.error("Migration of %s failed: %s", legacy_uid, exc)
            return MigrationResult.failed(str(exc), **flags)
        except Exception as exc:
            self._enter(MigrationState.FAILED)
            logger.exception("Migration of %s failed unexpectedly", legacy_uid)
            return MigrationResult.failed(str(exc) or exc.__class__.__name__, **flags)

    # --- States ---------------------------------------------------------------------

    def _run(self, legacy_uid: str, new_uid: str, flags: Dict[str, Any]) -> MigrationResult:
        self._enter(MigrationState.LOAD_LEGACY_USER)
        legacy_user = self._legacy.get_document(document_path(USERS_COLLECTION, legacy_uid))
        if legacy_user is None:
            raise MigrationError(USER_NOT_FOUND)

        self._enter(MigrationState.RESOLVE_TEAM)
        team_id = team_id_from_ref(legacy_user.get("teamRef"))
        if not team_id:
            raise MigrationError(NO_TEAM_REFERENCE)
        identity = build_identity_map(
            self._legacy, self._new, team_id, legacy_uid, new_uid, ledger=self._ledger
        )

        copied: List[str] = []
        counts: Dict[str, int] = {}
        failed: List[str] = []
        files_copied = 0
        files_failed = 0
        existed = self.team_exists(team_id)
        flags["team_already_existed"] = existed
        if existed:
            self._enter(MigrationState.PATCH_TEAM)
            self._patch_team(team_id, legacy_uid, new_uid)
            team_migrated = False
        else:
            self._enter(MigrationState.CREATE_TEAM)
            copied, counts, failed, files_copied, files_failed = self._create_team(
                team_id, identity
            )
            team_migrated = True
        flags["team_migrated"] = team_migrated

        self._enter(MigrationState.UPSERT_USER)
        self._upsert_user(legacy_user, legacy_uid, new_uid, team_id)
        if not existed:
            # A teammate that created the same team concurrently may have
            # copied our coach with the legacy id before our user doc existed.
            try:
                self._coaches.patch_coach_user_id(team_id, legacy_uid, new_uid, warn_missing=False)
            except Exception as exc:
                logger.warning("Team %s: coach re-check failed: %s", team_id, exc)

        self._enter(MigrationState.DONE)
        logger.info(
            "Migrated %s -> %s (team %s, %s)",
            legacy_uid,
            new_uid,
            team_id,
            "patched" if existed else "created",
        )
        return MigrationResult(
            success=True,
            user_migrated=True,
            team_migrated=team_migrated,
            team_already_existed=existed,
            subcollections_copied=tuple(copied),
            files_copied=files_copied,
            documents_copied=counts,
            failed_subcollections=tuple(failed),
            files_failed=files_failed,
            state=MigrationState.DONE.value,
        )

    def _create_team(
        self, team_id: str, identity: IdentityMap
    ) -> Tuple[List[str], Dict[str, int], List[str], int, int]:
        team_path = document_path(TEAMS_COLLECTION, team_id)
        legacy_team = self._legacy.get_document(team_path)
        if legacy_team is None:
            logger.error("Legacy team %s not found", team_id)
            raise MigrationError(TEAM_WRITE_FAILED)

        copied: List[str] = []
        counts: Dict[str, int] = {}
        failed: List[str] = []

        coach_to_user: Dict[str, str] = {}
        if COACHES_COLLECTION in self._subcollections:
            try:
                outcome = self._coaches.migrate_coaches(team_id, identity)
            except Exception as exc:
                logger.warning("Team %s: coaches not copied: %s", team_id, exc)
                failed.append(COACHES_COLLECTION)
            else:
                coach_to_user = outcome.coach_to_user
                copied.append(COACHES_COLLECTION)
                counts[COACHES_COLLECTION] = outcome.count
        head_coach = self._coaches.resolve_head_coach(legacy_team, coach_to_user)

        for name in self._subcollections:
            if name == COACHES_COLLECTION:
                continue
            try:
                outcome = self._copier.copy(team_id, name, identity)
            except Exception as exc:
                logger.warning("Team %s: %s not copied: %s", team_id, name, exc)
                failed.append(name)
                continue
            copied.append(name)
            counts[name] = outcome.count

        report = self._blobs.migrate(team_id)

        team_doc = build_team_document(legacy_team, team_id, head_coach, self._clock())
        try:
            self._new.set_document(team_path, team_doc, merge=True)
        except Exception as exc:
            logger.exception("Writing team %s failed", team_id)
            raise MigrationError(TEAM_WRITE_FAILED) from exc
        return copied, counts, failed, report.copied, len(report.failed)

    def _patch_team(self, team_id: str, legacy_uid: str, new_uid: str) -> None:
        try:
            self._coaches.patch_coach_user_id(team_id, legacy_uid, new_uid)
        except Exception as exc:
            logger.warning("Team %s: coach patch failed: %s", team_id, exc)
        try:
            self._coaches.patch_head_coach(team_id, legacy_uid, new_uid)
        except Exception as exc:
            logger.warning("Team %s: headCoach patch failed: %s", team_id, exc)

    def _upsert_user(
        self, legacy_user: Dict[str, Any], legacy_uid: str, new_uid: str, team_id: str
    ) -> None:
        user_path = document_path(USERS_COLLECTION, new_uid)
        try:
            data = build_user_document(legacy_user, new_uid, team_id, self._clock())
            exists = self._new.get_document(user_path) is not None
            self._new.set_document(user_path, data, merge=exists)
        except Exception as exc:
            logger.exception("Writing user %s failed", new_uid)
            raise MigrationError(USER_WRITE_FAILED) from exc
        if self._ledger is not None:
            email = legacy_user.get("email") if isinstance(legacy_user.get("email"), str) else None
            try:
                self._ledger.record(legacy_uid, new_uid, email)
            except Exception as exc:
                logger.warning("Identity ledger not updated for %s: %s", legacy_uid, exc)


__all__ = [
    "MigrationOrchestrator",
    "MigrationState",
    "build_user_document",
    "build_team_document",
]
