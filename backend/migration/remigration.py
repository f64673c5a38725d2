"""
Re-migration: re-copy selected subcollections for an already migrated user.

Intent:
    Operator- or user-invoked resync of team data that changed (or was damaged)
    after the main migration. Writes are merges: target fields missing from
    the legacy document are left untouched. Head-coach resolution, files and
    the user document are not touched.

Progress:
    The optional callback receives `ReMigrationProgress` events:
    "Initializing re-migration...", then per collection "Migrating {name}..."
    and "Completed {name} ({n} items)", and finally "Re-migration complete".
    A failing collection emits no "Completed" event; the run continues.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Sequence

from backend.datastore.ports import DocumentStore, document_path

from .config import TEAM_SUBCOLLECTIONS, USERS_COLLECTION
from .copier import SubcollectionCopier
from .errors import NO_TEAM_REFERENCE, USER_NOT_FOUND
from .identity import build_identity_map
from .ledger import IdentityLedger
from .references import team_id_from_ref
from .results import MigrationResult


logger = logging.getLogger("coachplan.migration.remigration")


@dataclass(frozen=True)
class ReMigrationProgress:
    step: str
    current: int
    total: int
    item_name: Optional[str] = None

    def as_dict(self) -> Dict[str, object]:
        out = asdict(self)
        out["itemName"] = out.pop("item_name")
        if out["itemName"] is None:
            del out["itemName"]
        return out


ProgressCallback = Callable[[ReMigrationProgress], None]


class ReMigrationDriver:
    def __init__(
        self,
        legacy_store: DocumentStore,
        new_store: DocumentStore,
        *,
        ledger: Optional[IdentityLedger] = None,
    ):
        self._legacy = legacy_store
        self._new = new_store
        self._ledger = ledger
        self._copier = SubcollectionCopier(legacy_store, new_store, merge=True)

    def remigrate(
        self,
        legacy_uid: str,
        new_uid: str,
        subcollections: Sequence[str],
        on_progress: Optional[ProgressCallback] = None,
    ) -> MigrationResult:
        names = list(subcollections)
        unknown = [n for n in names if n not in TEAM_SUBCOLLECTIONS]
        if unknown:
            return MigrationResult.failed(f"Unknown subcollections: {', '.join(unknown)}")

        def emit(step: str, current: int, item: Optional[str] = None) -> None:
            if on_progress is not None:
                on_progress(ReMigrationProgress(step, current, len(names), item))

        try:
            emit("Initializing re-migration...", 0)
            legacy_user = self._legacy.get_document(document_path(USERS_COLLECTION, legacy_uid))
            if legacy_user is None:
                return MigrationResult.failed(USER_NOT_FOUND)
            team_id = team_id_from_ref(legacy_user.get("teamRef"))
            if not team_id:
                return MigrationResult.failed(NO_TEAM_REFERENCE)
            identity = build_identity_map(
                self._legacy, self._new, team_id, legacy_uid, new_uid, ledger=self._ledger
            )

            copied: List[str] = []
            failed: List[str] = []
            counts: Dict[str, int] = {}
            for index, name in enumerate(names):
                emit(f"Migrating {name}...", index, name)
                try:
                    outcome = self._copier.copy(team_id, name, identity)
                except Exception as exc:
                    logger.warning("Re-migrating %s of team %s failed: %s", name, team_id, exc)
                    failed.append(name)
                    continue
                copied.append(name)
                counts[name] = outcome.count
                emit(f"Completed {name} ({outcome.count} items)", index + 1, name)
            emit("Re-migration complete", len(names))
        except Exception as exc:
            logger.exception("Re-migration of %s failed unexpectedly", legacy_uid)
            return MigrationResult.failed(str(exc) or exc.__class__.__name__)

        logger.info("Re-migrated %s for %s (team %s)", ", ".join(copied) or "nothing", new_uid, team_id)
        return MigrationResult(
            success=True,
            user_migrated=False,
            team_migrated=True,
            team_already_existed=True,
            subcollections_copied=tuple(copied),
            files_copied=0,
            documents_copied=counts,
            failed_subcollections=tuple(failed),
        )


__all__ = ["ReMigrationDriver", "ReMigrationProgress", "ProgressCallback"]
