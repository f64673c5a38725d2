"""
Coach/User resolution for a team's `headCoach` pointer.

Why:
    In the legacy schema `team.headCoach` points at a coach membership document
    (`teams/{team}/coaches/{coach}`), while the new schema points it at the user
    (`users/{uid}`). The coach's user is only known once that user has migrated,
    and teammates migrate in any order.

Protocol:
    Phase A: copy `coaches` first; every coach whose legacy `userId` is in the
        identity map yields a `coach id → new user id` pair. Coaches of users
        who have not migrated keep their legacy `userId`.
    Phase B: follow the legacy `headCoach` to its coach id and look it up in the
        Phase A pairs. Unresolved → the field is omitted, never guessed.
    Self-healing: when a user migrates into a team that already exists, their
        coach document is patched to the new id, and if they were the legacy
        head coach the new team's `headCoach` is patched as well. Both patches
        are single-field merges, so repeating them is harmless.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from backend.datastore.ports import DocumentStore, Reference, document_path

from .config import COACHES_COLLECTION, TEAMS_COLLECTION, USERS_COLLECTION
from .copier import CopyOutcome, SubcollectionCopier
from .identity import IdentityMap


logger = logging.getLogger("coachplan.migration.coaches")


def coach_id_from_reference(value: Any) -> Optional[str]:
    """Return the coach id a legacy `headCoach` value points at.

    Accepts a reference, a path string ("teams/t/coaches/c") or a bare coach id.
    """
    ref = Reference.parse(value)
    if ref is not None:
        return ref.id
    if isinstance(value, str) and value.strip():
        return value.strip().rstrip("/").rsplit("/", 1)[-1] or None
    return None


def user_reference(user_id: str) -> Reference:
    return Reference(USERS_COLLECTION, user_id)


class CoachUserResolver:
    def __init__(
        self,
        legacy_store: DocumentStore,
        new_store: DocumentStore,
        copier: Optional[SubcollectionCopier] = None,
    ):
        self._legacy = legacy_store
        self._new = new_store
        self._copier = copier or SubcollectionCopier(legacy_store, new_store)

    def migrate_coaches(self, team_id: str, identity_map: IdentityMap) -> CopyOutcome:
        """Phase A: copy the team's coaches and collect `coach id → new user id`."""
        outcome = self._copier.copy(team_id, COACHES_COLLECTION, identity_map)
        logger.debug(
            "Team %s: %d of %d coaches resolved to new users",
            team_id,
            len(outcome.coach_to_user),
            outcome.count,
        )
        return outcome

    def resolve_head_coach(
        self, legacy_team: Dict[str, Any], coach_to_user: Dict[str, str]
    ) -> Optional[Reference]:
        """Phase B: new `headCoach` reference, or None while its user has not migrated."""
        coach_id = coach_id_from_reference(legacy_team.get("headCoach"))
        if coach_id is None:
            return None
        new_user_id = coach_to_user.get(coach_id)
        if new_user_id is None:
            logger.warning("Head coach %s has not migrated yet; headCoach omitted", coach_id)
            return None
        return user_reference(new_user_id)

    def patch_coach_user_id(
        self, team_id: str, legacy_uid: str, new_uid: str, *, warn_missing: bool = True
    ) -> List[str]:
        """Point new-store coach documents still carrying `legacy_uid` at `new_uid`.

        `warn_missing=False` is used after team creation, where the coach has
        normally been written with the new id already.
        """
        coaches_path = document_path(TEAMS_COLLECTION, team_id, COACHES_COLLECTION)
        patched: List[str] = []
        for coach in self._new.list_collection(coaches_path):
            if coach.data.get("userId") == legacy_uid:
                self._new.set_document(coach.path, {"userId": new_uid}, merge=True)
                patched.append(coach.id)
        if patched:
            logger.info("Team %s: coach %s now points at %s", team_id, ", ".join(patched), new_uid)
        elif warn_missing:
            logger.warning("Team %s: no coach found with legacy userId %s", team_id, legacy_uid)
        return patched

    def patch_head_coach(self, team_id: str, legacy_uid: str, new_uid: str) -> bool:
        """Patch `headCoach` of the new team when `legacy_uid` was the legacy head coach."""
        legacy_team = self._legacy.get_document(document_path(TEAMS_COLLECTION, team_id))
        if legacy_team is None:
            logger.warning("Legacy team %s not found while checking headCoach", team_id)
            return False
        coach_id = coach_id_from_reference(legacy_team.get("headCoach"))
        if coach_id is None:
            return False
        coach = self._legacy.get_document(
            document_path(TEAMS_COLLECTION, team_id, COACHES_COLLECTION, coach_id)
        )
        if coach is None:
            logger.warning("Legacy coach %s of team %s not found", coach_id, team_id)
            return False
        if coach.get("userId") != legacy_uid:
            return False
        self._new.set_document(
            document_path(TEAMS_COLLECTION, team_id),
            {"headCoach": user_reference(new_uid)},
            merge=True,
        )
        logger.info("Team %s: headCoach set to users/%s", team_id, new_uid)
        return True


__all__ = ["CoachUserResolver", "coach_id_from_reference", "user_reference"]
