"""Identity map: legacy user id → new user id for one migration run.

Why:
    Plain identity strings (`uid`, `userId`, `uploadedBy`, `createdBy`,
    `readBy[]`) and the head-coach pointer must be rewritten from legacy ids to
    new ids. Only the migrating user's pair is known up front; teammates who
    migrated earlier are discovered through the identity ledger and, as a
    fallback, by joining legacy and new users on e-mail.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterator, Optional, Tuple

from backend.datastore.ports import DocumentStore, document_path

from .config import COACHES_COLLECTION, TEAMS_COLLECTION, USERS_COLLECTION
from .ledger import IdentityLedger


logger = logging.getLogger("coachplan.migration.identity")


class IdentityMap:
    """Bidirectional legacy ↔ new identity store, seeded with the migrating user.

    A legacy id keeps its first value for the lifetime of the map; later
    conflicting `put` calls are ignored (and logged).
    """

    def __init__(self, legacy_id: str, new_id: str) -> None:
        self._forward: Dict[str, str] = {}
        self._reverse: Dict[str, str] = {}
        self.legacy_id = legacy_id
        self.new_id = new_id
        self.put(legacy_id, new_id)

    def put(self, legacy_id: str, new_id: str) -> bool:
        """Record a pair; returns False when `legacy_id` is already mapped."""
        current = self._forward.get(legacy_id)
        if current is not None:
            if current != new_id:
                logger.warning(
                    "Identity conflict for %s: keeping %s, ignoring %s", legacy_id, current, new_id
                )
            return False
        self._forward[legacy_id] = new_id
        self._reverse.setdefault(new_id, legacy_id)
        return True

    def get(self, legacy_id: str) -> Optional[str]:
        return self._forward.get(legacy_id)

    def legacy_for(self, new_id: str) -> Optional[str]:
        return self._reverse.get(new_id)

    def remap(self, value: Any) -> Any:
        """Return the new id for a mapped legacy id string, else `value` unchanged."""
        if isinstance(value, str):
            return self._forward.get(value, value)
        return value

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(self._forward.items())

    def __contains__(self, legacy_id: object) -> bool:
        return legacy_id in self._forward

    def __len__(self) -> int:
        return len(self._forward)


def _normalize_email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    email = value.strip().lower()
    return email or None


def _join_by_email(
    legacy_store: DocumentStore,
    new_store: DocumentStore,
    legacy_ids: set[str],
) -> Dict[str, str]:
    """Match legacy ids to migrated new users via e-mail.

    An e-mail shared by several legacy users (or several migrated new users) is
    ambiguous and skipped: guessing would attach one person's data to another.
    """
    emails: Dict[str, set[str]] = defaultdict(set)
    for doc in legacy_store.list_collection(USERS_COLLECTION):
        email = _normalize_email(doc.data.get("email"))
        if email:
            emails[email].add(doc.id)

    wanted: Dict[str, str] = {}
    for email, owners in emails.items():
        matching = owners & legacy_ids
        if not matching:
            continue
        if len(owners) > 1:
            logger.warning("Skipping ambiguous legacy e-mail shared by %d users", len(owners))
            continue
        wanted[email] = next(iter(matching))
    if not wanted:
        return {}

    found: Dict[str, list[str]] = defaultdict(list)
    for doc in new_store.list_collection(USERS_COLLECTION):
        if not doc.data.get("dataMigrated"):
            continue
        email = _normalize_email(doc.data.get("email"))
        if email in wanted:
            found[email].append(doc.id)

    pairs: Dict[str, str] = {}
    for email, new_ids in found.items():
        if len(new_ids) > 1:
            logger.warning("Skipping e-mail matched by %d migrated users", len(new_ids))
            continue
        pairs[wanted[email]] = new_ids[0]
    return pairs


def build_identity_map(
    legacy_store: DocumentStore,
    new_store: DocumentStore,
    team_id: str,
    legacy_uid: str,
    new_uid: str,
    *,
    ledger: Optional[IdentityLedger] = None,
) -> IdentityMap:
    """Build the identity map for a team's migration.

    Behavior:
        - Seeds the migrating user's pair.
        - Collects the legacy `userId` of every coach of the team.
        - Resolves them through the ledger first, then the e-mail join.
        - Lookup failures degrade to the partial map (logged), never abort.
    """
    identity = IdentityMap(legacy_uid, new_uid)
    try:
        coaches = legacy_store.list_collection(
            document_path(TEAMS_COLLECTION, team_id, COACHES_COLLECTION)
        )
        pending = {
            str(c.data["userId"])
            for c in coaches
            if isinstance(c.data.get("userId"), str) and c.data["userId"]
        }
        pending.discard(legacy_uid)
        if pending and ledger is not None:
            for lid, nid in ledger.lookup(pending).items():
                identity.put(lid, nid)
            pending = {lid for lid in pending if lid not in identity}
        if pending:
            for lid, nid in _join_by_email(legacy_store, new_store, pending).items():
                identity.put(lid, nid)
    except Exception as exc:
        logger.warning(
            "Identity map for team %s is partial: %s: %s", team_id, exc.__class__.__name__, exc
        )
    logger.debug(
        "Identity map for team %s: %s",
        team_id,
        ", ".join(f"{lid} -> {nid}" for lid, nid in identity.items()),
    )
    return identity


__all__ = ["IdentityMap", "build_identity_map"]
