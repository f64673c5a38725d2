"""
Subcollection copier: legacy `teams/{team}/{name}` → new `teams/{team}/{name}`.

Behavior:
    - Document ids are kept; only the store root changes. Copying the same
      collection twice therefore rewrites the same documents (idempotent).
    - Each document goes through the reference rewrite, then the identity
      remap of plain user-id fields of its collection, then the readable
      timestamp derivation.
    - For `coaches`, the returned outcome carries the `coach id → new user id`
      pairs for every coach whose `userId` could be remapped.
    - Store errors propagate; the caller decides whether they are fatal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Tuple

from backend.datastore.ports import DocumentStore, document_path

from .config import COACHES_COLLECTION, TEAMS_COLLECTION
from .identity import IdentityMap
from .references import add_readable_timestamps, rewrite_references


logger = logging.getLogger("coachplan.migration.copier")


# Plain identity strings (not references) remapped through the identity map.
IDENTITY_FIELDS: Mapping[str, Tuple[str, ...]] = {
    "plans": ("uid",),
    "coaches": ("userId",),
    "files": ("uploadedBy",),
    "announcements": ("createdBy",),
}
IDENTITY_LIST_FIELDS: Mapping[str, Tuple[str, ...]] = {
    "announcements": ("readBy",),
}


@dataclass(frozen=True)
class CopyOutcome:
    collection: str
    count: int
    coach_to_user: Dict[str, str] = field(default_factory=dict)


def transform_document(
    data: Dict[str, Any], collection: str, team_id: str, identity_map: IdentityMap
) -> Dict[str, Any]:
    """Return the new-store version of a legacy subcollection document."""
    updated = rewrite_references(data, team_id)
    for name in IDENTITY_FIELDS.get(collection, ()):
        if isinstance(updated.get(name), str):
            updated[name] = identity_map.remap(updated[name])
    for name in IDENTITY_LIST_FIELDS.get(collection, ()):
        if isinstance(updated.get(name), list):
            updated[name] = [identity_map.remap(v) for v in updated[name]]
    return add_readable_timestamps(updated)


class SubcollectionCopier:
    """Copy one named team subcollection between stores.

    `merge=True` is used by re-migration so target fields missing from the
    legacy document survive.
    """

    def __init__(self, legacy_store: DocumentStore, new_store: DocumentStore, *, merge: bool = False):
        self._legacy = legacy_store
        self._new = new_store
        self._merge = merge

    def copy(self, team_id: str, collection: str, identity_map: IdentityMap) -> CopyOutcome:
        source = document_path(TEAMS_COLLECTION, team_id, collection)
        docs = self._legacy.list_collection(source)
        coach_to_user: Dict[str, str] = {}
        count = 0
        for doc in docs:
            updated = transform_document(doc.data, collection, team_id, identity_map)
            if collection == COACHES_COLLECTION:
                legacy_user = doc.data.get("userId")
                if isinstance(legacy_user, str) and legacy_user in identity_map:
                    coach_to_user[doc.id] = updated["userId"]
                elif legacy_user:
                    logger.debug("Coach %s keeps legacy userId until its user migrates", doc.id)
            self._new.set_document(document_path(source, doc.id), updated, merge=self._merge)
            count += 1
        logger.info("Copied %d documents of %s for team %s", count, collection, team_id)
        return CopyOutcome(collection=collection, count=count, coach_to_user=coach_to_user)


__all__ = ["CopyOutcome", "SubcollectionCopier", "transform_document", "IDENTITY_FIELDS"]
