"""
Reference rewriting from legacy-store coordinates to new-store coordinates.

Rules (each applied independently):
    - Tag objects (dicts with their own `id`) inside `tags` arrays stay as-is.
    - Tag references in `tags` and `activities[].tags` point at the same tag id
      under `teams/{team_id}/tags`. Tags keep their ids, so no identity remap.
    - `teamRef` points at `teams/{team_id}`.
    - `headCoach` is left alone; see `backend.migration.coaches`.
    - `ref` is dropped; stores regenerate it on write.

All functions are pure: the input mapping is never mutated.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from backend.datastore.ports import Reference

from .config import TAGS_COLLECTION, TEAMS_COLLECTION


def team_reference(team_id: str) -> Reference:
    return Reference(TEAMS_COLLECTION, team_id)


def team_tag_reference(team_id: str, tag_id: str) -> Reference:
    return Reference(f"{TEAMS_COLLECTION}/{team_id}/{TAGS_COLLECTION}", tag_id)


def rewrite_tag_value(value: Any, team_id: str) -> Any:
    ref = Reference.parse(value)
    if ref is None or ref.collection_id != TAGS_COLLECTION:
        return value
    return team_tag_reference(team_id, ref.id)


def rewrite_tags(tags: Any, team_id: str) -> Any:
    if not isinstance(tags, list):
        return tags
    return [rewrite_tag_value(tag, team_id) for tag in tags]


def rewrite_activities(activities: Any, team_id: str) -> Any:
    if not isinstance(activities, list):
        return activities
    rewritten: List[Any] = []
    for activity in activities:
        if isinstance(activity, dict) and isinstance(activity.get("tags"), list):
            activity = {**activity, "tags": rewrite_tags(activity["tags"], team_id)}
        rewritten.append(activity)
    return rewritten


def rewrite_references(data: Dict[str, Any], team_id: str) -> Dict[str, Any]:
    """Return a copy of `data` with reference fields pointing into the new team."""
    updated = dict(data)
    updated.pop("ref", None)
    if "tags" in updated:
        updated["tags"] = rewrite_tags(updated["tags"], team_id)
    if "activities" in updated:
        updated["activities"] = rewrite_activities(updated["activities"], team_id)
    team_ref = updated.get("teamRef")
    if Reference.parse(team_ref) is not None or (isinstance(team_ref, str) and team_ref.strip()):
        updated["teamRef"] = team_reference(team_id)
    return updated


def team_id_from_ref(value: Any) -> Optional[str]:
    """Extract the team id from a user's `teamRef` (reference, path or bare id)."""
    ref = Reference.parse(value)
    if ref is not None:
        return ref.id
    if isinstance(value, str) and value.strip() and "/" not in value.strip():
        return value.strip()
    return None


def _from_millis(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not value:
        return None
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        # outside datetime's range (includes NaN and infinity)
        return None


def add_readable_timestamps(data: Dict[str, Any]) -> Dict[str, Any]:
    """Add `created_t`/`modified_t` datetimes next to millisecond `created`/`modified`."""
    updated = dict(data)
    for source, target in (("created", "created_t"), ("modified", "modified_t")):
        stamp = _from_millis(updated.get(source))
        if stamp is not None:
            updated[target] = stamp
    return updated


__all__ = [
    "team_reference",
    "team_tag_reference",
    "rewrite_tag_value",
    "rewrite_tags",
    "rewrite_activities",
    "rewrite_references",
    "team_id_from_ref",
    "add_readable_timestamps",
]
