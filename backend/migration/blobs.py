"""Copy a team's uploaded files between blob stores, one object at a time."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from backend.datastore.ports import BlobStore

from .config import team_files_prefix


logger = logging.getLogger("coachplan.migration.blobs")


@dataclass
class BlobMigrationReport:
    copied: int = 0
    failed: List[str] = field(default_factory=list)


class BlobMigrator:
    """Copy every object under `teams/{team}/files` to the identical new path.

    A failing object is logged and skipped. A failing listing yields an empty
    report: files are never fatal for a team migration.
    """

    def __init__(self, legacy_blobs: BlobStore, new_blobs: BlobStore):
        self._legacy = legacy_blobs
        self._new = new_blobs

    def migrate(self, team_id: str) -> BlobMigrationReport:
        report = BlobMigrationReport()
        prefix = team_files_prefix(team_id)
        try:
            refs = self._legacy.list_blobs(prefix)
        except Exception as exc:
            logger.warning("Listing %s failed: %s: %s", prefix, exc.__class__.__name__, exc)
            return report
        for ref in refs:
            try:
                body = self._legacy.get_blob_bytes(ref)
                self._new.put_blob_bytes(ref.path, body, content_type=ref.content_type)
            except Exception as exc:
                logger.warning("Copying %s failed: %s: %s", ref.path, exc.__class__.__name__, exc)
                report.failed.append(ref.path)
                continue
            report.copied += 1
        logger.info(
            "Team %s: copied %d files (%d failed)", team_id, report.copied, len(report.failed)
        )
        return report


__all__ = ["BlobMigrator", "BlobMigrationReport"]
