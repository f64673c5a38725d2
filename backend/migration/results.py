"""Terminal result of a migration run."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class MigrationResult:
    """Immutable summary returned to the caller; never persisted.

    `as_dict()` renders the camelCase shape consumed by the auth flow and the
    operator CLI.
    """

    success: bool
    user_migrated: bool = False
    team_migrated: bool = False
    team_already_existed: bool = False
    subcollections_copied: Tuple[str, ...] = ()
    files_copied: int = 0
    error: Optional[str] = None
    documents_copied: Dict[str, int] = field(default_factory=dict)
    failed_subcollections: Tuple[str, ...] = ()
    files_failed: int = 0
    state: str = "DONE"

    @classmethod
    def failed(cls, error: str, **flags: Any) -> "MigrationResult":
        return cls(success=False, error=error, state="FAILED", **flags)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "userMigrated": self.user_migrated,
            "teamMigrated": self.team_migrated,
            "teamAlreadyExisted": self.team_already_existed,
            "subcollectionsCopied": list(self.subcollections_copied),
            "filesCopied": self.files_copied,
            "details": {
                "documentsCopied": dict(self.documents_copied),
                "failedSubcollections": list(self.failed_subcollections),
                "filesFailed": self.files_failed,
                "state": self.state,
            },
        }
        if self.error is not None:
            out["error"] = self.error
        return out


__all__ = ["MigrationResult"]
