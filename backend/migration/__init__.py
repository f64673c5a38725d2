"""Legacy → new project data migration engine."""

from .errors import MigrationError
from .identity import IdentityMap, build_identity_map
from .orchestrator import MigrationOrchestrator, MigrationState
from .remigration import ReMigrationDriver, ReMigrationProgress
from .results import MigrationResult
from .service import MigrationService

__all__ = [
    "IdentityMap",
    "build_identity_map",
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationState",
    "MigrationResult",
    "MigrationService",
    "ReMigrationDriver",
    "ReMigrationProgress",
]
