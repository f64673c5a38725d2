"""
Sign-in flow that moves legacy accounts into the new project on first login.

Why:
    Users keep signing in with their old credentials. When the new project does
    not know them yet, the flow verifies the password against the legacy
    project, creates the account in the new project with a random temporary
    password, migrates the user's data and sends a password-reset e-mail.

Behavior:
    - Successful account migration is reported as `success=False`,
      `migrated=True`, `requires_password_reset=True` with a welcome message:
      the user must set a password before a normal sign-in succeeds.
    - A failing data migration never fails the account migration; the result
      is attached as `data_migration` for the caller to log or retry.
    - Provider errors other than "not found" are mapped to user messages via
      `handle_auth_error`.

Permissions:
    Uses the web API of both projects and the migration service (server-side
    credentials).
"""
from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, Optional

from backend.migration.results import MigrationResult
from backend.migration.service import MigrationService, mask_email

from .auth_ports import AuthError, AuthProvider, AuthUser, handle_auth_error


logger = logging.getLogger("coachplan.identity_access")

WELCOME_MESSAGE = (
    "Welcome to our new platform! We've migrated your account and sent a password reset "
    "email. Please check your inbox to set a new password. You can keep the same password "
    "or choose a new one."
)
USER_NOT_FOUND_MESSAGE = "User not found. Please sign up for a new account."
INCORRECT_PASSWORD_MESSAGE = "Incorrect password. Please try again."
ACCOUNT_EXISTS_MESSAGE = "An account with this email already exists. Please sign in instead."

_MIGRATABLE_CODES = {"auth/user-not-found", "auth/invalid-credential"}
_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"


def generate_temporary_password(length: int = 24) -> str:
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class AuthMigrationResult:
    success: bool
    user: Optional[AuthUser] = None
    migrated: bool = False
    requires_password_reset: bool = False
    data_migration: Optional[MigrationResult] = None
    error: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success, "migrated": self.migrated}
        if self.user is not None:
            out["user"] = {"uid": self.user.uid, "email": self.user.email}
        if self.requires_password_reset:
            out["requiresPasswordReset"] = True
        if self.data_migration is not None:
            out["dataMigration"] = self.data_migration.as_dict()
        if self.error is not None:
            out["error"] = self.error
        return out


class SignInMigrationFlow:
    def __init__(
        self,
        new_auth: AuthProvider,
        legacy_auth: Optional[AuthProvider],
        migration: MigrationService,
    ):
        self._new = new_auth
        self._legacy = legacy_auth
        self._migration = migration

    @property
    def enabled(self) -> bool:
        return self._legacy is not None and self._migration.enabled

    # --- Lookups ------------------------------------------------------------------

    def user_exists_in_new_project(self, email: str) -> bool:
        try:
            return self._new.user_exists(email)
        except AuthError as exc:
            logger.warning("New-project lookup for %s failed: %s", mask_email(email), exc.code)
            return False

    def user_exists_in_old_project(self, email: str) -> bool:
        if not self.enabled:
            return False
        try:
            return self._legacy.user_exists(email)  # type: ignore[union-attr]
        except AuthError as exc:
            logger.warning("Legacy lookup for %s failed: %s", mask_email(email), exc.code)
            return False

    def verify_old_project_credentials(self, email: str, password: str) -> Optional[str]:
        """Legacy uid when the password is valid in the legacy project, else None."""
        if not self.enabled:
            return None
        try:
            return self._legacy.sign_in(email, password).uid  # type: ignore[union-attr]
        except AuthError as exc:
            logger.info("Legacy credentials rejected for %s: %s", mask_email(email), exc.code)
            return None

    # --- Flows --------------------------------------------------------------------

    def migrate_account(
        self,
        email: str,
        legacy_uid: str,
        *,
        temporary_password: Optional[str] = None,
        send_password_reset: bool = False,
    ) -> AuthMigrationResult:
        """Create the new-project account for `legacy_uid` and migrate its data."""
        try:
            user = self._new.create_user(email, temporary_password or generate_temporary_password())
        except AuthError as exc:
            logger.warning("Creating account for %s failed: %s", mask_email(email), exc.code)
            return AuthMigrationResult(success=False, error=handle_auth_error(exc))

        data_result: Optional[MigrationResult]
        try:
            data_result = self._migration.migrate_user_data(legacy_uid, user.uid)
            if not data_result.success:
                logger.warning("Data migration for %s had issues: %s", user.uid, data_result.error)
        except Exception:
            logger.exception("Data migration for %s failed", user.uid)
            data_result = None

        if send_password_reset:
            try:
                self._new.send_password_reset(email)
            except AuthError as exc:
                return AuthMigrationResult(success=False, error=handle_auth_error(exc))
        logger.info("Account %s migrated (%s -> %s)", mask_email(email), legacy_uid, user.uid)
        return AuthMigrationResult(
            success=True,
            user=user,
            migrated=True,
            requires_password_reset=True,
            data_migration=data_result,
        )

    def sign_in_with_migration(self, email: str, password: str) -> AuthMigrationResult:
        try:
            user = self._new.sign_in(email, password)
        except AuthError as exc:
            if exc.code not in _MIGRATABLE_CODES:
                return AuthMigrationResult(success=False, error=handle_auth_error(exc))
        else:
            return AuthMigrationResult(success=True, user=user)

        if not self.enabled or not self.user_exists_in_old_project(email):
            return AuthMigrationResult(success=False, error=USER_NOT_FOUND_MESSAGE)
        legacy_uid = self.verify_old_project_credentials(email, password)
        if not legacy_uid:
            return AuthMigrationResult(success=False, error=INCORRECT_PASSWORD_MESSAGE)

        result = self.migrate_account(email, legacy_uid, send_password_reset=True)
        if not result.success:
            return result
        return AuthMigrationResult(
            success=False,
            migrated=True,
            requires_password_reset=True,
            data_migration=result.data_migration,
            error=WELCOME_MESSAGE,
        )

    def sign_up_guard(self, email: str) -> Optional[str]:
        """Error message when `email` already has an account in either project."""
        if self.user_exists_in_old_project(email) or self.user_exists_in_new_project(email):
            return ACCOUNT_EXISTS_MESSAGE
        return None


def build_flow_from_env(migration: Optional[MigrationService] = None) -> SignInMigrationFlow:
    """Wire both projects' auth clients and the migration service from env."""
    from backend.migration import config
    from backend.migration.wiring import build_migration_service

    from .firebase_auth import IdentityToolkitClient

    api_key = config.get_api_key()
    if not api_key:
        raise RuntimeError("firebase_api_key_missing")
    timeout = config.get_http_timeout()
    legacy_key = config.get_legacy_api_key()
    legacy_auth = IdentityToolkitClient(legacy_key, timeout=timeout) if legacy_key else None
    return SignInMigrationFlow(
        IdentityToolkitClient(api_key, timeout=timeout),
        legacy_auth,
        migration or build_migration_service(),
    )


__all__ = [
    "build_flow_from_env",
    "SignInMigrationFlow",
    "AuthMigrationResult",
    "generate_temporary_password",
    "WELCOME_MESSAGE",
    "USER_NOT_FOUND_MESSAGE",
    "INCORRECT_PASSWORD_MESSAGE",
    "ACCOUNT_EXISTS_MESSAGE",
]
