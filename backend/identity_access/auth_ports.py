"""
Authentication provider port used by the sign-in migration flow.

Why:
    The flow talks to two identity projects (legacy and new) through the same
    small surface. Providers raise `AuthError` carrying a stable provider code
    ("auth/user-not-found", ...); `handle_auth_error` turns a code into the
    message shown to end users.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class AuthUser:
    uid: str
    email: str
    id_token: Optional[str] = None


class AuthError(Exception):
    """Provider failure with a stable `code` such as "auth/user-not-found"."""

    def __init__(self, code: str, message: Optional[str] = None) -> None:
        super().__init__(message or code)
        self.code = code


class AuthProvider(Protocol):
    def sign_in(self, email: str, password: str) -> AuthUser: ...

    def user_exists(self, email: str) -> bool: ...

    def create_user(self, email: str, password: str) -> AuthUser: ...

    def send_password_reset(self, email: str) -> None: ...


AUTH_ERROR_MESSAGES = {
    "auth/user-not-found": "User not found. Please sign up first.",
    "auth/wrong-password": "Incorrect password. Please try again.",
    "auth/invalid-email": "Invalid email address.",
    "auth/user-disabled": "This account has been disabled.",
    "auth/email-already-in-use": "Email already in use. Please sign in or use a different email.",
    "auth/weak-password": "Password is too weak. Use at least 6 characters.",
    "auth/operation-not-allowed": "This operation is not allowed. Please contact support.",
    "auth/too-many-requests": "Too many failed attempts. Please try again later.",
    "auth/network-request-failed": "Network error. Please check your internet connection.",
}
DEFAULT_AUTH_ERROR_MESSAGE = "An error occurred. Please try again."


def handle_auth_error(error: BaseException) -> str:
    """User-facing message for a provider error."""
    code = getattr(error, "code", None)
    return AUTH_ERROR_MESSAGES.get(code, DEFAULT_AUTH_ERROR_MESSAGE)


__all__ = [
    "AuthUser",
    "AuthError",
    "AuthProvider",
    "AUTH_ERROR_MESSAGES",
    "handle_auth_error",
]
