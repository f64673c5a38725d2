"""
Firebase Authentication adapter over the Identity Toolkit REST API.

Why:
    Verifying a user's password requires the web API (the Admin SDK cannot
    check passwords). One client per project: the legacy client verifies old
    credentials, the new client creates accounts and sends reset e-mails.

Errors:
    REST error messages ("EMAIL_NOT_FOUND", "WEAK_PASSWORD : ...") are mapped to
    `AuthError` codes; transport errors become "auth/network-request-failed".
"""
from __future__ import annotations

import logging
from typing import Any, Dict

import requests

from .auth_ports import AuthError, AuthUser


logger = logging.getLogger("coachplan.identity_access.firebase_auth")

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"

_REST_ERROR_CODES = {
    "EMAIL_NOT_FOUND": "auth/user-not-found",
    "INVALID_PASSWORD": "auth/wrong-password",
    "INVALID_LOGIN_CREDENTIALS": "auth/invalid-credential",
    "USER_DISABLED": "auth/user-disabled",
    "EMAIL_EXISTS": "auth/email-already-in-use",
    "WEAK_PASSWORD": "auth/weak-password",
    "INVALID_EMAIL": "auth/invalid-email",
    "MISSING_EMAIL": "auth/invalid-email",
    "OPERATION_NOT_ALLOWED": "auth/operation-not-allowed",
    "PASSWORD_LOGIN_DISABLED": "auth/operation-not-allowed",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "auth/too-many-requests",
}


def error_code_for(message: str) -> str:
    """Map a REST error message to an auth code ("auth/internal-error" if unknown)."""
    key = (message or "").split(":", 1)[0].strip()
    return _REST_ERROR_CODES.get(key, "auth/internal-error")


class IdentityToolkitClient:
    """Minimal Identity Toolkit client (sync, requests-based)."""

    def __init__(
        self,
        api_key: str,
        *,
        session: requests.Session | None = None,
        timeout: float = 10.0,
        base_url: str = IDENTITY_TOOLKIT_URL,
        continue_uri: str = "http://localhost",
    ) -> None:
        if not api_key:
            raise RuntimeError("firebase_api_key_missing")
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.continue_uri = continue_uri

    # --- REST helpers -----------------------------------------------------

    def _post(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.session.post(
                f"{self.base_url}/accounts:{method}",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Identity Toolkit %s failed: %s", method, exc.__class__.__name__)
            raise AuthError("auth/network-request-failed", str(exc)) from exc
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            message = ((data.get("error") or {}).get("message") or "") if isinstance(data, dict) else ""
            raise AuthError(error_code_for(message), message or f"http_{resp.status_code}")
        return data if isinstance(data, dict) else {}

    # --- AuthProvider -----------------------------------------------------

    def sign_in(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        return AuthUser(uid=data["localId"], email=data.get("email", email), id_token=data.get("idToken"))

    def user_exists(self, email: str) -> bool:
        data = self._post("createAuthUri", {"identifier": email, "continueUri": self.continue_uri})
        return bool(data.get("registered"))

    def create_user(self, email: str, password: str) -> AuthUser:
        data = self._post(
            "signUp", {"email": email, "password": password, "returnSecureToken": True}
        )
        return AuthUser(uid=data["localId"], email=data.get("email", email), id_token=data.get("idToken"))

    def send_password_reset(self, email: str) -> None:
        self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})


__all__ = ["IdentityToolkitClient", "error_code_for", "IDENTITY_TOOLKIT_URL"]
