"""Firebase Authentication helpers (REST sign-up/sign-in/refresh, Admin token checks)."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Mapping, MutableMapping

import firebase_admin
import requests
from firebase_admin import auth as admin_auth, credentials


logger = logging.getLogger(__name__)

FIREBASE_WEB_API_KEY = (os.getenv("FIREBASE_WEB_API_KEY") or "").strip()
FIREBASE_VERIFY_ID_TOKENS = (os.getenv("FIREBASE_VERIFY_ID_TOKENS", "true").strip().lower() not in {"0", "false", "no"})

_IDENTITY_BASE_URL = "https://identitytoolkit.googleapis.com/v1"
_SECURETOKEN_URL = "https://securetoken.googleapis.com/v1/token"
_REQUEST_TIMEOUT_SECONDS = 10
_DEFAULT_EXPIRES_SECONDS = 3600


class FirebaseAuthError(RuntimeError):
    """Raised when Firebase rejects an authentication request."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class AuthSession:
    """Tokens and profile returned by a sign-up, sign-in or refresh."""

    uid: str
    email: str
    id_token: str
    refresh_token: str
    expires_at: datetime
    display_name: str | None = None
    is_email_verified: bool = False

    @property
    def expires_in(self) -> timedelta:
        return max(self.expires_at - datetime.now(timezone.utc), timedelta(0))


def _require_api_key() -> str:
    if not FIREBASE_WEB_API_KEY:
        raise RuntimeError("FIREBASE_WEB_API_KEY is not configured; cannot reach Firebase Authentication.")
    return FIREBASE_WEB_API_KEY


def _error_details(payload: Any) -> tuple[str | None, str | None]:
    """Extract ``(message, code)`` from either Firebase error envelope."""

    if not isinstance(payload, Mapping):
        return None, None
    error = payload.get("error")
    if isinstance(error, Mapping):
        message = str(error.get("message") or "") or None
        # Identity Toolkit codes look like "WEAK_PASSWORD : Password should be ..."
        code = message.split(":", 1)[0].strip() if message else None
        return message, code
    if isinstance(error, str):
        return str(payload.get("error_description") or error), error.upper()
    return None, None


def _call_firebase(
    url: str,
    *,
    json_body: Mapping[str, Any] | None = None,
    form_body: Mapping[str, Any] | None = None,
    params: Mapping[str, str] | None = None,
    service: str = "Firebase Authentication",
) -> MutableMapping[str, Any]:
    try:
        response = requests.post(
            url,
            json=json_body,
            data=form_body,
            params=params,
            timeout=_REQUEST_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:  # pragma: no cover - network issues
        raise FirebaseAuthError(f"Network error contacting {service}: {exc}") from exc

    try:
        data = response.json()
    except json.JSONDecodeError as exc:  # pragma: no cover - HTML error pages
        raise FirebaseAuthError(f"Invalid response from {service} (non-JSON body)") from exc

    if response.status_code >= 400:
        message, code = _error_details(data)
        raise FirebaseAuthError(message or f"{service} request failed", code=code)

    if not isinstance(data, MutableMapping):
        raise FirebaseAuthError(f"Unexpected {service} response shape")
    return data


def _identity_call(endpoint: str, payload: Mapping[str, Any]) -> MutableMapping[str, Any]:
    key = _require_api_key()
    return _call_firebase(f"{_IDENTITY_BASE_URL}/{endpoint}", json_body=payload, params={"key": key})


def _parse_auth_session(data: Mapping[str, Any]) -> AuthSession:
    try:
        expires_seconds = int(str(data.get("expiresIn") or data.get("expires_in") or _DEFAULT_EXPIRES_SECONDS))
    except ValueError:  # pragma: no cover - malformed expiresIn
        expires_seconds = _DEFAULT_EXPIRES_SECONDS

    return AuthSession(
        uid=str(data.get("localId") or data.get("user_id") or ""),
        email=str(data.get("email") or ""),
        id_token=str(data.get("idToken") or data.get("id_token") or ""),
        refresh_token=str(data.get("refreshToken") or data.get("refresh_token") or ""),
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_seconds),
        display_name=data.get("displayName") or None,
        is_email_verified=bool(data.get("emailVerified")),
    )


def sign_up(email: str, password: str, *, display_name: str | None = None) -> AuthSession:
    """Create an email/password account and return its first session."""

    payload: dict[str, Any] = {"email": email, "password": password, "returnSecureToken": True}
    if display_name:
        payload["displayName"] = display_name
    return _parse_auth_session(_identity_call("accounts:signUp", payload))


def sign_in(email: str, password: str) -> AuthSession:
    """Authenticate an existing email/password account."""

    payload = {"email": email, "password": password, "returnSecureToken": True}
    return _parse_auth_session(_identity_call("accounts:signInWithPassword", payload))


def update_profile(id_token: str, *, display_name: str | None = None) -> AuthSession:
    """Update the display name of the signed-in account."""

    payload: dict[str, Any] = {"idToken": id_token, "returnSecureToken": True}
    if display_name is not None:
        payload["displayName"] = display_name
    return _parse_auth_session(_identity_call("accounts:update", payload))


def refresh_id_token(refresh_token: str) -> AuthSession:
    """Exchange a refresh token for a fresh ID token."""

    key = _require_api_key()
    data = _call_firebase(
        _SECURETOKEN_URL,
        form_body={"grant_type": "refresh_token", "refresh_token": refresh_token},
        params={"key": key},
        service="Secure Token API",
    )
    # The Secure Token API answers in snake_case and omits the email.
    return _parse_auth_session(
        {
            "localId": data.get("user_id"),
            "idToken": data.get("id_token"),
            "refreshToken": data.get("refresh_token"),
            "expiresIn": data.get("expires_in"),
        }
    )


def _service_account_path() -> Path | None:
    for raw in (os.getenv("GOOGLE_APPLICATION_CREDENTIALS"), os.getenv("FIREBASE_SERVICE_ACCOUNT")):
        if not raw:
            continue
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = Path.cwd() / path
        if path.is_file():
            return path
    return None


def ensure_firebase_admin_initialized() -> firebase_admin.App:
    """Initialise the Firebase Admin SDK once per process."""

    if firebase_admin._apps:  # type: ignore[attr-defined]
        return firebase_admin.get_app()

    project_id = (os.getenv("GCP_PROJECT_ID") or os.getenv("GCP_PROJECT") or "").strip()
    options = {"projectId": project_id} if project_id else None

    service_account_path = _service_account_path()
    if service_account_path is not None:
        return firebase_admin.initialize_app(credentials.Certificate(str(service_account_path)), options)

    try:
        cred = credentials.ApplicationDefault()
    except Exception as exc:  # pragma: no cover - environment specific
        raise RuntimeError(
            "Firebase Admin SDK could not initialize. Provide GOOGLE_APPLICATION_CREDENTIALS or "
            "FIREBASE_SERVICE_ACCOUNT pointing to a service-account JSON file."
        ) from exc
    return firebase_admin.initialize_app(cred, options)


def verify_id_token(id_token: str, *, check_revoked: bool = False) -> Mapping[str, Any]:
    """Verify an ID token with the Admin SDK and return its claims."""

    ensure_firebase_admin_initialized()
    try:
        return admin_auth.verify_id_token(id_token, check_revoked=check_revoked)
    except (ValueError, admin_auth.InvalidIdTokenError) as exc:
        raise FirebaseAuthError(f"ID token rejected: {exc}", code="INVALID_ID_TOKEN") from exc


__all__ = [
    "AuthSession",
    "FIREBASE_VERIFY_ID_TOKENS",
    "FirebaseAuthError",
    "ensure_firebase_admin_initialized",
    "refresh_id_token",
    "sign_in",
    "sign_up",
    "update_profile",
    "verify_id_token",
]
