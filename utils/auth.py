"""Authentication state shared across the app: session storage, refresh and change events."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, MutableMapping

import firebase_auth
from firebase_auth import AuthSession, FirebaseAuthError

logger = logging.getLogger(__name__)

_TOKEN_REFRESH_LEEWAY = timedelta(minutes=2)
AUTH_USER_KEY = "auth_user"
AUTH_ERROR_KEY = "auth_error"


class AuthEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


@dataclass(frozen=True, slots=True)
class AuthUser:
    """The signed-in account as stored in session state."""

    uid: str
    email: str
    display_name: str
    id_token: str
    refresh_token: str
    expires_at: datetime
    is_email_verified: bool = False

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "AuthUser | None":
        expires_at = parse_iso_datetime(raw.get("expires_at"))
        uid = str(raw.get("uid") or "")
        id_token = str(raw.get("id_token") or "")
        refresh_token = str(raw.get("refresh_token") or "")
        if not expires_at or not uid or not id_token or not refresh_token:
            return None
        return cls(
            uid=uid,
            email=str(raw.get("email") or ""),
            display_name=str(raw.get("display_name") or ""),
            id_token=id_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            is_email_verified=bool(raw.get("is_email_verified")),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "uid": self.uid,
            "email": self.email,
            "display_name": self.display_name,
            "id_token": self.id_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
            "is_email_verified": self.is_email_verified,
        }


AuthListener = Callable[[AuthEvent, "AuthUser | None"], None]


class AuthSubscription:
    """Handle returned by :meth:`AuthStateManager.subscribe`."""

    def __init__(self, manager: "AuthStateManager", listener: AuthListener) -> None:
        self._manager = manager
        self._listener = listener
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._manager._listeners.remove(self._listener)
            self.active = False


def parse_iso_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif not value:
        return None
    else:
        try:
            dt = datetime.fromisoformat(str(value))
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class AuthStateManager:
    """Keeps the signed-in user inside a mapping (usually ``st.session_state``).

    Listeners registered with :meth:`subscribe` are told about sign-in,
    sign-out and token refresh so dependent state can follow along.
    """

    def __init__(
        self,
        backing: MutableMapping[str, Any],
        *,
        verify_token: Callable[[str], Mapping[str, Any]] | None = None,
    ) -> None:
        self._backing = backing
        self._verify_token = verify_token
        self._listeners: list[AuthListener] = []

    # Subscriptions ----------------------------------------------------------------
    def subscribe(self, listener: AuthListener) -> AuthSubscription:
        self._listeners.append(listener)
        return AuthSubscription(self, listener)

    def _emit(self, event: AuthEvent, user: AuthUser | None) -> None:
        for listener in list(self._listeners):
            listener(event, user)

    # Session storage --------------------------------------------------------------
    @property
    def error(self) -> str | None:
        raw = self._backing.get(AUTH_ERROR_KEY)
        return raw if isinstance(raw, str) and raw.strip() else None

    @error.setter
    def error(self, message: str | None) -> None:
        self._backing[AUTH_ERROR_KEY] = message

    def stored_user(self) -> AuthUser | None:
        raw = self._backing.get(AUTH_USER_KEY)
        if not isinstance(raw, Mapping):
            return None
        user = AuthUser.from_mapping(raw)
        if user is None:
            self._backing[AUTH_USER_KEY] = None
        return user

    def store_session(self, session: AuthSession, *, previous: AuthUser | None = None) -> AuthUser:
        """Persist ``session`` and notify listeners (sign-in or refresh)."""

        uid = session.uid or (previous.uid if previous else "")
        if self._verify_token is not None:
            claims = self._verify_token(session.id_token)
            verified_uid = str(claims.get("uid") or claims.get("sub") or "")
            if verified_uid != uid:
                raise FirebaseAuthError("ID token does not belong to the signed-in account", code="UID_MISMATCH")

        user = AuthUser(
            uid=uid,
            email=session.email or (previous.email if previous else ""),
            display_name=session.display_name or (previous.display_name if previous else ""),
            id_token=session.id_token or (previous.id_token if previous else ""),
            refresh_token=session.refresh_token or (previous.refresh_token if previous else ""),
            expires_at=session.expires_at,
            is_email_verified=session.is_email_verified or bool(previous and previous.is_email_verified),
        )
        self._backing[AUTH_USER_KEY] = user.to_mapping()
        self.error = None

        refreshed = previous is not None and previous.uid == user.uid
        self._emit(AuthEvent.TOKEN_REFRESHED if refreshed else AuthEvent.SIGNED_IN, user)
        return user

    def current_user(self) -> AuthUser | None:
        """Return the signed-in user, refreshing the ID token near expiry."""

        user = self.stored_user()
        if user is None:
            return None

        now = datetime.now(timezone.utc)
        if user.expires_at - now > _TOKEN_REFRESH_LEEWAY:
            return user

        try:
            refreshed = firebase_auth.refresh_id_token(user.refresh_token)
            return self.store_session(refreshed, previous=user)
        except FirebaseAuthError as exc:
            message = format_auth_error(exc)
        except Exception as exc:  # pragma: no cover - unexpected transport errors
            logger.exception("Unexpected failure refreshing the Firebase session")
            message = f"Could not refresh your session: {exc}"

        self._clear()
        self.error = message
        self._emit(AuthEvent.SIGNED_OUT, None)
        return None

    # Flows ------------------------------------------------------------------------
    def sign_in(self, email: str, password: str) -> AuthUser:
        return self.store_session(firebase_auth.sign_in(email, password))

    def sign_up(self, email: str, password: str, *, display_name: str | None = None) -> AuthUser:
        session = firebase_auth.sign_up(email, password, display_name=display_name)
        if display_name and not session.display_name:
            session = firebase_auth.update_profile(session.id_token, display_name=display_name)
        return self.store_session(session)

    def _clear(self) -> None:
        self._backing[AUTH_USER_KEY] = None
        self.error = None

    def sign_out(self) -> None:
        """Forget the stored tokens and notify listeners."""

        self._clear()
        self._emit(AuthEvent.SIGNED_OUT, None)


def format_auth_error(error: Exception) -> str:
    if isinstance(error, FirebaseAuthError):
        code = (error.code or "").upper()
        messages = {
            "EMAIL_EXISTS": "An account with this email already exists. Try signing in instead.",
            "EMAIL_NOT_FOUND": "No account is registered with this email.",
            "INVALID_PASSWORD": "The password is incorrect.",
            "INVALID_LOGIN_CREDENTIALS": "Email or password is incorrect.",
            "USER_NOT_FOUND": "No account is registered with this email.",
            "USER_DISABLED": "This account has been disabled.",
            "INVALID_EMAIL": "Please check the email address format.",
            "WEAK_PASSWORD": "Passwords must be at least 6 characters long.",
            "MISSING_PASSWORD": "Please enter your password.",
            "TOKEN_EXPIRED": "Your session has expired. Please sign in again.",
            "INVALID_REFRESH_TOKEN": "Your session has expired. Please sign in again.",
        }
        if code in messages:
            return messages[code]
        return "The sign-in request failed. Please try again in a moment."
    if isinstance(error, RuntimeError):
        return str(error)
    return "Something went wrong while signing you in."


def auth_display_name(user: AuthUser | Mapping[str, Any] | None) -> str:
    if user is None:
        return "Anonymous writer"
    if isinstance(user, Mapping):
        display, email = user.get("display_name"), user.get("email")
    else:
        display, email = user.display_name, user.email
    return str(display or "").strip() or str(email or "").strip() or "Anonymous writer"


def auth_email(user: AuthUser | Mapping[str, Any] | None) -> str | None:
    if not user:
        return None
    raw = user.get("email") if isinstance(user, Mapping) else user.email
    email = str(raw or "").strip()
    return email or None


__all__ = [
    "AUTH_ERROR_KEY",
    "AUTH_USER_KEY",
    "AuthEvent",
    "AuthStateManager",
    "AuthSubscription",
    "AuthUser",
    "auth_display_name",
    "auth_email",
    "format_auth_error",
    "parse_iso_datetime",
]
