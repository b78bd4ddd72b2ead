from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

import utils.auth as auth_module
from utils.auth import (
    AUTH_ERROR_KEY,
    AUTH_USER_KEY,
    AuthEvent,
    AuthStateManager,
    auth_display_name,
    auth_email,
    format_auth_error,
)


def _session(uid="uid-1", *, email="writer@example.com", expires_in=timedelta(hours=1), display_name="Writer"):
    return auth_module.AuthSession(
        uid=uid,
        email=email,
        id_token=f"id-{uid}",
        refresh_token=f"refresh-{uid}",
        expires_at=datetime.now(timezone.utc) + expires_in,
        display_name=display_name,
    )


def _recorder(manager: AuthStateManager) -> list[tuple[AuthEvent, str | None]]:
    events: list[tuple[AuthEvent, str | None]] = []
    manager.subscribe(lambda event, user: events.append((event, user.uid if user else None)))
    return events


def test_store_session_persists_mapping_and_emits_sign_in():
    state: dict = {AUTH_ERROR_KEY: "old error"}
    manager = AuthStateManager(state)
    events = _recorder(manager)

    user = manager.store_session(_session())

    assert state[AUTH_USER_KEY]["uid"] == "uid-1"
    assert state[AUTH_ERROR_KEY] is None
    assert manager.current_user() == user
    assert events == [(AuthEvent.SIGNED_IN, "uid-1")]


def test_stored_user_discards_incomplete_mapping():
    state: dict = {AUTH_USER_KEY: {"uid": "uid-1", "id_token": ""}}
    manager = AuthStateManager(state)

    assert manager.stored_user() is None
    assert state[AUTH_USER_KEY] is None


def test_current_user_refreshes_near_expiry(monkeypatch):
    manager = AuthStateManager({})
    manager.store_session(_session(expires_in=timedelta(seconds=30)))
    events = _recorder(manager)

    def fake_refresh(token):
        assert token == "refresh-uid-1"
        return auth_module.AuthSession(
            uid="uid-1",
            email="",
            id_token="fresh-id",
            refresh_token="fresh-refresh",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )

    monkeypatch.setattr(auth_module.firebase_auth, "refresh_id_token", fake_refresh)

    user = manager.current_user()
    assert user is not None
    assert user.id_token == "fresh-id"
    assert user.email == "writer@example.com"
    assert user.display_name == "Writer"
    assert events == [(AuthEvent.TOKEN_REFRESHED, "uid-1")]


def test_failed_refresh_signs_out_with_message(monkeypatch):
    state: dict = {}
    manager = AuthStateManager(state)
    manager.store_session(_session(expires_in=timedelta(seconds=-5)))
    events = _recorder(manager)

    def fake_refresh(_token):
        raise auth_module.FirebaseAuthError("TOKEN_EXPIRED", code="TOKEN_EXPIRED")

    monkeypatch.setattr(auth_module.firebase_auth, "refresh_id_token", fake_refresh)

    assert manager.current_user() is None
    assert state[AUTH_USER_KEY] is None
    assert manager.error == "Your session has expired. Please sign in again."
    assert events == [(AuthEvent.SIGNED_OUT, None)]


def test_verify_token_rejects_mismatched_uid():
    state: dict = {}
    manager = AuthStateManager(state, verify_token=lambda _token: {"uid": "someone-else"})

    with pytest.raises(auth_module.FirebaseAuthError) as excinfo:
        manager.store_session(_session())
    assert excinfo.value.code == "UID_MISMATCH"
    assert state.get(AUTH_USER_KEY) is None


def test_sign_up_sets_missing_display_name(monkeypatch):
    manager = AuthStateManager({})
    calls: list[str] = []

    def fake_sign_up(email, password, *, display_name=None):
        calls.append("sign_up")
        return _session(email=email, display_name=None)

    def fake_update_profile(id_token, *, display_name=None):
        calls.append("update_profile")
        assert id_token == "id-uid-1"
        return _session(display_name=display_name)

    monkeypatch.setattr(auth_module.firebase_auth, "sign_up", fake_sign_up)
    monkeypatch.setattr(auth_module.firebase_auth, "update_profile", fake_update_profile)

    user = manager.sign_up("writer@example.com", "secret123", display_name="Band Nine")
    assert calls == ["sign_up", "update_profile"]
    assert user.display_name == "Band Nine"


def test_sign_out_clears_and_notifies():
    state: dict = {}
    manager = AuthStateManager(state)
    manager.store_session(_session())
    events = _recorder(manager)

    manager.sign_out()

    assert manager.current_user() is None
    assert events == [(AuthEvent.SIGNED_OUT, None)]


def test_unsubscribe_is_idempotent():
    manager = AuthStateManager({})
    events: list[AuthEvent] = []
    subscription = manager.subscribe(lambda event, _user: events.append(event))

    subscription.unsubscribe()
    subscription.unsubscribe()
    manager.store_session(_session())

    assert events == []
    assert subscription.active is False


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        ("EMAIL_EXISTS", "An account with this email already exists. Try signing in instead."),
        ("WEAK_PASSWORD", "Passwords must be at least 6 characters long."),
        ("INVALID_LOGIN_CREDENTIALS", "Email or password is incorrect."),
        ("SOMETHING_NEW", "The sign-in request failed. Please try again in a moment."),
    ],
)
def test_format_auth_error(code, expected):
    assert format_auth_error(auth_module.FirebaseAuthError(code, code=code)) == expected


def test_format_auth_error_passes_runtime_messages():
    assert format_auth_error(RuntimeError("FIREBASE_WEB_API_KEY is not configured")) == (
        "FIREBASE_WEB_API_KEY is not configured"
    )


def test_display_helpers():
    assert auth_display_name(None) == "Anonymous writer"
    assert auth_display_name({"display_name": " ", "email": "writer@example.com"}) == "writer@example.com"
    assert auth_email({"email": "  "}) is None
    assert auth_email({"email": "writer@example.com"}) == "writer@example.com"
