"""Session state helpers for the Streamlit app."""
from __future__ import annotations

from typing import Any, MutableMapping

import streamlit as st

from essay_library import EssayLibrary
from essay_session import EssaySession
from firebase_auth import FIREBASE_VERIFY_ID_TOKENS, verify_id_token
from utils.auth import AuthStateManager

AUTH_MANAGER_KEY = "auth_manager"
WORKSPACE_KEY = "essay_workspace"

_STATE_DEFAULTS: dict[str, Any] = {
    # Authentication state
    "auth_user": None,
    "auth_error": None,
    "auth_form_mode": "signin",
}


def _state(state: MutableMapping[str, Any] | None) -> MutableMapping[str, Any]:
    return st.session_state if state is None else state


def ensure_state(state: MutableMapping[str, Any] | None = None) -> None:
    backing = _state(state)
    for key, default in _STATE_DEFAULTS.items():
        backing.setdefault(key, default)


def get_auth_manager(state: MutableMapping[str, Any] | None = None) -> AuthStateManager:
    backing = _state(state)
    manager = backing.get(AUTH_MANAGER_KEY)
    if not isinstance(manager, AuthStateManager):
        manager = AuthStateManager(
            backing,
            verify_token=verify_id_token if FIREBASE_VERIFY_ID_TOKENS else None,
        )
        backing[AUTH_MANAGER_KEY] = manager
    return manager


def get_workspace(
    state: MutableMapping[str, Any] | None = None,
    *,
    library: EssayLibrary | None = None,
) -> EssaySession:
    """Return this browser session's workspace, creating and initializing it once."""

    backing = _state(state)
    workspace = backing.get(WORKSPACE_KEY)
    if not isinstance(workspace, EssaySession):
        workspace = EssaySession(get_auth_manager(backing), library or EssayLibrary())
        backing[WORKSPACE_KEY] = workspace
    workspace.initialize()
    return workspace


def teardown_workspace(state: MutableMapping[str, Any] | None = None) -> None:
    backing = _state(state)
    workspace = backing.pop(WORKSPACE_KEY, None)
    if isinstance(workspace, EssaySession):
        workspace.close()


__all__ = [
    "AUTH_MANAGER_KEY",
    "WORKSPACE_KEY",
    "ensure_state",
    "get_auth_manager",
    "get_workspace",
    "teardown_workspace",
]
