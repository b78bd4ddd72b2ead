"""Telemetry helpers around the activity log module."""
from __future__ import annotations

from typing import Any, Mapping

import streamlit as st

from activity_log import ActivityLogEntry, log_event
from utils.auth import AUTH_USER_KEY, auth_email


def emit_log_event(
    *,
    type: str,
    action: str,
    result: str,
    details: Mapping[str, Any] | None = None,
    user_email: str | None = None,
) -> ActivityLogEntry | None:
    """Wrapper around ``log_event`` that defaults user_id to the signed-in email."""

    derived_email = user_email if user_email is not None else auth_email(st.session_state.get(AUTH_USER_KEY))
    return log_event(type=type, action=action, result=result, user_id=derived_email, details=details)


__all__ = ["emit_log_event"]
