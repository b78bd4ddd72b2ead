# app.py
from __future__ import annotations

import logging

import streamlit as st
from dotenv import load_dotenv

load_dotenv(override=False)

from activity_log import ACTIVITY_LOG_ENABLED, get_activity_logging_status, init_activity_log  # noqa: E402
from essay_library import init_essay_library  # noqa: E402
from session_state import ensure_state, get_auth_manager, get_workspace  # noqa: E402
from ui.auth import render_auth_gate  # noqa: E402
from ui.editor import render_editor  # noqa: E402
from ui.essays import render_delete_confirmation, render_essay_sidebar  # noqa: E402
from ui.notices import render_notices  # noqa: E402
from ui.styles import render_app_styles  # noqa: E402

logger = logging.getLogger(__name__)

st.set_page_config(page_title="IELTS Writing", page_icon="✍️", layout="wide")

ESSAY_LIBRARY_INIT_ERROR: str | None = None
try:
    init_essay_library()
except Exception as exc:  # pragma: no cover - initialization failure surfaced below
    logger.warning("Essay storage is not ready: %s", exc)
    ESSAY_LIBRARY_INIT_ERROR = str(exc)

init_activity_log()
ACTIVITY_LOG_ACTIVE, ACTIVITY_LOG_DISABLED_REASON = get_activity_logging_status()
ensure_state()

workspace = get_workspace()
render_app_styles(signed_in=workspace.user is not None)

if workspace.user is None:
    render_auth_gate(get_auth_manager())
    st.stop()

if ESSAY_LIBRARY_INIT_ERROR:
    st.warning(f"Essay storage could not be initialized: {ESSAY_LIBRARY_INIT_ERROR}")
if ACTIVITY_LOG_ENABLED and not ACTIVITY_LOG_ACTIVE:
    st.caption(f"Activity logging is off: {ACTIVITY_LOG_DISABLED_REASON}")

if not render_notices(workspace):
    render_delete_confirmation(workspace)

render_essay_sidebar(workspace)
render_editor(workspace)
