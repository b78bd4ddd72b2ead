"""Blocking notices for save/delete outcomes."""
from __future__ import annotations

import streamlit as st

from essay_session import EssaySession, Notice

_RENDERERS = {
    "success": st.success,
    "warning": st.warning,
    "error": st.error,
}


@st.dialog("Notice")
def _notice_dialog(notices: list[Notice]) -> None:
    for notice in notices:
        _RENDERERS.get(notice.level, st.info)(notice.message)
    if st.button("OK", type="primary", width="stretch"):
        st.rerun()


def render_notices(session: EssaySession) -> bool:
    """Show queued notices in a dialog; returns True when one was opened."""

    notices = session.drain_notices()
    if not notices:
        return False
    _notice_dialog(notices)
    return True


__all__ = ["render_notices"]
