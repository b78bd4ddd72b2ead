"""Sidebar listing the signed-in user's essays."""
from __future__ import annotations

import streamlit as st

from essay_library import EssayRecord
from essay_session import EssaySession, PendingDelete
from session_state import teardown_workspace
from telemetry import emit_log_event
from utils.auth import auth_display_name, auth_email
from utils.time_utils import format_local_date


def _sign_out(session: EssaySession) -> None:
    email = auth_email(session.user)
    session.sign_out()
    teardown_workspace()
    emit_log_event(type="user", action="logout", result="success", user_email=email)


def _render_entry(session: EssaySession, essay: EssayRecord) -> None:
    is_selected = session.selected is not None and session.selected.id == essay.id
    with st.container(border=True):
        if st.button(
            essay.title,
            key=f"essay_select_{essay.id}",
            type="primary" if is_selected else "secondary",
            width="stretch",
        ):
            session.select_essay(essay)
            st.rerun()
        st.markdown(
            f"<div class='essay-meta'><span>{essay.word_count} words</span>"
            f"<span>{format_local_date(essay.created_at_utc)}</span></div>",
            unsafe_allow_html=True,
        )
        edit_col, delete_col = st.columns(2)
        with edit_col:
            if st.button("✏️ Edit", key=f"essay_edit_{essay.id}", help="Edit essay", width="stretch"):
                session.select_essay(essay)
                st.rerun()
        with delete_col:
            if st.button("🗑️ Delete", key=f"essay_delete_{essay.id}", help="Delete essay", width="stretch"):
                session.request_delete(essay)
                st.rerun()


def render_essay_sidebar(session: EssaySession) -> None:
    with st.sidebar:
        header_col, logout_col = st.columns([3, 1])
        with header_col:
            st.subheader("Essays")
            st.caption(auth_display_name(session.user))
        with logout_col:
            if st.button("⎋", key="essay_sign_out", help="Sign out"):
                _sign_out(session)
                st.rerun()

        if st.button("➕ New Essay", key="essay_new", type="primary", width="stretch"):
            session.start_new_essay()
            st.rerun()

        st.markdown("---")
        if session.is_loading:
            st.caption("Loading...")
        elif not session.essays:
            st.caption("No essays yet")
        else:
            for essay in session.essays:
                _render_entry(session, essay)


def _render_delete_prompt(session: EssaySession, pending: PendingDelete) -> None:
    # Plain text so essay titles are never rendered as Markdown.
    st.text(pending.prompt)
    cancel_col, delete_col = st.columns(2)
    with cancel_col:
        if st.button("Cancel", width="stretch"):
            st.rerun()
    with delete_col:
        if st.button("Delete", type="primary", width="stretch"):
            deleted = session.delete_essay(pending.essay_id, pending.title, confirm=lambda _prompt: True)
            emit_log_event(
                type="essay",
                action="essay delete",
                result="success" if deleted else "fail",
                details={"essay_id": pending.essay_id, "title": pending.title},
            )
            st.rerun()


@st.dialog("Delete essay")
def _confirm_delete_dialog(session: EssaySession, pending: PendingDelete) -> None:
    _render_delete_prompt(session, pending)


def render_delete_confirmation(session: EssaySession) -> None:
    """Open the confirmation dialog for a pending delete request, if any."""

    pending = session.pending_delete
    if pending is None:
        return
    # The dialog owns the request from here; dismissing it is a decline.
    session.cancel_delete()
    _confirm_delete_dialog(session, pending)


__all__ = ["render_delete_confirmation", "render_essay_sidebar"]
