"""Editor pane: title, content and live word count."""
from __future__ import annotations

import streamlit as st

from essay_session import EditorMode, EssaySession, SaveFailure
from telemetry import emit_log_event


def _sync_title(session: EssaySession, key: str) -> None:
    session.set_title(st.session_state.get(key, ""))


def _sync_content(session: EssaySession, key: str) -> None:
    session.set_content(st.session_state.get(key, ""))


def _save_label(session: EssaySession) -> str:
    if session.is_saving:
        return "Saving..."
    return "Update" if session.mode is EditorMode.EDITING else "Save"


def _handle_save(session: EssaySession) -> None:
    with st.spinner("Saving..."):
        saved = session.save()
    if saved is not None:
        emit_log_event(
            type="essay",
            action="essay save",
            result="success",
            details={"essay_id": saved.id, "word_count": saved.word_count},
        )
    elif session.save_failure is SaveFailure.STORAGE:
        emit_log_event(type="essay", action="essay save", result="fail", details={"title": session.title})


def render_editor(session: EssaySession) -> None:
    revision = session.draft_revision
    title_key = f"essay_title_{revision}"
    content_key = f"essay_content_{revision}"

    st.text_input(
        "Essay title",
        value=session.title,
        key=title_key,
        placeholder="Essay title...",
        label_visibility="collapsed",
        on_change=_sync_title,
        args=(session, title_key),
    )

    count_col, button_col = st.columns([4, 1])
    with count_col:
        st.markdown(f"<span class='word-count'>Word count: {session.word_count}</span>", unsafe_allow_html=True)
    with button_col:
        if st.button(
            _save_label(session),
            key="essay_save",
            type="primary",
            disabled=not session.can_save,
            width="stretch",
        ):
            _handle_save(session)
            st.rerun()

    st.text_area(
        "Essay content",
        value=session.content,
        key=content_key,
        placeholder="Start writing your essay...",
        label_visibility="collapsed",
        height=480,
        on_change=_sync_content,
        args=(session, content_key),
    )


__all__ = ["render_editor"]
