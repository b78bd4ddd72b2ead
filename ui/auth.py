"""Authentication gate shown before the essay workspace."""
from __future__ import annotations

import streamlit as st

from telemetry import emit_log_event
from utils.auth import AuthStateManager, auth_display_name, format_auth_error


def render_auth_gate(auth: AuthStateManager) -> None:
    st.title("IELTS Writing")
    st.caption("Sign in to start practicing")

    if auth.error:
        st.error(auth.error)

    mode = st.radio(
        "Do you already have an account?",
        options=("signin", "signup"),
        format_func=lambda value: "Sign In" if value == "signin" else "Sign Up",
        horizontal=True,
        key="auth_form_mode",
    )

    if mode == "signin":
        with st.form("auth_signin_form", clear_on_submit=True):
            email = st.text_input("Email", key="auth_signin_email", placeholder="you@example.com", max_chars=120)
            password = st.text_input("Password", type="password", key="auth_signin_password")
            submitted = st.form_submit_button("Sign In", type="primary", width="stretch")

        if submitted:
            email_norm = email.strip()
            if not email_norm or not password:
                auth.error = "Please enter both email and password."
                st.rerun()
            try:
                user = auth.sign_in(email_norm, password)
            except Exception as exc:  # noqa: BLE001
                message = format_auth_error(exc)
                auth.error = message
                emit_log_event(
                    type="user",
                    action="login",
                    result="fail",
                    user_email=email_norm,
                    details={"reason": message},
                )
            else:
                emit_log_event(
                    type="user",
                    action="login",
                    result="success",
                    user_email=user.email,
                    details={"display_name": auth_display_name(user)},
                )
            st.rerun()
    else:
        with st.form("auth_signup_form", clear_on_submit=True):
            display_name = st.text_input("Display name", key="auth_signup_display_name", max_chars=40)
            email = st.text_input("Email", key="auth_signup_email", placeholder="you@example.com", max_chars=120)
            password = st.text_input("Password (6+ characters)", type="password", key="auth_signup_password")
            submitted = st.form_submit_button("Sign Up", type="primary", width="stretch")

        if submitted:
            email_norm = email.strip()
            display_norm = display_name.strip()
            if not email_norm or not password:
                auth.error = "Please enter an email and a password."
                st.rerun()
            try:
                user = auth.sign_up(email_norm, password, display_name=display_norm or None)
            except Exception as exc:  # noqa: BLE001
                message = format_auth_error(exc)
                auth.error = message
                emit_log_event(
                    type="user",
                    action="signup",
                    result="fail",
                    user_email=email_norm,
                    details={"reason": message},
                )
            else:
                emit_log_event(
                    type="user",
                    action="signup",
                    result="success",
                    user_email=user.email,
                    details={"display_name": auth_display_name(user)},
                )
            st.rerun()


__all__ = ["render_auth_gate"]
