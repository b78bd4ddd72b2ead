"""Styling helpers for Streamlit layouts."""
from __future__ import annotations

import streamlit as st


def render_app_styles(*, signed_in: bool) -> None:
    """Apply the plain black-and-white writing theme."""
    base_css = """
    <style>
    .stApp {
        background: #ffffff;
    }
    [data-testid="stHeader"] {
        background: rgba(0, 0, 0, 0);
    }
    [data-testid="stSidebar"] {
        background: #f9fafb;
        border-right: 1px solid #e5e7eb;
        min-width: 18rem;
        max-width: 18rem;
    }
    [data-testid="stSidebar"] .stButton > button {
        justify-content: flex-start;
        text-align: left;
    }
    .essay-meta {
        color: #6b7280;
        font-size: 0.75rem;
        display: flex;
        justify-content: space-between;
        margin: -0.4rem 0 0.6rem;
    }
    .word-count {
        color: #4b5563;
        font-size: 0.875rem;
    }
    textarea {
        font-size: 1rem !important;
        line-height: 1.7 !important;
    }
    </style>
    """
    st.markdown(base_css, unsafe_allow_html=True)

    if not signed_in:
        st.markdown(
            "<style>[data-testid='stSidebar'] { display: none; }</style>",
            unsafe_allow_html=True,
        )


__all__ = ["render_app_styles"]
