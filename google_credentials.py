"""Service-account credential discovery for the Firestore clients."""
from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Mapping

from google.auth.credentials import Credentials
from google.oauth2 import service_account

logger = logging.getLogger(__name__)

_SECRET_SECTIONS = ("google_credentials", "gcp_service_account", "service_account")
_JSON_ENV_KEYS = ("GOOGLE_CREDENTIALS_JSON", "GOOGLE_APPLICATION_CREDENTIALS_JSON", "GCP_SERVICE_ACCOUNT_INFO")
_REQUIRED_FIELDS = frozenset({"type", "project_id", "private_key", "client_email"})
_DEFAULT_CREDENTIAL_FILE = Path("google-credential.json")


def _as_service_account_info(candidate: Any) -> dict[str, Any] | None:
    """Return ``candidate`` as a service-account dict when it has the required fields."""

    if isinstance(candidate, str):
        text = candidate.strip()
        if not text:
            return None
        try:
            candidate = json.loads(text)
        except ValueError:
            return None
    if isinstance(candidate, Mapping) or (hasattr(candidate, "keys") and hasattr(candidate, "__getitem__")):
        info = {str(key): candidate[key] for key in candidate.keys()}
        if _REQUIRED_FIELDS.issubset(info):
            return info
    return None


def _info_from_streamlit_secrets() -> dict[str, Any] | None:
    try:
        import streamlit as st

        secrets = st.secrets
        sections = [secrets.get(name) for name in _SECRET_SECTIONS]
        sections.extend([secrets.get("GOOGLE_CREDENTIALS_JSON"), secrets])
    except Exception:  # streamlit missing, or no secrets.toml present
        return None

    for section in sections:
        info = _as_service_account_info(section)
        if info:
            return info
    return None


def _info_from_env() -> dict[str, Any] | None:
    for key in _JSON_ENV_KEYS:
        info = _as_service_account_info(os.getenv(key) or "")
        if info:
            return info
    return None


def _credentials_from_file() -> Credentials | None:
    paths = [Path(raw).expanduser() for raw in (os.getenv("GOOGLE_APPLICATION_CREDENTIALS"),) if raw]
    paths.append(_DEFAULT_CREDENTIAL_FILE)
    for path in paths:
        if not path.is_file():
            continue
        try:
            return service_account.Credentials.from_service_account_file(str(path))
        except (ValueError, OSError) as exc:
            logger.warning("Ignoring unreadable service-account file %s: %s", path, exc)
    return None


def _credentials_from(source: Callable[[], dict[str, Any] | None]) -> Credentials | None:
    info = source()
    if not info:
        return None
    try:
        return service_account.Credentials.from_service_account_info(info)
    except ValueError as exc:
        logger.warning("Ignoring malformed service-account info from %s: %s", source.__name__, exc)
        return None


@lru_cache(maxsize=1)
def get_service_account_credentials() -> Credentials | None:
    """Return service-account credentials from a file, the environment or Streamlit secrets."""

    credentials = _credentials_from_file()
    if credentials is not None:
        return credentials
    for source in (_info_from_env, _info_from_streamlit_secrets):
        credentials = _credentials_from(source)
        if credentials is not None:
            return credentials
    return None


__all__ = ["Credentials", "get_service_account_credentials"]
