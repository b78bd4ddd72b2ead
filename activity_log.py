"""Activity logging of user-visible actions, backed by Firestore."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Mapping, MutableMapping

from google_credentials import get_service_account_credentials

try:  # pragma: no cover - optional dependency checked at runtime
    from google.cloud import firestore  # type: ignore
except Exception:  # pragma: no cover - gracefully handle missing package
    firestore = None  # type: ignore

_LOGGER = logging.getLogger(__name__)

ACTIVITY_LOG_ENABLED = (os.getenv("ACTIVITY_LOG_ENABLED", "true").strip().lower() not in {"0", "false", "no"})
_ACTIVITY_COLLECTION_RAW = os.getenv("FIRESTORE_ACTIVITY_COLLECTION", "activity_logs").strip()
ACTIVITY_LOG_COLLECTION = _ACTIVITY_COLLECTION_RAW or "activity_logs"

GCP_PROJECT_ID = (os.getenv("GCP_PROJECT_ID") or os.getenv("FIRESTORE_PROJECT_ID") or "").strip() or None

EVENT_TYPES = frozenset({"user", "essay"})
RESULTS = frozenset({"success", "fail"})

_ACTIVITY_LOG_ACTIVE = False
_ACTIVITY_DISABLE_REASON: str | None = None


@dataclass(slots=True)
class ActivityLogEntry:
    """One recorded activity event."""

    id: str
    type: str
    action: str
    result: str
    user_id: str | None
    timestamp: datetime
    details: Mapping[str, str] = field(default_factory=dict)


def _resolve_project_id() -> str | None:
    if GCP_PROJECT_ID:
        return GCP_PROJECT_ID
    credentials = get_service_account_credentials()
    return getattr(credentials, "project_id", None) if credentials else None


@lru_cache(maxsize=1)
def _get_firestore_client():
    if firestore is None:
        raise RuntimeError("google-cloud-firestore must be installed for activity logging")
    project_id = _resolve_project_id()
    if not project_id:
        raise RuntimeError("Set GCP_PROJECT_ID (or provide service-account credentials) to enable activity logging.")

    client_kwargs: MutableMapping[str, Any] = {"project": project_id}
    credentials = get_service_account_credentials()
    if credentials is not None:
        client_kwargs["credentials"] = credentials
    return firestore.Client(**client_kwargs)  # type: ignore[arg-type]


def _get_activity_collection():
    return _get_firestore_client().collection(ACTIVITY_LOG_COLLECTION)


def _disable_logging(reason: str) -> None:
    global _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON
    if _ACTIVITY_LOG_ACTIVE:
        _LOGGER.warning("Disabling activity logging: %s", reason)
    _ACTIVITY_LOG_ACTIVE = False
    _ACTIVITY_DISABLE_REASON = reason


def init_activity_log() -> None:
    """Enable activity logging when Firestore is reachable."""

    global _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON
    if not ACTIVITY_LOG_ENABLED:
        _disable_logging("ACTIVITY_LOG_ENABLED is false")
        return

    try:
        list(_get_activity_collection().limit(1).stream())
    except Exception as exc:  # pragma: no cover - initialization failure surfaced via status
        _disable_logging(str(exc))
        return

    _ACTIVITY_LOG_ACTIVE = True
    _ACTIVITY_DISABLE_REASON = None
    _LOGGER.debug("Activity logging enabled using Firestore collection '%s'", ACTIVITY_LOG_COLLECTION)


def get_activity_logging_status() -> tuple[bool, str | None]:
    return _ACTIVITY_LOG_ACTIVE, _ACTIVITY_DISABLE_REASON


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def log_event(
    *,
    type: str,
    action: str,
    result: str,
    user_id: str | None,
    details: Mapping[str, Any] | None = None,
) -> ActivityLogEntry | None:
    """Record an activity event.

    Returns the stored entry, or ``None`` when logging is disabled or the write
    fails (a failed write disables logging for the rest of the process).
    """

    if not _ACTIVITY_LOG_ACTIVE:
        return None

    event_type = _clean(type).lower()
    if event_type not in EVENT_TYPES:
        raise ValueError(f"unknown activity type: {type!r}")
    normalized_result = _clean(result).lower()
    if normalized_result not in RESULTS:
        raise ValueError(f"result must be one of {sorted(RESULTS)}, got {result!r}")

    cleaned_details = {str(key): _clean(value) for key, value in (details or {}).items() if _clean(value)}
    now = datetime.now(timezone.utc)
    payload: MutableMapping[str, Any] = {
        "type": event_type,
        "action": _clean(action) or "unknown",
        "result": normalized_result,
        "user_id": _clean(user_id) or None,
        "timestamp": now,
        "timestamp_iso": now.isoformat(),
        "details": cleaned_details,
    }

    try:
        doc_ref = _get_activity_collection().document()
        doc_ref.set(payload)
    except Exception as exc:  # pragma: no cover - never break the UI for telemetry
        _disable_logging(str(exc))
        _LOGGER.warning("Failed to log activity event (%s: %s): %s", type, action, exc)
        return None

    return ActivityLogEntry(
        id=str(getattr(doc_ref, "id", "")),
        type=payload["type"],
        action=payload["action"],
        result=payload["result"],
        user_id=payload["user_id"],
        timestamp=now,
        details=cleaned_details,
    )


def reset_activity_log_cache() -> None:
    """Testing helper to reset the cached Firestore client."""

    _get_firestore_client.cache_clear()


__all__ = [
    "ACTIVITY_LOG_COLLECTION",
    "ACTIVITY_LOG_ENABLED",
    "ActivityLogEntry",
    "get_activity_logging_status",
    "init_activity_log",
    "log_event",
    "reset_activity_log_cache",
]
