"""Essay record storage helpers with Firestore and SQLite backends."""
from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping

from google_credentials import get_service_account_credentials

try:  # pragma: no cover - optional dependency checked at runtime
    from google.cloud import firestore  # type: ignore
except Exception:  # pragma: no cover - gracefully handle missing package
    firestore = None  # type: ignore


logger = logging.getLogger(__name__)

ESSAY_DB_PATH = Path((os.getenv("ESSAY_DB_PATH") or "essays.db").strip() or "essays.db")
_TABLE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS essays (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    word_count INTEGER NOT NULL DEFAULT 0,
    created_at_utc TEXT NOT NULL,
    updated_at_utc TEXT NOT NULL
);
"""

_CREATE_INDEX_OWNER = "CREATE INDEX IF NOT EXISTS idx_essays_owner ON essays (user_id, created_at_utc DESC);"


ESSAY_STORAGE_MODE = (os.getenv("ESSAY_STORAGE_MODE") or "remote").strip().lower()
USE_REMOTE_ESSAY_LIBRARY = ESSAY_STORAGE_MODE in {"remote", "firestore"}

_PROJECT_ID_RAW = (
    os.getenv("GCP_PROJECT_ID")
    or os.getenv("FIRESTORE_PROJECT_ID")
    or ""
)
GCP_PROJECT_ID = _PROJECT_ID_RAW.strip()

_ESSAY_COLLECTION_RAW = (os.getenv("FIRESTORE_ESSAY_COLLECTION") or "ielts_essays").strip()
FIRESTORE_ESSAY_COLLECTION = _ESSAY_COLLECTION_RAW or "ielts_essays"


class EssayStorageError(RuntimeError):
    """Raised when the essay backend rejects or fails a request."""


class EssayNotFoundError(EssayStorageError):
    """Raised when an essay does not exist or belongs to another user."""


@dataclass(slots=True)
class EssayRecord:
    """A stored essay as returned by the backend."""

    id: str
    owner_id: str
    title: str
    content: str
    word_count: int
    created_at_utc: datetime
    updated_at_utc: datetime


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(db_path, detect_types=sqlite3.PARSE_DECLTYPES)
    conn.row_factory = sqlite3.Row
    return conn


def _ensure_remote_ready() -> None:
    if firestore is None:
        raise RuntimeError("google-cloud-firestore must be installed for remote essay storage")

    if GCP_PROJECT_ID:
        return

    credentials = get_service_account_credentials()
    project_id = getattr(credentials, "project_id", "") if credentials else ""
    if not project_id:
        raise RuntimeError(
            "GCP_PROJECT_ID must be set or provided via service-account credentials for essay storage."
        )


@lru_cache(maxsize=1)
def _get_firestore_client():
    _ensure_remote_ready()
    client_kwargs: dict[str, object] = {}
    credentials = get_service_account_credentials()
    if credentials is not None:
        client_kwargs["credentials"] = credentials
    if GCP_PROJECT_ID:
        client_kwargs["project"] = GCP_PROJECT_ID
    elif credentials is not None:
        project_id = getattr(credentials, "project_id", "")
        if project_id:
            client_kwargs["project"] = project_id
    return firestore.Client(**client_kwargs)  # type: ignore[arg-type]


def _get_essay_collection():
    client = _get_firestore_client()
    return client.collection(FIRESTORE_ESSAY_COLLECTION)


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except EssayStorageError:
        raise
    except Exception as exc:
        raise EssayStorageError(f"Failed to {action}: {exc}") from exc


def init_essay_library(db_path: Path = ESSAY_DB_PATH) -> None:
    """Prepare the backing store for essays."""

    if USE_REMOTE_ESSAY_LIBRARY:
        _ensure_remote_ready()
        _get_essay_collection()  # Touch once to validate credentials/collection.
        return

    with _connect(db_path) as conn:
        conn.execute(_TABLE_SCHEMA_SQL)
        conn.execute(_CREATE_INDEX_OWNER)
        conn.commit()


def _coerce_datetime(value) -> datetime:
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(str(value))
        except Exception:  # pragma: no cover - unparseable legacy timestamps
            dt = datetime.fromtimestamp(0, tz=timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _require_owner(owner_id: str | None) -> str:
    normalized = str(owner_id or "").strip()
    if not normalized:
        raise ValueError("owner_id is required for essay storage")
    return normalized


def _make_essay_record(doc_id: str, data: Mapping[str, Any]) -> EssayRecord:
    created_at = _coerce_datetime(data.get("created_at_utc"))
    return EssayRecord(
        id=str(doc_id),
        owner_id=str(data.get("user_id", "")),
        title=str(data.get("title", "")),
        content=str(data.get("content", "")),
        word_count=int(data.get("word_count") or 0),
        created_at_utc=created_at,
        updated_at_utc=_coerce_datetime(data.get("updated_at_utc") or created_at),
    )


def _row_to_record(row: sqlite3.Row) -> EssayRecord:
    return _make_essay_record(str(row["id"]), dict(row))


def list_essays(*, owner_id: str, db_path: Path = ESSAY_DB_PATH) -> list[EssayRecord]:
    """Return the essays owned by ``owner_id``, newest first."""

    owner = _require_owner(owner_id)

    if USE_REMOTE_ESSAY_LIBRARY:
        with _storage_errors("list essays"):
            collection = _get_essay_collection()
            documents: Iterable = collection.where("user_id", "==", owner).stream()
            records = [
                _make_essay_record(getattr(doc, "id", ""), doc.to_dict() or {})
                for doc in documents
            ]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    with _storage_errors("list essays"), _connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT * FROM essays
            WHERE user_id = ?
            ORDER BY datetime(created_at_utc) DESC, id DESC
            """,
            (owner,),
        ).fetchall()
    return [_row_to_record(row) for row in rows]


def create_essay(
    *,
    owner_id: str,
    title: str,
    content: str,
    word_count: int,
    db_path: Path = ESSAY_DB_PATH,
) -> EssayRecord:
    """Insert a new essay owned by ``owner_id`` and return the stored record."""

    owner = _require_owner(owner_id)
    timestamp = datetime.now(timezone.utc)

    if USE_REMOTE_ESSAY_LIBRARY:
        payload = {
            "user_id": owner,
            "title": title,
            "content": content,
            "word_count": int(word_count),
            "created_at_utc": timestamp,
            "updated_at_utc": timestamp,
        }
        with _storage_errors("create essay"):
            doc_ref = _get_essay_collection().document()
            doc_ref.set(payload)
        return _make_essay_record(str(getattr(doc_ref, "id", "")), payload)

    timestamp_iso = timestamp.isoformat(timespec="microseconds")
    with _storage_errors("create essay"), _connect(db_path) as conn:
        cursor = conn.execute(
            """
            INSERT INTO essays (user_id, title, content, word_count, created_at_utc, updated_at_utc)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (owner, title, content, int(word_count), timestamp_iso, timestamp_iso),
        )
        conn.commit()
        row_id = cursor.lastrowid

    return EssayRecord(
        id=str(row_id),
        owner_id=owner,
        title=title,
        content=content,
        word_count=int(word_count),
        created_at_utc=timestamp,
        updated_at_utc=timestamp,
    )


def _owned_document(essay_id: str, owner: str):
    doc_ref = _get_essay_collection().document(str(essay_id))
    snapshot = doc_ref.get()
    data = snapshot.to_dict() if getattr(snapshot, "exists", False) else None
    if not data or str(data.get("user_id", "")) != owner:
        raise EssayNotFoundError(f"Essay {essay_id} was not found")
    return doc_ref, data


def update_essay(
    essay_id: str,
    *,
    owner_id: str,
    title: str,
    content: str,
    word_count: int,
    db_path: Path = ESSAY_DB_PATH,
) -> EssayRecord:
    """Rewrite title/content/word count of an owned essay in place."""

    owner = _require_owner(owner_id)
    timestamp = datetime.now(timezone.utc)
    changes = {
        "title": title,
        "content": content,
        "word_count": int(word_count),
        "updated_at_utc": timestamp,
    }

    if USE_REMOTE_ESSAY_LIBRARY:
        with _storage_errors("update essay"):
            doc_ref, data = _owned_document(essay_id, owner)
            doc_ref.update(changes)
        return _make_essay_record(str(essay_id), {**data, **changes})

    with _storage_errors("update essay"), _connect(db_path) as conn:
        cursor = conn.execute(
            """
            UPDATE essays
            SET title = ?, content = ?, word_count = ?, updated_at_utc = ?
            WHERE id = ? AND user_id = ?
            """,
            (title, content, int(word_count), timestamp.isoformat(timespec="microseconds"), essay_id, owner),
        )
        if cursor.rowcount == 0:
            raise EssayNotFoundError(f"Essay {essay_id} was not found")
        conn.commit()
        row = conn.execute("SELECT * FROM essays WHERE id = ?", (essay_id,)).fetchone()
    return _row_to_record(row)


def delete_essay(essay_id: str, *, owner_id: str, db_path: Path = ESSAY_DB_PATH) -> None:
    """Delete an owned essay."""

    owner = _require_owner(owner_id)

    if USE_REMOTE_ESSAY_LIBRARY:
        with _storage_errors("delete essay"):
            doc_ref, _ = _owned_document(essay_id, owner)
            doc_ref.delete()
        return

    with _storage_errors("delete essay"), _connect(db_path) as conn:
        cursor = conn.execute(
            "DELETE FROM essays WHERE id = ? AND user_id = ?",
            (essay_id, owner),
        )
        if cursor.rowcount == 0:
            raise EssayNotFoundError(f"Essay {essay_id} was not found")
        conn.commit()


class EssayLibrary:
    """Essay storage bound to one SQLite path (ignored in remote mode)."""

    def __init__(self, db_path: Path = ESSAY_DB_PATH) -> None:
        self.db_path = Path(db_path)

    def init(self) -> None:
        init_essay_library(db_path=self.db_path)

    def list_essays(self, owner_id: str) -> list[EssayRecord]:
        return list_essays(owner_id=owner_id, db_path=self.db_path)

    def create_essay(self, *, owner_id: str, title: str, content: str, word_count: int) -> EssayRecord:
        return create_essay(
            owner_id=owner_id,
            title=title,
            content=content,
            word_count=word_count,
            db_path=self.db_path,
        )

    def update_essay(
        self, essay_id: str, *, owner_id: str, title: str, content: str, word_count: int
    ) -> EssayRecord:
        return update_essay(
            essay_id,
            owner_id=owner_id,
            title=title,
            content=content,
            word_count=word_count,
            db_path=self.db_path,
        )

    def delete_essay(self, essay_id: str, *, owner_id: str) -> None:
        delete_essay(essay_id, owner_id=owner_id, db_path=self.db_path)


def reset_essay_library_cache() -> None:
    """Testing helper to reset cached Firestore clients."""

    _get_firestore_client.cache_clear()


__all__ = [
    "EssayLibrary",
    "EssayNotFoundError",
    "EssayRecord",
    "EssayStorageError",
    "create_essay",
    "delete_essay",
    "init_essay_library",
    "list_essays",
    "reset_essay_library_cache",
    "update_essay",
]
