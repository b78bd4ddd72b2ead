from __future__ import annotations

import importlib
import itertools
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest


def _load_essay_library(monkeypatch, **env):
    for key, value in env.items():
        if value is None:
            monkeypatch.delenv(key, raising=False)
        else:
            monkeypatch.setenv(key, value)
    sys.modules.pop("essay_library", None)
    return importlib.import_module("essay_library")


def test_local_library_scopes_essays_by_owner(monkeypatch, tmp_path):
    db_path = tmp_path / "essays.db"
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    lib.init_essay_library(db_path=db_path)

    first = lib.create_essay(owner_id="alice", title="First", content="a b", word_count=2, db_path=db_path)
    lib.create_essay(owner_id="bob", title="Other", content="x", word_count=1, db_path=db_path)
    second = lib.create_essay(owner_id="alice", title="Second", content="c d e", word_count=3, db_path=db_path)

    records = lib.list_essays(owner_id="alice", db_path=db_path)
    assert [record.title for record in records] == ["Second", "First"]
    assert {record.owner_id for record in records} == {"alice"}
    assert records[0].id == second.id
    assert records[1].word_count == 2
    assert first.created_at_utc.tzinfo is not None


def test_local_library_orders_by_created_at(monkeypatch, tmp_path):
    db_path = tmp_path / "essays.db"
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    lib.init_essay_library(db_path=db_path)

    for idx in range(3):
        lib.create_essay(owner_id="alice", title=f"essay-{idx}", content="x", word_count=1, db_path=db_path)

    base = datetime(2024, 1, 2, 9, 0, tzinfo=timezone.utc)
    overrides = {"essay-0": base + timedelta(minutes=5), "essay-1": base, "essay-2": base + timedelta(minutes=1)}
    with lib._connect(db_path) as conn:  # type: ignore[attr-defined]
        for title, ts in overrides.items():
            conn.execute("UPDATE essays SET created_at_utc = ? WHERE title = ?", (ts.isoformat(), title))
        conn.commit()

    records = lib.list_essays(owner_id="alice", db_path=db_path)
    assert [record.title for record in records] == ["essay-0", "essay-2", "essay-1"]


def test_local_update_keeps_owner_and_creation_time(monkeypatch, tmp_path):
    db_path = tmp_path / "essays.db"
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    lib.init_essay_library(db_path=db_path)

    created = lib.create_essay(owner_id="alice", title="Draft", content="one two", word_count=2, db_path=db_path)
    updated = lib.update_essay(
        created.id,
        owner_id="alice",
        title="Final",
        content="one two three",
        word_count=3,
        db_path=db_path,
    )

    assert updated.id == created.id
    assert updated.owner_id == "alice"
    assert updated.title == "Final"
    assert updated.word_count == 3
    assert updated.created_at_utc == created.created_at_utc
    assert updated.updated_at_utc >= created.updated_at_utc


def test_local_mutations_reject_foreign_owner(monkeypatch, tmp_path):
    db_path = tmp_path / "essays.db"
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    lib.init_essay_library(db_path=db_path)

    created = lib.create_essay(owner_id="alice", title="Mine", content="x", word_count=1, db_path=db_path)

    with pytest.raises(lib.EssayNotFoundError):
        lib.update_essay(created.id, owner_id="mallory", title="Hacked", content="y", word_count=1, db_path=db_path)
    with pytest.raises(lib.EssayNotFoundError):
        lib.delete_essay(created.id, owner_id="mallory", db_path=db_path)

    assert [record.title for record in lib.list_essays(owner_id="alice", db_path=db_path)] == ["Mine"]

    lib.delete_essay(created.id, owner_id="alice", db_path=db_path)
    assert lib.list_essays(owner_id="alice", db_path=db_path) == []
    with pytest.raises(lib.EssayStorageError):
        lib.delete_essay(created.id, owner_id="alice", db_path=db_path)


def test_owner_is_required(monkeypatch, tmp_path):
    db_path = tmp_path / "essays.db"
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    lib.init_essay_library(db_path=db_path)

    with pytest.raises(ValueError):
        lib.create_essay(owner_id="  ", title="t", content="c", word_count=1, db_path=db_path)


def test_local_library_class_binds_db_path(monkeypatch, tmp_path):
    lib = _load_essay_library(monkeypatch, ESSAY_STORAGE_MODE="local")
    library = lib.EssayLibrary(tmp_path / "bound.db")
    library.init()

    created = library.create_essay(owner_id="alice", title="Bound", content="a b c", word_count=3)
    library.update_essay(created.id, owner_id="alice", title="Bound 2", content="a b", word_count=2)
    assert [record.title for record in library.list_essays("alice")] == ["Bound 2"]
    library.delete_essay(created.id, owner_id="alice")
    assert library.list_essays("alice") == []


class FakeSnapshot:
    def __init__(self, doc_id: str, data: dict | None):
        self.id = doc_id
        self._data = data
        self.exists = data is not None

    def to_dict(self) -> dict | None:
        return dict(self._data) if self._data is not None else None


class FakeBackend:
    def __init__(self):
        self.documents: dict[str, dict] = {}
        self.ids = itertools.count(1)
        self.fail_with: Exception | None = None


class FakeDocumentRef:
    def __init__(self, backend: FakeBackend, doc_id: str):
        self.backend = backend
        self.id = doc_id

    def set(self, data: dict) -> None:
        self.backend.documents[self.id] = dict(data)

    def get(self) -> FakeSnapshot:
        return FakeSnapshot(self.id, self.backend.documents.get(self.id))

    def update(self, changes: dict) -> None:
        self.backend.documents[self.id].update(changes)

    def delete(self) -> None:
        self.backend.documents.pop(self.id, None)


class FakeQuery:
    def __init__(self, backend: FakeBackend, field: str, value):
        self.backend = backend
        self.field = field
        self.value = value

    def stream(self):
        if self.backend.fail_with is not None:
            raise self.backend.fail_with
        return [
            FakeSnapshot(doc_id, data)
            for doc_id, data in self.backend.documents.items()
            if data.get(self.field) == self.value
        ]


class FakeCollection:
    def __init__(self, backend: FakeBackend):
        self.backend = backend

    def document(self, doc_id: str | None = None) -> FakeDocumentRef:
        if doc_id is None:
            doc_id = f"essay{next(self.backend.ids)}"
        return FakeDocumentRef(self.backend, doc_id)

    def where(self, field: str, op: str, value) -> FakeQuery:
        assert op == "=="
        return FakeQuery(self.backend, field, value)


def _remote_library(monkeypatch):
    backend = FakeBackend()
    collections: list[str] = []

    class FakeClient:
        def __init__(self, **kwargs):
            self.kwargs = kwargs

        def collection(self, name: str) -> FakeCollection:
            collections.append(name)
            return FakeCollection(backend)

    lib = _load_essay_library(
        monkeypatch,
        ESSAY_STORAGE_MODE="remote",
        GCP_PROJECT_ID="test-project",
        FIRESTORE_ESSAY_COLLECTION="essays_test",
    )
    monkeypatch.setattr(lib, "firestore", SimpleNamespace(Client=FakeClient), raising=False)
    monkeypatch.setattr(lib, "get_service_account_credentials", lambda: None)
    lib.reset_essay_library_cache()
    return lib, backend, collections


def test_remote_library_crud(monkeypatch):
    lib, backend, collections = _remote_library(monkeypatch)
    lib.init_essay_library()

    older = lib.create_essay(owner_id="alice", title="Older", content="a", word_count=1)
    newer = lib.create_essay(owner_id="alice", title="Newer", content="a b", word_count=2)
    lib.create_essay(owner_id="bob", title="Bob's", content="b", word_count=1)

    backend.documents[older.id]["created_at_utc"] = datetime(2024, 1, 1, tzinfo=timezone.utc)
    backend.documents[newer.id]["created_at_utc"] = datetime(2024, 1, 2, tzinfo=timezone.utc)

    records = lib.list_essays(owner_id="alice")
    assert [record.title for record in records] == ["Newer", "Older"]
    assert set(collections) == {"essays_test"}

    updated = lib.update_essay(older.id, owner_id="alice", title="Older v2", content="a b c", word_count=3)
    assert updated.owner_id == "alice"
    assert updated.created_at_utc == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert backend.documents[older.id]["word_count"] == 3
    assert backend.documents[older.id]["user_id"] == "alice"

    with pytest.raises(lib.EssayNotFoundError):
        lib.delete_essay(older.id, owner_id="bob")
    with pytest.raises(lib.EssayNotFoundError):
        lib.update_essay("missing", owner_id="alice", title="t", content="c", word_count=1)

    lib.delete_essay(older.id, owner_id="alice")
    assert [record.title for record in lib.list_essays(owner_id="alice")] == ["Newer"]


def test_remote_failures_surface_as_storage_errors(monkeypatch):
    lib, backend, _ = _remote_library(monkeypatch)
    backend.fail_with = ConnectionError("backend unavailable")

    with pytest.raises(lib.EssayStorageError) as excinfo:
        lib.list_essays(owner_id="alice")
    assert "backend unavailable" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ConnectionError)
