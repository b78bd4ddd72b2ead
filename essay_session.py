"""Per-user essay workspace: owns the essay list, the editor draft and their sync with storage.

An :class:`EssaySession` is created once per browser session and torn down with
:meth:`EssaySession.close`. Every mutation goes through the storage library and
is followed by a refetch, so ``essays`` is always a backend snapshot ordered by
creation time (newest first).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from essay_library import EssayRecord, EssayStorageError
from essay_text import EssayDraft, EssayValidationError, count_words
from utils.auth import AuthEvent, AuthStateManager, AuthSubscription, AuthUser

logger = logging.getLogger(__name__)


class EssayStore(Protocol):
    def list_essays(self, owner_id: str) -> list[EssayRecord]: ...

    def create_essay(self, *, owner_id: str, title: str, content: str, word_count: int) -> EssayRecord: ...

    def update_essay(
        self, essay_id: str, *, owner_id: str, title: str, content: str, word_count: int
    ) -> EssayRecord: ...

    def delete_essay(self, essay_id: str, *, owner_id: str) -> None: ...


class SessionPhase(str, enum.Enum):
    SIGNED_OUT = "signed_out"
    IDLE = "idle"
    LOADING = "loading"
    SAVING = "saving"
    DELETING = "deleting"


class EditorMode(str, enum.Enum):
    NEW = "new"
    EDITING = "editing"


class SaveFailure(str, enum.Enum):
    INVALID = "invalid"
    STORAGE = "storage"


_TRANSITIONS: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.SIGNED_OUT: frozenset({SessionPhase.IDLE}),
    SessionPhase.IDLE: frozenset(
        {SessionPhase.LOADING, SessionPhase.SAVING, SessionPhase.DELETING, SessionPhase.SIGNED_OUT}
    ),
    SessionPhase.LOADING: frozenset({SessionPhase.IDLE, SessionPhase.SIGNED_OUT}),
    SessionPhase.SAVING: frozenset({SessionPhase.LOADING, SessionPhase.IDLE, SessionPhase.SIGNED_OUT}),
    SessionPhase.DELETING: frozenset({SessionPhase.LOADING, SessionPhase.IDLE, SessionPhase.SIGNED_OUT}),
}


class InvalidTransitionError(RuntimeError):
    """Raised for a phase change the workspace does not allow."""


class NotAuthenticatedError(RuntimeError):
    """Raised when an essay operation is attempted without a signed-in user."""


@dataclass(frozen=True, slots=True)
class Notice:
    level: str  # "success" | "warning" | "error"
    message: str


@dataclass(frozen=True, slots=True)
class PendingDelete:
    essay_id: str
    title: str

    @property
    def prompt(self) -> str:
        return f'Are you sure you want to delete "{self.title}"? This action cannot be undone.'


class EssaySession:
    """Essay list, editor draft and phase for one signed-in user.

    ``draft_revision`` changes whenever the draft is replaced from outside the
    editor (select, new essay, save, sign-out) so bound widgets can be re-seeded.
    """

    def __init__(self, auth: AuthStateManager, store: EssayStore) -> None:
        self._auth = auth
        self._store = store
        self._subscription: AuthSubscription | None = None
        self._phase = SessionPhase.SIGNED_OUT
        self.user: AuthUser | None = None
        self.essays: list[EssayRecord] = []
        self.selected: EssayRecord | None = None
        self.title = ""
        self.content = ""
        self.word_count = 0
        self.pending_delete: PendingDelete | None = None
        self.draft_revision = 0
        self.save_failure: SaveFailure | None = None
        self._notices: list[Notice] = []

    # State machine ------------------------------------------------------------------
    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def _transition(self, target: SessionPhase) -> None:
        if target == self._phase:
            return
        if target not in _TRANSITIONS[self._phase]:
            raise InvalidTransitionError(f"cannot go from {self._phase.value} to {target.value}")
        self._phase = target

    @property
    def mode(self) -> EditorMode:
        return EditorMode.EDITING if self.selected is not None else EditorMode.NEW

    @property
    def is_loading(self) -> bool:
        return self._phase is SessionPhase.LOADING

    @property
    def is_saving(self) -> bool:
        return self._phase is SessionPhase.SAVING

    @property
    def can_save(self) -> bool:
        return (
            self._phase is SessionPhase.IDLE
            and bool(self.title.strip())
            and bool(self.content.strip())
        )

    def _require_user(self) -> AuthUser:
        if self.user is None or self._phase is SessionPhase.SIGNED_OUT:
            raise NotAuthenticatedError("sign in before working with essays")
        return self.user

    # Notices ------------------------------------------------------------------------
    def _notify(self, level: str, message: str) -> None:
        self._notices.append(Notice(level, message))

    @property
    def notices(self) -> tuple[Notice, ...]:
        return tuple(self._notices)

    def drain_notices(self) -> list[Notice]:
        drained, self._notices = self._notices, []
        return drained

    # Lifecycle ----------------------------------------------------------------------
    def initialize(self) -> None:
        """Load the current user (if any) and follow auth changes until :meth:`close`."""

        if self._subscription is None:
            self._subscription = self._auth.subscribe(self._on_auth_event)
        user = self._auth.current_user()
        if user is not None and (self.user is None or self.user.uid != user.uid):
            self._signed_in(user)

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _on_auth_event(self, event: AuthEvent, user: AuthUser | None) -> None:
        if event is AuthEvent.SIGNED_OUT or user is None:
            self._signed_out()
        elif self.user is None or self.user.uid != user.uid:
            self._signed_in(user)
        else:
            self.user = user

    def _signed_in(self, user: AuthUser) -> None:
        if self.user is not None:
            self._signed_out()
        self.user = user
        self._transition(SessionPhase.IDLE)
        self.fetch_essays()

    def _signed_out(self) -> None:
        self._transition(SessionPhase.SIGNED_OUT)
        self.user = None
        self.essays = []
        self.pending_delete = None
        self._reset_draft()

    # Operations ---------------------------------------------------------------------
    def fetch_essays(self) -> list[EssayRecord]:
        user = self._require_user()
        self._transition(SessionPhase.LOADING)
        try:
            self.essays = self._store.list_essays(user.uid)
        except EssayStorageError as exc:
            # The list is emptied on failure even though the essays still exist remotely.
            logger.exception("Error loading essays for %s", user.uid)
            self.essays = []
            self._notify("error", f"Error loading essays: {exc}")
        finally:
            self._transition(SessionPhase.IDLE)
        return self.essays

    def set_title(self, title: str) -> None:
        self.title = title or ""

    def set_content(self, content: str) -> None:
        self.content = content or ""
        self.word_count = count_words(self.content)

    def _load_draft(self, essay: EssayRecord) -> None:
        self.draft_revision += 1
        self.selected = essay
        self.title = essay.title
        self.content = essay.content
        self.word_count = essay.word_count

    def _reset_draft(self) -> None:
        self.draft_revision += 1
        self.selected = None
        self.title = ""
        self.content = ""
        self.word_count = 0

    def select_essay(self, essay: EssayRecord) -> None:
        self._load_draft(essay)

    def start_new_essay(self) -> None:
        self._reset_draft()

    def save(self) -> EssayRecord | None:
        """Create or update the draft; returns the stored record or ``None`` on failure."""

        user = self._require_user()
        if self._phase is SessionPhase.SAVING:
            return None
        self.save_failure = None

        draft = EssayDraft.from_inputs(self.title, self.content)
        try:
            draft.validate()
        except EssayValidationError as exc:
            self.save_failure = SaveFailure.INVALID
            self._notify("warning", str(exc))
            return None

        selected = self.selected
        self._transition(SessionPhase.SAVING)
        try:
            if selected is None:
                saved = self._store.create_essay(
                    owner_id=user.uid,
                    title=draft.title,
                    content=draft.content,
                    word_count=draft.word_count,
                )
            else:
                saved = self._store.update_essay(
                    selected.id,
                    owner_id=user.uid,
                    title=draft.title,
                    content=draft.content,
                    word_count=draft.word_count,
                )
        except EssayStorageError:
            logger.exception("Error saving essay")
            self.save_failure = SaveFailure.STORAGE
            self._notify("error", "Error saving essay. Please try again.")
            return None
        finally:
            self._transition(SessionPhase.IDLE)

        self.fetch_essays()
        self._load_draft(saved)
        self._notify("success", "Essay saved successfully!")
        return saved

    def delete_essay(self, essay_id: str, title: str, *, confirm: Callable[[str], bool]) -> bool:
        """Delete an essay after ``confirm`` accepts a prompt naming it."""

        user = self._require_user()
        request = PendingDelete(essay_id=str(essay_id), title=title)
        if not confirm(request.prompt):
            return False

        self._transition(SessionPhase.DELETING)
        try:
            self._store.delete_essay(request.essay_id, owner_id=user.uid)
        except EssayStorageError:
            logger.exception("Error deleting essay %s", request.essay_id)
            self._notify("error", "Error deleting essay. Please try again.")
            return False
        finally:
            self._transition(SessionPhase.IDLE)

        if self.selected is not None and self.selected.id == request.essay_id:
            self._reset_draft()
        self.fetch_essays()
        self._notify("success", "Essay deleted successfully!")
        return True

    def request_delete(self, essay: EssayRecord) -> PendingDelete:
        self._require_user()
        self.pending_delete = PendingDelete(essay_id=essay.id, title=essay.title)
        return self.pending_delete

    def cancel_delete(self) -> None:
        self.pending_delete = None

    def sign_out(self) -> None:
        """End the auth session; the sign-out event clears every essay field."""

        self._auth.sign_out()


__all__ = [
    "EditorMode",
    "EssaySession",
    "EssayStore",
    "InvalidTransitionError",
    "Notice",
    "NotAuthenticatedError",
    "PendingDelete",
    "SaveFailure",
    "SessionPhase",
]
