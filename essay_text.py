"""Pure text helpers for essay drafts (word counting and validation)."""
from __future__ import annotations

import re
from dataclasses import dataclass

_WHITESPACE_RUN = re.compile(r"\s+")


class EssayValidationError(ValueError):
    """Raised when a draft is missing its title or content."""

    def __init__(self, message: str, *, missing: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.missing = missing


def count_words(text: str | None) -> int:
    """Return the number of whitespace-delimited words in ``text``."""

    stripped = (text or "").strip()
    if not stripped:
        return 0
    return sum(1 for word in _WHITESPACE_RUN.split(stripped) if word)


@dataclass(frozen=True, slots=True)
class EssayDraft:
    """Trimmed title/content pair ready to be persisted."""

    title: str
    content: str

    @classmethod
    def from_inputs(cls, title: str | None, content: str | None) -> "EssayDraft":
        return cls(title=(title or "").strip(), content=(content or "").strip())

    @property
    def word_count(self) -> int:
        return count_words(self.content)

    def validate(self) -> None:
        missing = tuple(
            name for name, value in (("title", self.title), ("content", self.content)) if not value
        )
        if missing:
            raise EssayValidationError("Please enter both title and content", missing=missing)


__all__ = ["EssayDraft", "EssayValidationError", "count_words"]
