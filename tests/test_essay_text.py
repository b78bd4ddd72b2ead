from __future__ import annotations

import pytest

from essay_text import EssayDraft, EssayValidationError, count_words


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("", 0),
        ("   ", 0),
        ("  a   b  ", 2),
        ("one", 1),
        ("line one\nline two\tand\r\nthree", 6),
        ("The rapid growth of cities has created challenges.", 8),
        ("hyphen-ated words count once", 4),
    ],
)
def test_count_words(text, expected):
    assert count_words(text) == expected


def test_count_words_accepts_none():
    assert count_words(None) == 0


def test_draft_trims_inputs_and_counts_trimmed_content():
    draft = EssayDraft.from_inputs("  Band 9 ", "\n  Cities grow fast.  \n")
    assert draft.title == "Band 9"
    assert draft.content == "Cities grow fast."
    assert draft.word_count == 3
    draft.validate()


@pytest.mark.parametrize(
    ("title", "content", "missing"),
    [
        ("", "Some content", ("title",)),
        ("Title", "   ", ("content",)),
        (" ", "\t", ("title", "content")),
    ],
)
def test_draft_validation_names_missing_fields(title, content, missing):
    draft = EssayDraft.from_inputs(title, content)
    with pytest.raises(EssayValidationError) as excinfo:
        draft.validate()
    assert excinfo.value.missing == missing
    assert isinstance(excinfo.value, ValueError)
