"""Matching of learner queries against an article's vocabulary table."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from ..models import VocabularyEntry
from .text_utils import has_internal_whitespace, normalize_term

LOGGER = logging.getLogger(__name__)


class LocalLexiconMatcher:
    """Find the vocabulary entry that best answers a normalized query.

    Rules are tried in order, and within each rule the table is scanned in
    insertion order so the first matching entry wins:

    1. exact match on the normalized headword or word;
    2. single-token query: substring of the normalized headword or word;
    3. multi-token query: one of the tokens equals a normalized headword.
    """

    def __init__(self, entries: Iterable[VocabularyEntry] = ()) -> None:
        self._entries: tuple[VocabularyEntry, ...] = tuple(entries)
        self._keys = [
            (entry, normalize_term(entry.headword), normalize_term(entry.word), normalize_term(entry.canonical))
            for entry in self._entries
        ]

    @classmethod
    def from_rows(cls, rows: Sequence[Mapping[str, Any]]) -> "LocalLexiconMatcher":
        return cls(VocabularyEntry.from_mapping(row) for row in rows if isinstance(row, Mapping))

    @property
    def entries(self) -> tuple[VocabularyEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def match(self, normalized: str) -> VocabularyEntry | None:
        if not normalized:
            return None

        for entry, headword, word, _ in self._keys:
            if normalized in (headword, word):
                LOGGER.debug("Exact vocabulary match for %r", normalized)
                return entry

        if not has_internal_whitespace(normalized):
            for entry, headword, word, _ in self._keys:
                if normalized in headword or normalized in word:
                    LOGGER.debug("Substring vocabulary match for %r", normalized)
                    return entry
            return None

        tokens = set(normalized.split())
        for entry, _, _, canonical in self._keys:
            if canonical and canonical in tokens:
                LOGGER.debug("Token vocabulary match for %r via %r", normalized, canonical)
                return entry
        return None


__all__ = ["LocalLexiconMatcher"]
