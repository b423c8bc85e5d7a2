"""The learner's persisted, deduplicated glossary of saved lookups."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from .config import glossary_path
from .models import GlossaryEntry

LOGGER = logging.getLogger(__name__)


class GlossaryStore:
    """Ordered glossary persisted as one JSON array, newest entry first.

    Entries are unique by exact, case-sensitive ``term``: the first save of a
    term wins and later saves are no-ops. Every accepted save rewrites the
    whole file, and saves are applied one at a time.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or glossary_path()
        self._lock = threading.Lock()
        self._entries: list[GlossaryEntry] = []
        self._loaded = False

    def load(self) -> list[GlossaryEntry]:
        with self._lock:
            self._entries = self._read()
            self._loaded = True
            return list(self._entries)

    def all(self) -> list[GlossaryEntry]:
        with self._lock:
            self._ensure_loaded()
            return list(self._entries)

    def __contains__(self, term: object) -> bool:
        with self._lock:
            self._ensure_loaded()
            return any(entry.term == term for entry in self._entries)

    def __len__(self) -> int:
        with self._lock:
            self._ensure_loaded()
            return len(self._entries)

    def save(self, entry: GlossaryEntry) -> bool:
        """Add *entry* unless its term is already saved; returns whether it was added."""

        with self._lock:
            self._ensure_loaded()
            if any(existing.term == entry.term for existing in self._entries):
                LOGGER.debug("Glossary already contains %r", entry.term)
                return False
            updated = [entry, *self._entries]
            self._write(updated)
            self._entries = updated
            LOGGER.info("Saved %r to glossary (%d entries)", entry.term, len(updated))
            return True

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._entries = self._read()
            self._loaded = True

    def _read(self) -> list[GlossaryEntry]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            LOGGER.warning("Failed reading glossary at %s: %s", self.path, exc)
            return []

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            LOGGER.warning("Invalid JSON in %s: %s", self.path, exc)
            return []
        if not isinstance(payload, list):
            LOGGER.warning("Glossary at %s is not a JSON array; ignoring it", self.path)
            return []

        entries: list[GlossaryEntry] = []
        seen: set[str] = set()
        for item in payload:
            if not isinstance(item, dict):
                LOGGER.warning("Glossary at %s holds a non-object item; ignoring the file", self.path)
                return []
            try:
                entry = GlossaryEntry.from_mapping(item)
            except ValueError as exc:
                LOGGER.warning("Glossary at %s is corrupt: %s", self.path, exc)
                return []
            if entry.term in seen:
                continue
            seen.add(entry.term)
            entries.append(entry)
        return entries

    def _write(self, entries: list[GlossaryEntry]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps([entry.to_mapping() for entry in entries], ensure_ascii=False, indent=2)
        fd, tmp_name = tempfile.mkstemp(prefix=".glossary-", suffix=".json", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        LOGGER.debug("Wrote %d glossary entries to %s", len(entries), self.path)


__all__ = ["GlossaryStore"]
