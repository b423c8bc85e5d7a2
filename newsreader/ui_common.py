"""Shared UI constants for all front-ends."""

from __future__ import annotations

from typing import Sequence

UI_LANGUAGES: Sequence[dict[str, str]] = [
    {"code": "en", "name": "English"},
    {"code": "ja", "name": "日本語"},
]

LEVELS: Sequence[dict[str, str]] = [
    {"code": "JHS", "name": "Junior High"},
    {"code": "HS", "name": "High School"},
]

UI_LANGUAGE_CODES = frozenset(item["code"] for item in UI_LANGUAGES)
LEVEL_CODES = frozenset(item["code"] for item in LEVELS)

SOURCE_LABELS = {"local": "Article vocab", "remote": "Dictionary service"}

__all__ = [
    "LEVELS",
    "LEVEL_CODES",
    "SOURCE_LABELS",
    "UI_LANGUAGES",
    "UI_LANGUAGE_CODES",
]
