"""Text helpers shared by the lookup and transcription services."""

from __future__ import annotations

import re

_PARA_SPLIT = re.compile(r"\n\s*\n")
_SPACE_COLLAPSE = re.compile(r"\s+")

# ASCII punctuation plus the typographic and CJK quote/bracket variants that
# show up when learners select text from an article.
_STRIP_CHARS = '.,!?;:"“”‘’()［］[]{}…。、！？（）「」『』【】《》〈〉・'
_STRIP_TABLE = str.maketrans("", "", _STRIP_CHARS)


def normalize_term(raw: str | None) -> str:
    """Canonicalise a selection or typed string for vocabulary matching.

    Lower-cases, drops the fixed punctuation set and trims the result.
    ``normalize_term(normalize_term(x)) == normalize_term(x)`` for any ``x``.
    """

    if not raw:
        return ""
    return raw.lower().translate(_STRIP_TABLE).strip()


def has_internal_whitespace(text: str) -> bool:
    return any(ch.isspace() for ch in text.strip())


def format_structured_text(text: str) -> str:
    """Normalise whitespace and paragraph spacing for readability."""

    stripped = text.strip()
    if not stripped:
        return ""
    paragraphs: list[str] = []
    for block in _PARA_SPLIT.split(stripped):
        block = block.strip()
        if not block:
            continue
        lines = [line.strip() for line in block.splitlines() if line.strip()]
        normalized = " ".join(_SPACE_COLLAPSE.sub(" ", line) for line in lines)
        if normalized:
            paragraphs.append(normalized)
    return "\n\n".join(paragraphs)


__all__ = ["format_structured_text", "has_internal_whitespace", "normalize_term"]
