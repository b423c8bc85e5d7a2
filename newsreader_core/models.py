"""Value types exchanged between the lookup pipeline, the glossary and the UI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal, Mapping, Union

Source = Literal["local", "remote"]


@dataclass(frozen=True, slots=True)
class TermQuery:
    """A raw selection or typed string plus the UI language it was issued in."""

    raw: str
    ui_lang: str = "en"

    @property
    def term(self) -> str:
        return (self.raw or "").strip()

    @property
    def normalized(self) -> str:
        from .services.text_utils import normalize_term

        return normalize_term(self.raw)


@dataclass(frozen=True, slots=True)
class VocabularyEntry:
    """One row of an article's vocabulary table."""

    word: str
    headword: str = ""
    pos: str = ""
    ipa: str = ""
    en: str = ""
    def_en: str = ""
    ja: str = ""
    example_en: str = ""
    example_ja: str = ""

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "VocabularyEntry":
        """Build an entry from article JSON, accepting the usual field aliases."""
        word = _text(payload.get("word")) or _text(payload.get("headword")) or _text(payload.get("id"))
        return cls(
            word=word,
            headword=_text(payload.get("headword")) or _text(payload.get("word")),
            pos=_text(payload.get("pos")),
            ipa=_text(payload.get("ipa")),
            en=_text(payload.get("en")) or _text(payload.get("def_en")),
            def_en=_text(payload.get("def_en")) or _text(payload.get("en")),
            ja=_text(payload.get("ja")),
            example_en=_text(payload.get("example_en", payload.get("exampleEn"))),
            example_ja=_text(payload.get("example_ja", payload.get("exampleJa"))),
        )

    @property
    def canonical(self) -> str:
        return self.headword or self.word


@dataclass(frozen=True, slots=True)
class LookupHit:
    term: str
    headword: str = ""
    pos: str = ""
    ipa: str = ""
    def_en: str = ""
    ja: str = ""
    example_en: str = ""
    example_ja: str = ""

    source: ClassVar[Source]

    def to_mapping(self) -> dict[str, str]:
        return {
            "term": self.term,
            "headword": self.headword,
            "pos": self.pos,
            "ipa": self.ipa,
            "def_en": self.def_en,
            "ja": self.ja,
            "exampleEn": self.example_en,
            "exampleJa": self.example_ja,
            "source": self.source,
        }


@dataclass(frozen=True, slots=True)
class LocalHit(LookupHit):
    """A match found in the article's own vocabulary table."""

    source: ClassVar[Source] = "local"

    @classmethod
    def from_entry(cls, term: str, entry: VocabularyEntry) -> "LocalHit":
        return cls(
            term=term,
            headword=entry.canonical,
            pos=entry.pos,
            ipa=entry.ipa,
            def_en=entry.def_en or entry.en,
            ja=entry.ja,
            example_en=entry.example_en,
            example_ja=entry.example_ja,
        )


@dataclass(frozen=True, slots=True)
class RemoteHit(LookupHit):
    """A definition produced by the external lookup service."""

    source: ClassVar[Source] = "remote"

    @classmethod
    def from_payload(cls, term: str, payload: Mapping[str, Any]) -> "RemoteHit":
        return cls(
            term=term,
            headword=_text(payload.get("headword")) or term,
            pos=_text(payload.get("pos")),
            ipa=_text(payload.get("ipa")),
            def_en=_text(payload.get("def_en")),
            ja=_text(payload.get("ja")),
            example_en=_text(payload.get("exampleEn", payload.get("example_en"))),
            example_ja=_text(payload.get("exampleJa", payload.get("example_ja"))),
        )

    @classmethod
    def from_raw_text(cls, term: str, text: str) -> "RemoteHit":
        return cls(term=term, def_en=text)


@dataclass(frozen=True, slots=True)
class Failure:
    reason: str

    def to_mapping(self) -> dict[str, str]:
        return {"error": self.reason}


LookupResult = Union[LocalHit, RemoteHit, Failure]


@dataclass(frozen=True, slots=True)
class GlossaryEntry:
    """A saved lookup. Entries are unique by their exact ``term``."""

    term: str
    def_en: str = ""
    ja: str = ""
    source: Source = "local"

    @classmethod
    def from_hit(cls, hit: LookupHit) -> "GlossaryEntry":
        return cls(term=hit.term, def_en=hit.def_en, ja=hit.ja, source=hit.source)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "GlossaryEntry":
        term = payload.get("term")
        if not isinstance(term, str) or not term:
            raise ValueError("Glossary entry requires a non-empty term")
        source = payload.get("source")
        # Older payloads tagged entries with the backend that produced them.
        if source in ("remote", "openai"):
            source = "remote"
        else:
            source = "local"
        return cls(
            term=term,
            def_en=_text(payload.get("def_en")),
            ja=_text(payload.get("ja")),
            source=source,
        )

    def to_mapping(self) -> dict[str, str]:
        return {"term": self.term, "def_en": self.def_en, "ja": self.ja, "source": self.source}


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


__all__ = [
    "Failure",
    "GlossaryEntry",
    "LocalHit",
    "LookupHit",
    "LookupResult",
    "RemoteHit",
    "Source",
    "TermQuery",
    "VocabularyEntry",
]
