"""Local-first term lookup with a generative dictionary as fallback."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Final

from openai import OpenAI, OpenAIError

from ..models import Failure, LocalHit, LookupResult, RemoteHit, TermQuery
from ..tokens import RequestGuard
from ._client import get_openai_client
from .lexicon import LocalLexiconMatcher

LOGGER = logging.getLogger(__name__)

LOOKUP_MODEL: Final[str] = "gpt-4o-mini"
LOOKUP_TEMPERATURE: Final[float] = 0.2
EMPTY_QUERY: Final[str] = "EMPTY_QUERY"
LOOKUP_FAILED: Final[str] = "LOOKUP_FAILED"
SYSTEM_PROMPT: Final[str] = """\
You are a bilingual English/Japanese learner's dictionary. Keep entries short,
natural and classroom-friendly.

- English definition: one concise sentence (CEFR B1-B2) that does not repeat the headword.
- Japanese meaning: natural and succinct, not word-for-word.
- At most one natural English example sentence, plus a fluent Japanese translation of it.
- Treat multi-word input as a set phrase.
- Leave "ipa" empty if unsure.

Reply with a JSON object exactly like:
{"headword": "...", "pos": "noun|verb|adj|adv|phrase|idiom|proper-noun|number|symbol|other",
 "ipa": "", "def_en": "...", "ja": "...", "exampleEn": "...", "exampleJa": "..."}
"""
USER_PROMPT_TEMPLATE: Final[str] = "TERM: {term}\nLearner interface language: {ui_lang}"


class LookupServiceError(RuntimeError):
    """Raised when the remote dictionary cannot be reached or rejects a request."""


class RemoteLookupClient:
    """One-shot client for the generative dictionary backend."""

    def __init__(
        self,
        client_factory: Callable[[], OpenAI] = get_openai_client,
        *,
        model: str = LOOKUP_MODEL,
        temperature: float = LOOKUP_TEMPERATURE,
    ) -> None:
        self._client_factory = client_factory
        self.model = model
        self.temperature = temperature

    def lookup(self, term: str, ui_lang: str = "en") -> RemoteHit:
        clean = (term or "").strip()
        if not clean:
            raise ValueError("MISSING_QUERY")

        LOGGER.info("Looking up %r remotely (ui_lang=%s)", clean, ui_lang)
        client = self._client_factory()
        try:
            response = client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": USER_PROMPT_TEMPLATE.format(term=clean, ui_lang=ui_lang)},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            raise LookupServiceError(_service_message(exc)) from exc

        choices = getattr(response, "choices", None) or []
        content = ""
        if choices:
            content = getattr(choices[0].message, "content", None) or ""
        return parse_lookup_content(clean, content)


def parse_lookup_content(term: str, content: str) -> RemoteHit:
    """Turn the backend's reply into a :class:`RemoteHit` without ever failing.

    Well-formed JSON objects are mapped field by field with empty-string
    defaults; anything else is shown to the learner verbatim as ``def_en``.
    """

    text = (content or "").strip()
    if not text:
        return RemoteHit.from_payload(term, {})
    try:
        payload = json.loads(_strip_code_fence(text))
    except json.JSONDecodeError:
        LOGGER.warning("Lookup reply for %r was not JSON; using raw text", term)
        return RemoteHit.from_raw_text(term, text)
    if not isinstance(payload, dict):
        LOGGER.warning("Lookup reply for %r was JSON but not an object", term)
        return RemoteHit.from_raw_text(term, text)
    return RemoteHit.from_payload(term, payload)


class LookupOrchestrator:
    """Resolve learner queries against the article vocabulary, then remotely.

    Resolving never touches the glossary; saving is a separate caller action.
    """

    def __init__(
        self,
        matcher: LocalLexiconMatcher | None = None,
        remote: RemoteLookupClient | None = None,
    ) -> None:
        self.matcher = matcher if matcher is not None else LocalLexiconMatcher()
        self.remote = remote if remote is not None else RemoteLookupClient()
        self.guard = RequestGuard()

    def resolve(self, query: str, ui_lang: str = "en") -> LookupResult:
        request = TermQuery(raw=query or "", ui_lang=ui_lang)
        normalized = request.normalized
        if not normalized:
            return Failure(EMPTY_QUERY)

        entry = self.matcher.match(normalized)
        if entry is not None:
            LOGGER.info("Resolved %r from article vocabulary", request.term)
            return LocalHit.from_entry(request.term, entry)

        try:
            return self.remote.lookup(request.term, request.ui_lang)
        except RuntimeError as exc:
            LOGGER.warning("Remote lookup for %r failed: %s", request.term, exc)
            return Failure(str(exc) or LOOKUP_FAILED)

    def resolve_latest(self, query: str, ui_lang: str = "en") -> LookupResult | None:
        """Like :meth:`resolve` but return ``None`` if a newer call started meanwhile."""

        token = self.guard.issue()
        result = self.resolve(query, ui_lang)
        if not self.guard.is_current(token):
            LOGGER.debug("Discarding stale lookup result for %r (token=%d)", query, token)
            return None
        return result


def _service_message(exc: OpenAIError) -> str:
    body: Any = getattr(exc, "body", None)
    if isinstance(body, dict):
        nested = body.get("error") if isinstance(body.get("error"), dict) else body
        message = nested.get("message")
        if message:
            return str(message)
    message = getattr(exc, "message", None) or str(exc)
    return message or LOOKUP_FAILED


def _strip_code_fence(text: str) -> str:
    if not text.startswith("```"):
        return text
    lines = text.splitlines()
    if len(lines) >= 2 and lines[-1].strip().startswith("```"):
        return "\n".join(lines[1:-1]).strip()
    return text


__all__ = [
    "EMPTY_QUERY",
    "LOOKUP_FAILED",
    "LookupOrchestrator",
    "LookupServiceError",
    "RemoteLookupClient",
    "parse_lookup_content",
]
