from __future__ import annotations

import json
import types

import openai
import pytest

from newsreader_core.models import Failure, LocalHit, RemoteHit, TermQuery, VocabularyEntry
from newsreader_core.services import (
    LocalLexiconMatcher,
    LookupOrchestrator,
    LookupServiceError,
    RemoteLookupClient,
    normalize_term,
)


class CountingRemote:
    def __init__(self, result=None, error: Exception | None = None) -> None:
        self.calls: list[tuple[str, str]] = []
        self.result = result
        self.error = error

    def lookup(self, term: str, ui_lang: str = "en") -> RemoteHit:
        self.calls.append((term, ui_lang))
        if self.error is not None:
            raise self.error
        return self.result or RemoteHit(term=term, headword=term, def_en="from remote")


def fake_openai(content: str, captured: dict | None = None):
    def create(**kwargs):
        if captured is not None:
            captured.update(kwargs)
        message = types.SimpleNamespace(content=content)
        return types.SimpleNamespace(choices=[types.SimpleNamespace(message=message, index=0)])

    chat = types.SimpleNamespace(completions=types.SimpleNamespace(create=create))
    return lambda: types.SimpleNamespace(chat=chat)


@pytest.mark.parametrize(
    "raw",
    ["  Update ", "“Breaking News!”", "（速報）", "U.S.", "word )", " [ {hello} ] ", "", "   ", "İstanbul", "a … b"],
)
def test_normalize_is_idempotent(raw):
    once = normalize_term(raw)
    assert normalize_term(once) == once


def test_normalize_strips_punctuation_and_case():
    assert normalize_term('  “Update!” ') == "update"
    assert normalize_term("「速報」。") == "速報"
    assert normalize_term("well-known") == "well-known"
    assert normalize_term("   ") == ""


def test_exact_headword_match_skips_remote():
    vocab = [VocabularyEntry(word="update", headword="update", def_en="new information", ja="更新")]
    remote = CountingRemote()
    orchestrator = LookupOrchestrator(LocalLexiconMatcher(vocab), remote)

    result = orchestrator.resolve("UPDATE", "en")

    assert result == LocalHit(term="UPDATE", headword="update", def_en="new information", ja="更新")
    assert result.source == "local"
    assert remote.calls == []


def test_phrase_falls_back_to_known_token():
    matcher = LocalLexiconMatcher.from_rows(
        [
            {"word": "report", "def_en": "an account of events", "ja": "報告"},
            {"headword": "breaking", "pos": "adj", "def_en": "happening right now", "ja": "速報の"},
        ]
    )
    remote = CountingRemote()

    result = LookupOrchestrator(matcher, remote).resolve("breaking news", "en")

    assert isinstance(result, LocalHit)
    assert result.headword == "breaking"
    assert result.def_en == "happening right now"
    assert result.ja == "速報の"
    assert remote.calls == []


def test_single_word_substring_match_uses_insertion_order():
    matcher = LocalLexiconMatcher(
        [
            VocabularyEntry(word="updated", def_en="first"),
            VocabularyEntry(word="update", headword="updater", def_en="second"),
        ]
    )
    assert matcher.match("updat").def_en == "first"
    assert matcher.match("update").def_en == "second"


def test_multi_word_query_does_not_use_substring_rule():
    matcher = LocalLexiconMatcher([VocabularyEntry(word="newsroom")])
    assert matcher.match("news desk") is None


def test_local_miss_calls_remote_once():
    remote = CountingRemote()
    orchestrator = LookupOrchestrator(LocalLexiconMatcher([VocabularyEntry(word="update")]), remote)

    result = orchestrator.resolve("  ceasefire ", "ja")

    assert isinstance(result, RemoteHit)
    assert result.source == "remote"
    assert remote.calls == [("ceasefire", "ja")]


def test_empty_query_is_rejected_without_side_effects():
    remote = CountingRemote()
    result = LookupOrchestrator(LocalLexiconMatcher(), remote).resolve(" “…” ", "en")
    assert result == Failure("EMPTY_QUERY")
    assert remote.calls == []


def test_remote_failure_becomes_failure_with_message():
    remote = CountingRemote(error=LookupServiceError("Rate limit reached"))
    result = LookupOrchestrator(LocalLexiconMatcher(), remote).resolve("ceasefire")
    assert result == Failure("Rate limit reached")


def test_missing_api_key_is_reported_as_failure(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    def no_key():
        raise RuntimeError("NO_OPENAI_KEY")

    result = LookupOrchestrator(LocalLexiconMatcher(), RemoteLookupClient(no_key)).resolve("ceasefire")
    assert result == Failure("NO_OPENAI_KEY")


def test_resolve_latest_discards_stale_result():
    outcomes = {}

    class InterleavingRemote(CountingRemote):
        def lookup(self, term, ui_lang="en"):
            if term == "first":
                outcomes["second"] = orchestrator.resolve_latest("second", ui_lang)
            return super().lookup(term, ui_lang)

    orchestrator = LookupOrchestrator(LocalLexiconMatcher(), InterleavingRemote())

    assert orchestrator.resolve_latest("first") is None
    assert isinstance(outcomes["second"], RemoteHit)
    assert outcomes["second"].term == "second"


def test_remote_client_maps_fields_with_defaults():
    captured: dict = {}
    content = json.dumps({"headword": "ceasefire", "pos": "noun", "def_en": "an agreement to stop fighting", "ja": "停戦"})
    client = RemoteLookupClient(fake_openai(content, captured))

    hit = client.lookup("Ceasefire", "ja")

    assert hit == RemoteHit(term="Ceasefire", headword="ceasefire", pos="noun", def_en="an agreement to stop fighting", ja="停戦")
    assert hit.ipa == "" and hit.example_en == "" and hit.example_ja == ""
    assert captured["response_format"] == {"type": "json_object"}
    assert captured["model"] == "gpt-4o-mini"
    assert "Ceasefire" in captured["messages"][-1]["content"]


def test_remote_client_reads_example_fields():
    content = json.dumps({"exampleEn": "They agreed to a ceasefire.", "exampleJa": "彼らは停戦に合意した。"})
    hit = RemoteLookupClient(fake_openai(content)).lookup("ceasefire")
    assert hit.example_en == "They agreed to a ceasefire."
    assert hit.example_ja == "彼らは停戦に合意した。"
    assert hit.headword == "ceasefire"


def test_remote_client_degrades_on_plain_text():
    hit = RemoteLookupClient(fake_openai("A ceasefire is a pause in fighting.")).lookup("ceasefire")

    assert isinstance(hit, RemoteHit)
    assert hit.source == "remote"
    assert hit.def_en == "A ceasefire is a pause in fighting."
    assert (hit.headword, hit.pos, hit.ipa, hit.ja, hit.example_en, hit.example_ja) == ("", "", "", "", "", "")


def test_remote_client_accepts_fenced_json():
    content = '```json\n{"def_en": "a pause in fighting"}\n```'
    assert RemoteLookupClient(fake_openai(content)).lookup("ceasefire").def_en == "a pause in fighting"


def test_remote_client_wraps_openai_errors():
    def create(**_):
        raise openai.OpenAIError("upstream unavailable")

    chat = types.SimpleNamespace(completions=types.SimpleNamespace(create=create))
    client = RemoteLookupClient(lambda: types.SimpleNamespace(chat=chat))

    with pytest.raises(LookupServiceError, match="upstream unavailable"):
        client.lookup("ceasefire")


def test_vocabulary_entry_accepts_article_aliases():
    entry = VocabularyEntry.from_mapping({"id": "v1", "en": "short", "example_en": "Example."})
    assert entry.word == "v1"
    assert entry.def_en == "short"
    assert entry.example_en == "Example."


def test_term_query_exposes_trimmed_and_normalized_forms():
    query = TermQuery(raw="  “Breaking News!” ", ui_lang="ja")
    assert query.term == "“Breaking News!”"
    assert query.normalized == "breaking news"


def test_orchestrator_keeps_injected_empty_matcher():
    matcher = LocalLexiconMatcher()
    orchestrator = LookupOrchestrator(matcher, CountingRemote())
    assert orchestrator.matcher is matcher
