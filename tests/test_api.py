from __future__ import annotations

import pytest

from newsreader_core.models import RemoteHit
from newsreader_core.recording import RecordingSession
from newsreader_core.services import LookupServiceError

VOCAB = [{"headword": "update", "def_en": "new information", "ja": "更新"}]


def test_resolve_prefers_article_vocab(monkeypatch, client, reader_services):
    calls = []
    monkeypatch.setattr(reader_services.remote, "lookup", lambda term, lang: calls.append(term))

    response = client.post("/api/resolve", json={"query": "UPDATE", "uiLang": "en", "vocab": VOCAB})

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["term"] == "UPDATE"
    assert payload["def_en"] == "new information"
    assert payload["ja"] == "更新"
    assert payload["source"] == "local"
    assert calls == []


def test_resolve_falls_back_to_remote(monkeypatch, client, reader_services):
    monkeypatch.setattr(
        reader_services.remote,
        "lookup",
        lambda term, lang: RemoteHit(term=term, headword=term, def_en="a pause in fighting", example_en="Ex."),
    )

    payload = client.post("/api/resolve", json={"query": "ceasefire", "vocab": VOCAB}).get_json()

    assert payload["source"] == "remote"
    assert payload["exampleEn"] == "Ex."
    assert payload["exampleJa"] == ""


def test_resolve_rejects_empty_and_reports_failures(monkeypatch, client, reader_services):
    response = client.post("/api/resolve", json={"query": "  "})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "EMPTY_QUERY"

    def fail(term, lang):
        raise LookupServiceError("quota exceeded")

    monkeypatch.setattr(reader_services.remote, "lookup", fail)
    response = client.post("/api/resolve", json={"query": "ceasefire"})
    assert response.status_code == 502
    assert response.get_json()["error"]["message"] == "quota exceeded"


def test_lookup_endpoint(monkeypatch, client, reader_services):
    assert client.get("/api/lookup").status_code == 400

    monkeypatch.setattr(reader_services.remote, "lookup", lambda term, lang: RemoteHit(term=term, headword="truce", ja="停戦"))
    payload = client.get("/api/lookup?q=truce&uiLang=ja").get_json()
    assert payload == {
        "headword": "truce",
        "pos": "",
        "ipa": "",
        "def_en": "",
        "ja": "停戦",
        "exampleEn": "",
        "exampleJa": "",
    }


def test_glossary_roundtrip(client):
    assert client.get("/api/glossary").get_json() == []

    entry = {"term": "foo", "def_en": "bar", "source": "local"}
    first = client.post("/api/glossary", json=entry).get_json()
    second = client.post("/api/glossary", json={**entry, "def_en": "changed"}).get_json()

    assert first["saved"] is True
    assert second["saved"] is False
    assert client.get("/api/glossary").get_json() == [{"term": "foo", "def_en": "bar", "ja": "", "source": "local"}]
    assert client.post("/api/glossary", json={"def_en": "no term"}).status_code == 400


def test_record_start_reports_missing_microphone(client, reader_services):
    def no_microphone(**_):
        raise OSError("no default input device")

    reader_services.recording = RecordingSession(reader_services.registry, stream_factory=no_microphone)

    response = client.post("/api/record/start")
    assert response.status_code == 503
    assert response.get_json()["error"]["code"] == "mic_unavailable"
    assert client.get("/api/record/status").get_json()["state"] == "idle"


def test_record_flow_and_download(client, reader_services, stream_factory, wav_only):
    reader_services.recording = RecordingSession(
        reader_services.registry,
        stream_factory=stream_factory,
        encoding_probe=wav_only,
        player=lambda artifact: None,
    )
    assert client.get("/api/record/download").status_code == 404

    assert client.post("/api/record/pause").get_json()["state"] == "idle"
    assert client.post("/api/record/start").get_json()["state"] == "recording"
    stream_factory.last.feed(160)
    assert client.post("/api/record/pause").get_json()["state"] == "paused"
    assert client.post("/api/record/resume").get_json()["state"] == "recording"
    status = client.post("/api/record/stop").get_json()
    assert status["state"] == "stopped"
    assert status["durationSeconds"] >= 0

    artifact = client.get(status["artifactUrl"])
    assert artifact.status_code == 200
    assert artifact.mimetype == "audio/wav"

    download = client.get("/api/record/download?articleId=a1&segmentId=s1&lang=ja&level=HS")
    assert download.status_code == 200
    disposition = download.headers["Content-Disposition"]
    assert "NewsToday_a1_s1_ja_HS_" in disposition
    assert ".wav" in disposition
    assert client.post("/api/record/play").status_code == 200


def test_stt_endpoint(monkeypatch, client, wav_bytes):
    seen = {}

    def fake_transcribe(audio, mimetype, lang):
        seen.update(mimetype=mimetype, lang=lang)
        return "Hello world"

    monkeypatch.setattr("newsreader.ui_web.app.transcribe", fake_transcribe)
    response = client.post("/api/stt?lang=ja", data=wav_bytes, content_type="audio/wav")

    assert response.status_code == 200
    assert response.get_json() == {"transcript": "Hello world"}
    assert seen == {"mimetype": "audio/wav", "lang": "ja"}
    assert client.post("/api/stt", data=b"", content_type="audio/wav").status_code == 400


def test_tts_requires_text_and_lang(client):
    assert client.post("/api/tts", json={"text": "hi"}).status_code == 400


def test_playback_endpoint(monkeypatch, client, reader_services):
    monkeypatch.setattr(
        reader_services.synthesizer,
        "synthesize",
        lambda text, lang: reader_services.registry.create(text.encode("utf-8"), "audio/mpeg", "mp3"),
    )

    response = client.post(
        "/api/playback",
        json={"kind": "model_speech", "lang": "en", "variant": {"greeting": "Hello.", "body": "News."}},
    )
    payload = response.get_json()
    assert payload["current"] is True
    assert client.get(payload["url"]).data == b"Hello. News."
    assert client.post("/api/playback", json={"kind": "unknown", "text": "x"}).status_code == 400


def test_settings_roundtrip(client):
    response = client.post("/api/settings", json={"ui_language": "ja", "level": "HS"})
    assert response.status_code == 200
    assert response.get_json()["ui_language"] == "ja"

    fetched = client.get("/api/settings").get_json()
    assert fetched["level"] == "HS"
    assert client.post("/api/settings", json={"level": "college"}).get_json()["level"] == "JHS"


def test_options_list_choices(client):
    payload = client.get("/api/options").get_json()
    assert [item["code"] for item in payload["uiLanguages"]] == ["en", "ja"]
    assert [item["code"] for item in payload["levels"]] == ["JHS", "HS"]
    assert payload["sourceLabels"]["remote"] == "Dictionary service"


def test_services_share_one_artifact_registry(reader_services):
    assert reader_services.synthesizer.registry is reader_services.registry
    assert reader_services.recording.registry is reader_services.registry


def test_playback_url_serves_synthesized_audio(monkeypatch, client, reader_services):
    monkeypatch.setattr(reader_services.synthesizer, "synthesize_bytes", lambda text, lang: b"ID3" + text.encode("utf-8"))

    payload = client.post("/api/playback", json={"kind": "selection", "text": "ceasefire", "lang": "en"}).get_json()

    audio = client.get(payload["url"])
    assert audio.status_code == 200
    assert audio.mimetype == "audio/mpeg"
    assert audio.data == b"ID3ceasefire"


def test_record_stop_reports_encode_failure(monkeypatch, client, reader_services, stream_factory, wav_only):
    reader_services.recording = RecordingSession(
        reader_services.registry,
        stream_factory=stream_factory,
        encoding_probe=wav_only,
    )

    def broken_write(frames, samplerate, encoding):
        raise RuntimeError("encode failed")

    monkeypatch.setattr("newsreader_core.recording._write", broken_write)
    client.post("/api/record/start")
    stream_factory.last.feed(160)

    response = client.post("/api/record/stop")
    assert response.status_code == 500
    assert response.get_json()["error"]["code"] == "recording_failed"
    assert client.get("/api/record/status").get_json()["state"] == "idle"


def test_resolve_echoes_request_id(client):
    response = client.post("/api/resolve", json={"query": "update", "vocab": VOCAB, "requestId": 7})
    assert response.status_code == 200
    assert response.headers["X-Request-Id"] == "7"

    response = client.post("/api/resolve", json={"query": "", "requestId": "abc"})
    assert response.status_code == 400
    assert response.headers["X-Request-Id"] == "abc"
    assert "X-Request-Id" not in client.post("/api/resolve", json={"query": "update", "vocab": VOCAB}).headers


@pytest.mark.parametrize("route", ["/api/settings", "/api/resolve", "/api/glossary", "/api/tts", "/api/playback"])
def test_non_object_json_body_is_rejected(client, route):
    response = client.post(route, json=["x"])
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "invalid_body"
