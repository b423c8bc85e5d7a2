"""Flask web API for the news reader."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Any

from flask import (
    Blueprint,
    Flask,
    Response,
    current_app,
    jsonify,
    request,
    send_file,
)

from newsreader_core import (
    GlossaryEntry,
    GlossaryStore,
    PlaybackCoordinator,
    PlaybackKind,
    RecordingError,
    RecordingSession,
    Settings,
    load_settings,
    save_settings,
)
from newsreader_core.audio import ArtifactRegistry
from newsreader_core.models import Failure
from newsreader_core.services import (
    ALLOWED_MIME_TYPES,
    EMPTY_QUERY,
    LocalLexiconMatcher,
    LookupOrchestrator,
    RemoteLookupClient,
    SpeechSynthesisClient,
    SynthesisError,
    TranscriptionError,
    transcribe,
)

from ..ui_common import LEVEL_CODES, LEVELS, SOURCE_LABELS, UI_LANGUAGE_CODES, UI_LANGUAGES

LOGGER = logging.getLogger(__name__)

API = Blueprint("api", __name__, url_prefix="/api")


@dataclass
class ReaderServices:
    """Long-lived collaborators shared by every request of one app instance."""

    registry: ArtifactRegistry
    glossary: GlossaryStore
    remote: RemoteLookupClient
    synthesizer: SpeechSynthesisClient
    playback: PlaybackCoordinator
    recording: RecordingSession

    @classmethod
    def create(cls, settings: Settings) -> "ReaderServices":
        registry = ArtifactRegistry()
        synthesizer = SpeechSynthesisClient(registry, settings)
        glossary = GlossaryStore()
        glossary.load()
        return cls(
            registry=registry,
            glossary=glossary,
            remote=RemoteLookupClient(model=settings.lookup_model),
            synthesizer=synthesizer,
            playback=PlaybackCoordinator(synthesizer, autoplay=False),
            recording=RecordingSession(registry),
        )


def create_app(config: dict[str, Any] | None = None) -> Flask:
    app = Flask(__name__)
    app.config.update(
        MAX_CONTENT_LENGTH=20 * 1024 * 1024,  # generous safety limit (~20 MB)
        NEWSREADER_ENABLE_CORS=False,
        NEWSREADER_CORS_ORIGIN="*",
    )
    if config:
        app.config.update(config)

    app.register_blueprint(API)

    @app.after_request
    def apply_cors_headers(response: Response) -> Response:
        if app.config.get("NEWSREADER_ENABLE_CORS"):
            response.headers.setdefault("Access-Control-Allow-Origin", app.config["NEWSREADER_CORS_ORIGIN"])
            response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
            response.headers.setdefault("Access-Control-Allow-Methods", "GET,POST,OPTIONS")
        return response

    with app.app_context():
        settings = load_settings()
        current_app.config["NEWSREADER_SETTINGS"] = settings
        if not isinstance(current_app.config.get("NEWSREADER_SERVICES"), ReaderServices):
            current_app.config["NEWSREADER_SERVICES"] = ReaderServices.create(settings)
        LOGGER.info("Loaded settings and services for web API")

    return app


@API.get("/health")
def health() -> Response:
    return jsonify({"ok": True})


@API.get("/options")
def api_options() -> Response:
    return jsonify(
        {
            "uiLanguages": list(UI_LANGUAGES),
            "levels": list(LEVELS),
            "sourceLabels": SOURCE_LABELS,
        }
    )


@API.get("/settings")
def api_get_settings() -> Response:
    return jsonify(current_settings().to_mapping())


@API.post("/settings")
def api_update_settings() -> Response:
    payload = _json_body()
    if payload is None:
        return json_error("invalid_body", "Request body must be a JSON object", 400)
    merged = {**current_settings().to_mapping(), **payload}
    updated = Settings.from_mapping(merged)
    save_settings(updated)
    current_app.config["NEWSREADER_SETTINGS"] = updated
    return jsonify(updated.to_mapping())


@API.get("/lookup")
def api_lookup() -> Response:
    term = (request.args.get("q") or "").strip()
    ui_lang = _normalize_ui_lang(request.args.get("uiLang"))
    if not term:
        return json_error("MISSING_QUERY", "Missing query", 400)

    try:
        hit = services().remote.lookup(term, ui_lang)
    except RuntimeError as exc:
        LOGGER.exception("Remote lookup failed")
        return json_error("LOOKUP_FAILED", str(exc), 502)

    payload = hit.to_mapping()
    payload.pop("term", None)
    payload.pop("source", None)
    return jsonify(payload)


@API.post("/resolve")
def api_resolve() -> Response:
    """Resolve ``query`` against ``vocab`` first, then remotely.

    Each HTTP request gets its own orchestrator, so the server cannot tell
    which of several overlapping requests is newest. Clients pass a
    ``requestId``, get it back in the ``X-Request-Id`` header and drop
    replies for superseded ids;
    :meth:`LookupOrchestrator.resolve_latest` is the in-process equivalent.
    """

    payload = _json_body()
    if payload is None:
        return json_error("invalid_body", "Request body must be a JSON object", 400)
    query = str(payload.get("query") or payload.get("term") or "")
    ui_lang = _normalize_ui_lang(payload.get("uiLang"))
    request_id = payload.get("requestId")
    rows = payload.get("vocab") or []
    if not isinstance(rows, list):
        return json_error("invalid_vocab", "vocab must be a list of entries", 400)

    orchestrator = LookupOrchestrator(LocalLexiconMatcher.from_rows(rows), services().remote)
    result = orchestrator.resolve(query, ui_lang)
    if isinstance(result, Failure):
        if result.reason == EMPTY_QUERY:
            response, status = json_error(EMPTY_QUERY, "Type a word or phrase to look up", 400)
        else:
            response, status = json_error("LOOKUP_FAILED", result.reason, 502)
    else:
        response, status = jsonify(result.to_mapping()), 200
    if request_id is not None:
        response.headers["X-Request-Id"] = str(request_id)
    return response, status


@API.get("/glossary")
def api_glossary() -> Response:
    return jsonify([entry.to_mapping() for entry in services().glossary.all()])


@API.post("/glossary")
def api_glossary_save() -> Response:
    payload = _json_body()
    if payload is None:
        return json_error("invalid_body", "Request body must be a JSON object", 400)
    try:
        entry = GlossaryEntry.from_mapping(payload)
    except ValueError as exc:
        return json_error("invalid_entry", str(exc), 400)

    store = services().glossary
    try:
        saved = store.save(entry)
    except OSError as exc:
        LOGGER.exception("Failed to persist glossary")
        return json_error("storage_unavailable", str(exc), 500)
    return jsonify({"saved": saved, "entries": [item.to_mapping() for item in store.all()]})


@API.post("/tts")
def api_tts() -> Response:
    payload = _json_body()
    if payload is None:
        return json_error("invalid_body", "Request body must be a JSON object", 400)
    text = str(payload.get("text") or "")
    lang = str(payload.get("lang") or "")
    if not text.strip() or not lang:
        return json_error("missing_fields", "Missing text or lang", 400)

    try:
        audio = services().synthesizer.synthesize_bytes(text, _normalize_ui_lang(lang))
    except (SynthesisError, RuntimeError) as exc:
        LOGGER.exception("TTS call failed")
        return json_error("tts_failed", str(exc), 502)

    return send_file(io.BytesIO(audio), mimetype="audio/mpeg", as_attachment=False, download_name="speech.mp3")


@API.post("/playback")
def api_playback() -> Response:
    payload = _json_body()
    if payload is None:
        return json_error("invalid_body", "Request body must be a JSON object", 400)
    try:
        kind = PlaybackKind(str(payload.get("kind") or ""))
    except ValueError:
        return json_error("invalid_kind", "kind must be selection, definition or model_speech", 400)
    lang = _normalize_ui_lang(payload.get("lang"))
    coordinator = services().playback

    try:
        if kind is PlaybackKind.MODEL_SPEECH and isinstance(payload.get("variant"), dict):
            ticket = coordinator.play_model_speech(payload["variant"], lang)
        else:
            ticket = coordinator.request(kind, str(payload.get("text") or ""), lang)
    except (SynthesisError, RuntimeError) as exc:
        LOGGER.exception("Playback synthesis failed")
        return json_error("tts_failed", str(exc), 502)

    if ticket is None:
        return json_error("missing_text", "Nothing to read aloud", 400)
    return jsonify(
        {
            "kind": ticket.kind.value,
            "token": ticket.token,
            "current": ticket.current,
            "url": ticket.artifact.url if ticket.current else None,
        }
    )


@API.post("/stt")
def api_stt() -> Response:
    lang = _normalize_ui_lang(request.args.get("lang"))
    mimetype = _normalize_mime_type(request.content_type) or "audio/wav"
    if mimetype not in ALLOWED_MIME_TYPES:
        return json_error("unsupported_type", f"Unsupported audio type: {mimetype}", 400)
    raw = request.get_data()
    if not raw:
        return json_error("empty_audio", "Uploaded audio is empty", 400)

    try:
        transcript = transcribe(raw, mimetype, lang)
    except TranscriptionError as exc:
        LOGGER.warning("Transcription failed: %s", exc)
        return json_error("transcription_failed", str(exc), 502)
    except RuntimeError as exc:
        LOGGER.exception("Transcription call failed")
        return json_error("transcription_failed", str(exc), 502)
    return jsonify({"transcript": transcript})


@API.get("/record/status")
def api_record_status() -> Response:
    return jsonify(services().recording.status())


@API.post("/record/start")
def api_record_start() -> Response:
    session = services().recording
    try:
        session.start()
    except RecordingError as exc:
        return json_error("mic_unavailable", str(exc), 503)
    return jsonify(session.status())


@API.post("/record/pause")
def api_record_pause() -> Response:
    session = services().recording
    session.pause()
    return jsonify(session.status())


@API.post("/record/resume")
def api_record_resume() -> Response:
    session = services().recording
    try:
        session.resume()
    except RecordingError as exc:
        return json_error("mic_unavailable", str(exc), 503)
    return jsonify(session.status())


@API.post("/record/stop")
def api_record_stop() -> Response:
    session = services().recording
    try:
        session.stop()
    except RecordingError as exc:
        return json_error("recording_failed", str(exc), 500)
    return jsonify(session.status())


@API.post("/record/play")
def api_record_play() -> Response:
    session = services().recording
    if not session.play():
        return json_error("no_recording", "Nothing has been recorded yet", 404)
    return jsonify(session.status())


@API.get("/record/download")
def api_record_download() -> Response:
    settings = current_settings()
    args = request.args
    export = services().recording.download(
        article_id=args.get("articleId", "article"),
        segment_id=args.get("segmentId", "segment"),
        lang=_normalize_ui_lang(args.get("lang") or settings.ui_language),
        level=args.get("level") if args.get("level") in LEVEL_CODES else settings.level,
    )
    if export is None:
        return json_error("no_recording", "Nothing has been recorded yet", 404)
    return send_file(
        io.BytesIO(export.data),
        mimetype=export.mime_type,
        as_attachment=True,
        download_name=export.filename,
    )


@API.get("/artifacts/<artifact_id>")
def api_artifact(artifact_id: str) -> Response:
    artifact = services().registry.get(artifact_id)
    if artifact is None:
        return json_error("unknown_artifact", "Audio is no longer available", 404)
    return send_file(
        io.BytesIO(artifact.data),
        mimetype=artifact.mime_type,
        as_attachment=False,
        download_name=f"{artifact.artifact_id}.{artifact.extension}",
    )


def current_settings() -> Settings:
    settings = current_app.config.get("NEWSREADER_SETTINGS")
    if isinstance(settings, Settings):
        return settings
    settings = load_settings()
    current_app.config["NEWSREADER_SETTINGS"] = settings
    return settings


def services() -> ReaderServices:
    return current_app.config["NEWSREADER_SERVICES"]


def json_error(code: str, message: str, status: int):
    payload = {"error": {"code": code, "message": message}}
    return jsonify(payload), status


def _json_body() -> dict[str, Any] | None:
    """Return the JSON object body, ``{}`` when absent, ``None`` for non-object JSON."""

    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    return payload if isinstance(payload, dict) else None


def _normalize_mime_type(value: Any) -> str:
    mimetype = str(value or "").strip().lower()
    if not mimetype:
        return ""
    if ";" in mimetype:
        mimetype = mimetype.split(";", 1)[0].strip()
    return mimetype


def _normalize_ui_lang(value: Any) -> str:
    text = str(value or "").strip().lower()
    return text if text in UI_LANGUAGE_CODES else "en"


if __name__ == "__main__":  # pragma: no cover - manual execution
    logging.basicConfig(level=logging.INFO)
    app = create_app({"ENV": "production"})
    app.run(host="127.0.0.1", port=8080)
