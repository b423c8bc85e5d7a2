"""Speech-to-text helper functions."""

from __future__ import annotations

import io
import logging
from typing import Any, Callable, Final, Mapping

import requests
import soundfile as sf

from ._client import AzureSpeechCredentials, get_azure_credentials, get_http_session
from .text_utils import format_structured_text

LOGGER = logging.getLogger(__name__)

ALLOWED_MIME_TYPES: Final[set[str]] = {
    "audio/wav",
    "audio/x-wav",
    "audio/webm",
    "audio/ogg",
}
MAX_AUDIO_DURATION_SECONDS: Final[int] = 120
STT_URL_TEMPLATE: Final[str] = (
    "https://{region}.stt.speech.microsoft.com/speech/recognition/conversation/cognitiveservices/v1"
)
RECOGNITION_LANGS: Final[dict[str, str]] = {"en": "en-US", "ja": "ja-JP"}
DEFAULT_TIMEOUT: Final[float] = 60.0


class TranscriptionError(RuntimeError):
    """Raised when a transcription request fails validation or the service call."""


def transcribe(
    audio: bytes,
    mimetype: str,
    lang: str = "en",
    *,
    session: requests.Session | None = None,
    credentials: Callable[[], AzureSpeechCredentials] | None = None,
) -> str:
    """Transcribe audio bytes with the Azure short-audio recognizer."""

    LOGGER.info("Transcribing audio blob (mimetype=%s, lang=%s)", mimetype, lang)
    wav_bytes = prepare_wav(audio, mimetype)
    duration = duration_seconds(wav_bytes)
    if duration > MAX_AUDIO_DURATION_SECONDS:
        raise TranscriptionError("Audio duration exceeds the 2 minute limit")

    creds = (credentials or (lambda: get_azure_credentials("stt")))()
    url = STT_URL_TEMPLATE.format(region=creds.region)
    http = session or get_http_session()
    try:
        response = http.post(
            url,
            params={"language": RECOGNITION_LANGS.get(lang, RECOGNITION_LANGS["en"])},
            data=wav_bytes,
            headers={
                "Ocp-Apim-Subscription-Key": creds.key,
                "Content-Type": "audio/wav",
                "Accept": "application/json;text/xml",
            },
            timeout=DEFAULT_TIMEOUT,
        )
    except requests.RequestException as exc:
        raise TranscriptionError(f"Azure STT request failed: {exc}") from exc

    if response.status_code >= 400:
        raise TranscriptionError(f"Azure STT {response.status_code} {response.reason}: {response.text}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise TranscriptionError("Azure STT returned a non-JSON response") from exc
    LOGGER.debug("Received transcription response")
    return format_structured_text(extract_transcript(payload))


def extract_transcript(payload: Any) -> str:
    """Return the first non-empty transcript among the recognizer's known fields."""

    if not isinstance(payload, Mapping):
        return ""
    candidates: list[Any] = [payload.get("DisplayText")]
    nbest = payload.get("NBest")
    if isinstance(nbest, list) and nbest and isinstance(nbest[0], Mapping):
        candidates.append(nbest[0].get("Display"))
    candidates.append(payload.get("Text"))
    for value in candidates:
        if isinstance(value, str) and value.strip():
            return value
    return ""


def prepare_wav(audio: bytes, mimetype: str) -> bytes:
    if mimetype not in ALLOWED_MIME_TYPES:
        raise TranscriptionError(f"Unsupported audio mimetype: {mimetype}")
    if mimetype in {"audio/wav", "audio/x-wav"}:
        return audio
    try:
        from pydub import AudioSegment
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise TranscriptionError("pydub is required to decode non-WAV uploads") from exc

    format_hint = "webm" if mimetype == "audio/webm" else "ogg"
    segment = AudioSegment.from_file(io.BytesIO(audio), format=format_hint)
    LOGGER.debug("Decoded %s audio via pydub (duration=%.2fs)", mimetype, segment.duration_seconds)
    mono = segment.set_channels(1).set_frame_rate(16000)
    wav_buffer = io.BytesIO()
    mono.export(wav_buffer, format="wav")
    return wav_buffer.getvalue()


def duration_seconds(audio: bytes) -> float:
    with sf.SoundFile(io.BytesIO(audio)) as data:
        frames = len(data)
        samplerate = data.samplerate or 1
    return frames / samplerate


__all__ = [
    "ALLOWED_MIME_TYPES",
    "MAX_AUDIO_DURATION_SECONDS",
    "TranscriptionError",
    "duration_seconds",
    "extract_transcript",
    "prepare_wav",
    "transcribe",
]
