"""Microphone capture for the learner's own reading."""

from __future__ import annotations

import io
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Final

import numpy as np
import soundfile as sf

from .audio import ArtifactRegistry, AudioArtifact, play_artifact

LOGGER = logging.getLogger(__name__)

DEFAULT_SAMPLERATE: Final[int] = 16000
DEFAULT_CHANNELS: Final[int] = 1
EXPORT_PREFIX: Final[str] = "NewsToday"
MIC_UNAVAILABLE: Final[str] = "Microphone not available. Please allow mic permission."
ENCODE_FAILED: Final[str] = "Could not save the recording. Please try again."


class RecordingError(RuntimeError):
    """Raised when the capture device fails or a finished take cannot be encoded."""


class RecordingState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PAUSED = "paused"
    STOPPED = "stopped"


@dataclass(frozen=True, slots=True)
class CaptureEncoding:
    mime_type: str
    extension: str
    format: str
    subtype: str


# Probed in order; the last entry is always writable by libsndfile.
ENCODING_PREFERENCES: Final[tuple[CaptureEncoding, ...]] = (
    CaptureEncoding("audio/ogg;codecs=opus", "ogg", "OGG", "OPUS"),
    CaptureEncoding("audio/wav", "wav", "WAV", "PCM_16"),
)
FALLBACK_ENCODING: Final[CaptureEncoding] = ENCODING_PREFERENCES[-1]


@dataclass(frozen=True, slots=True)
class RecordingExport:
    filename: str
    data: bytes
    mime_type: str


def negotiate_encoding(probe: Callable[[str, str], bool] = sf.check_format) -> CaptureEncoding:
    for encoding in ENCODING_PREFERENCES:
        if probe(encoding.format, encoding.subtype):
            LOGGER.debug("Negotiated capture encoding %s", encoding.mime_type)
            return encoding
    return FALLBACK_ENCODING


def export_filename(
    article_id: str,
    segment_id: str,
    lang: str,
    level: str,
    extension: str,
    now: datetime | None = None,
) -> str:
    moment = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    stamp = moment.strftime("%Y-%m-%dT%H%M%S") + f"{moment.microsecond // 1000:03d}Z"
    return f"{EXPORT_PREFIX}_{article_id}_{segment_id}_{lang}_{level}_{stamp}.{extension}"


def _open_input_stream(**kwargs: Any) -> Any:
    import sounddevice as sd

    return sd.InputStream(**kwargs)


class RecordingSession:
    """Explicit state machine around one microphone capture.

    ``IDLE -> RECORDING <-> PAUSED -> STOPPED``; a new :meth:`start` from
    ``STOPPED`` begins a fresh take and releases the previous artifact.
    Transitions requested from the wrong state are ignored.
    """

    def __init__(
        self,
        registry: ArtifactRegistry | None = None,
        *,
        samplerate: int = DEFAULT_SAMPLERATE,
        channels: int = DEFAULT_CHANNELS,
        stream_factory: Callable[..., Any] = _open_input_stream,
        encoding_probe: Callable[[str, str], bool] = sf.check_format,
        clock: Callable[[], float] = time.time,
        player: Callable[[AudioArtifact], Any] = play_artifact,
    ) -> None:
        self.registry = registry if registry is not None else ArtifactRegistry()
        self.samplerate = samplerate
        self.channels = channels
        self._stream_factory = stream_factory
        self._encoding_probe = encoding_probe
        self._clock = clock
        self._player = player

        self._lock = threading.Lock()
        self._chunk_lock = threading.Lock()
        self._state = RecordingState.IDLE
        self._stream: Any = None
        self._chunks: list[np.ndarray] = []
        self.encoding: CaptureEncoding | None = None
        self.started_at: float | None = None
        self.artifact: AudioArtifact | None = None
        self.duration_seconds: float | None = None

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def mime_type(self) -> str | None:
        return self.encoding.mime_type if self.encoding else None

    @property
    def chunk_count(self) -> int:
        with self._chunk_lock:
            return len(self._chunks)

    def start(self) -> bool:
        """Open the microphone and begin buffering; ignored while already capturing."""

        with self._lock:
            if self._state in (RecordingState.RECORDING, RecordingState.PAUSED):
                LOGGER.debug("start() ignored in state %s", self._state.value)
                return False

            encoding = negotiate_encoding(self._encoding_probe)
            stream = None
            try:
                stream = self._stream_factory(
                    samplerate=self.samplerate,
                    channels=self.channels,
                    callback=self._on_audio,
                )
                stream.start()
            except Exception as exc:
                LOGGER.warning("Failed to open capture device: %s", exc)
                if stream is not None:
                    _close_quietly(stream)
                raise RecordingError(MIC_UNAVAILABLE) from exc

            if self.artifact is not None:
                self.registry.release(self.artifact)
            with self._chunk_lock:
                self._chunks = []
            self._stream = stream
            self.encoding = encoding
            self.artifact = None
            self.duration_seconds = None
            self.started_at = self._clock()
            self._state = RecordingState.RECORDING
            LOGGER.info("Recording started (%s)", encoding.mime_type)
            return True

    def pause(self) -> bool:
        with self._lock:
            if self._state is not RecordingState.RECORDING:
                LOGGER.debug("pause() ignored in state %s", self._state.value)
                return False
            self._state = RecordingState.PAUSED
            try:
                self._stream.stop()
            except Exception:  # pragma: no cover - device failure
                LOGGER.exception("Failed to pause capture stream")
            LOGGER.info("Recording paused")
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state is not RecordingState.PAUSED:
                LOGGER.debug("resume() ignored in state %s", self._state.value)
                return False
            try:
                self._stream.start()
            except Exception as exc:
                LOGGER.warning("Failed to resume capture stream: %s", exc)
                raise RecordingError(MIC_UNAVAILABLE) from exc
            self._state = RecordingState.RECORDING
            LOGGER.info("Recording resumed")
            return True

    def stop(self) -> AudioArtifact | None:
        """Release the microphone and finalize the take; ignored unless capturing."""

        with self._lock:
            if self._state not in (RecordingState.RECORDING, RecordingState.PAUSED):
                LOGGER.debug("stop() ignored in state %s", self._state.value)
                return None

            stream, self._stream = self._stream, None
            try:
                stream.stop()
            except Exception:  # pragma: no cover - device failure
                LOGGER.exception("Failed to stop capture stream")
            _close_quietly(stream)
            stopped_at = self._clock()

            try:
                data = self._encode()
            except RuntimeError as exc:
                LOGGER.error("Failed to encode recording: %s", exc)
                with self._chunk_lock:
                    self._chunks = []
                self.started_at = None
                self._state = RecordingState.IDLE
                raise RecordingError(ENCODE_FAILED) from exc
            encoding = self.encoding or FALLBACK_ENCODING
            self.artifact = self.registry.create(data, encoding.mime_type, encoding.extension)
            self.duration_seconds = max(0.0, stopped_at - (self.started_at or stopped_at))
            self._state = RecordingState.STOPPED
            LOGGER.info(
                "Recording stopped: chunks=%d, bytes=%d, duration=%.1fs",
                self.chunk_count,
                len(data),
                self.duration_seconds,
            )
            return self.artifact

    def play(self) -> bool:
        artifact = self.artifact
        if artifact is None:
            return False
        self._player(artifact)
        return True

    def download(
        self,
        article_id: str,
        segment_id: str,
        lang: str,
        level: str,
        *,
        now: datetime | None = None,
    ) -> RecordingExport | None:
        artifact = self.artifact
        if artifact is None:
            return None
        filename = export_filename(article_id, segment_id, lang, level, artifact.extension, now)
        return RecordingExport(filename=filename, data=artifact.data, mime_type=artifact.mime_type)

    def elapsed_seconds(self) -> float:
        if self.duration_seconds is not None and self._state is RecordingState.STOPPED:
            return self.duration_seconds
        if self.started_at is None or self._state is RecordingState.IDLE:
            return 0.0
        return max(0.0, self._clock() - self.started_at)

    def status(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "mimeType": self.mime_type,
            "startedAt": self.started_at,
            "elapsedSeconds": round(self.elapsed_seconds(), 1),
            "durationSeconds": self.duration_seconds,
            "artifactUrl": self.artifact.url if self.artifact else None,
        }

    def _on_audio(self, indata, _frames, _time_info, status) -> None:
        if status:
            LOGGER.warning("Audio callback status: %s", status)
        if self._state is not RecordingState.RECORDING:
            return
        with self._chunk_lock:
            self._chunks.append(np.array(indata, dtype=np.float32, copy=True))

    def _encode(self) -> bytes:
        with self._chunk_lock:
            chunks = list(self._chunks)
        if chunks:
            frames = np.concatenate(chunks, axis=0)
        else:
            frames = np.zeros((0, self.channels), dtype=np.float32)

        encoding = self.encoding or FALLBACK_ENCODING
        try:
            return _write(frames, self.samplerate, encoding)
        except RuntimeError as exc:
            if encoding == FALLBACK_ENCODING:
                raise
            LOGGER.warning("Encoding as %s failed (%s); falling back to WAV", encoding.mime_type, exc)
            self.encoding = FALLBACK_ENCODING
            return _write(frames, self.samplerate, FALLBACK_ENCODING)


def _write(frames: np.ndarray, samplerate: int, encoding: CaptureEncoding) -> bytes:
    buffer = io.BytesIO()
    sf.write(buffer, frames, samplerate, format=encoding.format, subtype=encoding.subtype)
    return buffer.getvalue()


def _close_quietly(stream: Any) -> None:
    try:
        stream.close()
    except Exception:  # pragma: no cover - best effort cleanup
        LOGGER.warning("Failed to close capture stream")


__all__ = [
    "ENCODING_PREFERENCES",
    "CaptureEncoding",
    "RecordingError",
    "RecordingExport",
    "RecordingSession",
    "RecordingState",
    "export_filename",
    "negotiate_encoding",
]
