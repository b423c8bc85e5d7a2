"""In-memory audio artifacts and local playback."""

from __future__ import annotations

import io
import logging
import threading
import uuid
from dataclasses import dataclass, field

import numpy as np
import soundfile as sf

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AudioArtifact:
    """Opaque handle to synthesized or recorded audio held by a registry."""

    data: bytes
    mime_type: str
    extension: str
    artifact_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def url(self) -> str:
        return f"/api/artifacts/{self.artifact_id}"

    def __len__(self) -> int:
        return len(self.data)


class ArtifactRegistry:
    """Owns artifacts until released, much like object URLs in a browser."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._artifacts: dict[str, AudioArtifact] = {}

    def create(self, data: bytes, mime_type: str, extension: str) -> AudioArtifact:
        artifact = AudioArtifact(data=bytes(data), mime_type=mime_type, extension=extension)
        with self._lock:
            self._artifacts[artifact.artifact_id] = artifact
        LOGGER.debug("Registered %s artifact %s (%d bytes)", mime_type, artifact.artifact_id, len(artifact))
        return artifact

    def get(self, artifact_id: str) -> AudioArtifact | None:
        with self._lock:
            return self._artifacts.get(artifact_id)

    def release(self, artifact: AudioArtifact | str | None) -> bool:
        if artifact is None:
            return False
        artifact_id = artifact if isinstance(artifact, str) else artifact.artifact_id
        with self._lock:
            removed = self._artifacts.pop(artifact_id, None)
        if removed is not None:
            LOGGER.debug("Released artifact %s", artifact_id)
        return removed is not None

    def __contains__(self, artifact_id: object) -> bool:
        with self._lock:
            return artifact_id in self._artifacts

    def __len__(self) -> int:
        with self._lock:
            return len(self._artifacts)


def decode_artifact(artifact: AudioArtifact) -> tuple[np.ndarray, int]:
    """Decode an artifact to float32 frames, using pydub for formats libsndfile lacks."""

    try:
        data, samplerate = sf.read(io.BytesIO(artifact.data), dtype="float32")
        return data, samplerate
    except sf.LibsndfileError:
        LOGGER.debug("libsndfile could not decode %s; falling back to pydub", artifact.mime_type)

    from pydub import AudioSegment

    segment = AudioSegment.from_file(io.BytesIO(artifact.data), format=artifact.extension)
    samples = np.array(segment.get_array_of_samples(), dtype=np.float32)
    samples /= float(1 << (8 * segment.sample_width - 1))
    if segment.channels > 1:
        samples = samples.reshape(-1, segment.channels)
    return samples, segment.frame_rate


def play_artifact(artifact: AudioArtifact) -> threading.Thread:
    """Play *artifact* on the default output device in a background thread.

    Each call opens its own output stream, so concurrent calls overlap.
    """

    data, samplerate = decode_artifact(artifact)
    if data.ndim == 1:
        data = data.reshape(-1, 1)

    def run() -> None:
        import sounddevice as sd

        idx = 0

        def callback(outdata, frames, _time_info, status) -> None:
            nonlocal idx
            if status:
                LOGGER.warning("Playback status: %s", status)
            chunk = data[idx : idx + frames]
            outdata[: len(chunk)] = chunk
            if len(chunk) < frames:
                outdata[len(chunk) :] = 0
                raise sd.CallbackStop()
            idx += frames

        finished = threading.Event()
        try:
            with sd.OutputStream(
                samplerate=samplerate,
                channels=data.shape[1],
                callback=callback,
                finished_callback=finished.set,
            ):
                finished.wait()
        except Exception:  # pragma: no cover - device failure
            LOGGER.exception("Playback of artifact %s failed", artifact.artifact_id)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


__all__ = ["ArtifactRegistry", "AudioArtifact", "decode_artifact", "play_artifact"]
