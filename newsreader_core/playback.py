"""Read-aloud requests triggered from the reader (selection, definition, model speech)."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping

from .audio import AudioArtifact, play_artifact
from .models import Failure, LookupResult
from .services.tts import SpeechSynthesisClient
from .tokens import RequestGuard

LOGGER = logging.getLogger(__name__)

MODEL_SPEECH_PARTS = ("greeting", "lead", "summary", "body", "signoff")


class PlaybackKind(str, Enum):
    SELECTION = "selection"
    DEFINITION = "definition"
    MODEL_SPEECH = "model_speech"


@dataclass(frozen=True, slots=True)
class PlaybackTicket:
    kind: PlaybackKind
    token: int
    text: str
    lang: str
    artifact: AudioArtifact
    current: bool


def selection_text(term: str, result: LookupResult | None = None, query: str = "") -> str:
    """Text to pronounce for the selected or typed term."""

    candidates = [term, "" if result is None or isinstance(result, Failure) else result.term, query]
    for candidate in candidates:
        clean = (candidate or "").strip()
        if clean:
            return clean
    return ""


def definition_text(result: LookupResult | None, ui_lang: str, fallback: str = "") -> str:
    """Definition in the UI language, else the other language, else *fallback*."""

    if result is None or isinstance(result, Failure):
        return (fallback or "").strip()
    if ui_lang == "ja":
        ordered = (result.ja, result.def_en)
    else:
        ordered = (result.def_en, result.ja)
    for candidate in (*ordered, result.term, fallback):
        clean = (candidate or "").strip()
        if clean:
            return clean
    return ""


def model_speech_text(variant: Mapping[str, Any] | None) -> str:
    if not variant:
        return ""
    parts = [str(variant.get(key) or "").strip() for key in MODEL_SPEECH_PARTS]
    return " ".join(part for part in parts if part)


class PlaybackCoordinator:
    """Tracks in-flight synthesis per kind of read-aloud action.

    Requests are neither deduplicated nor mutually exclusive: two clicks give
    two synthesis calls and, with autoplay, overlapping audio. Only the newest
    request of each kind becomes the kind's current artifact.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesisClient,
        *,
        player: Callable[[AudioArtifact], Any] = play_artifact,
        autoplay: bool = True,
    ) -> None:
        self.synthesizer = synthesizer
        self.autoplay = autoplay
        self._player = player
        self._lock = threading.Lock()
        self._guards = {kind: RequestGuard() for kind in PlaybackKind}
        self._in_flight = {kind: 0 for kind in PlaybackKind}
        self._latest: dict[PlaybackKind, AudioArtifact] = {}

    def is_busy(self, kind: PlaybackKind) -> bool:
        with self._lock:
            return self._in_flight[kind] > 0

    def latest(self, kind: PlaybackKind) -> AudioArtifact | None:
        with self._lock:
            return self._latest.get(kind)

    def request(self, kind: PlaybackKind, text: str, lang: str) -> PlaybackTicket | None:
        """Synthesize *text*; returns ``None`` for empty text, raises on service errors."""

        clean = (text or "").strip()
        if not clean:
            return None

        guard = self._guards[kind]
        token = guard.issue()
        with self._lock:
            self._in_flight[kind] += 1
        try:
            artifact = self.synthesizer.synthesize(clean, lang)
        finally:
            with self._lock:
                self._in_flight[kind] -= 1

        current = guard.is_current(token)
        if current:
            with self._lock:
                previous = self._latest.get(kind)
                self._latest[kind] = artifact
            if previous is not None:
                self.synthesizer.registry.release(previous)
            if self.autoplay:
                self._player(artifact)
        else:
            LOGGER.debug("Discarding stale %s synthesis (token=%d)", kind.value, token)
            self.synthesizer.registry.release(artifact)
        return PlaybackTicket(kind=kind, token=token, text=clean, lang=lang, artifact=artifact, current=current)

    def play_selection(self, term: str, lang: str, result: LookupResult | None = None, query: str = "") -> PlaybackTicket | None:
        return self.request(PlaybackKind.SELECTION, selection_text(term, result, query), lang)

    def play_definition(self, result: LookupResult | None, ui_lang: str, fallback: str = "") -> PlaybackTicket | None:
        return self.request(PlaybackKind.DEFINITION, definition_text(result, ui_lang, fallback), ui_lang)

    def play_model_speech(self, variant: Mapping[str, Any] | None, lang: str) -> PlaybackTicket | None:
        return self.request(PlaybackKind.MODEL_SPEECH, model_speech_text(variant), lang)


__all__ = [
    "PlaybackCoordinator",
    "PlaybackKind",
    "PlaybackTicket",
    "definition_text",
    "model_speech_text",
    "selection_text",
]
