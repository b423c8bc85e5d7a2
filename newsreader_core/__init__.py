"""Core engine for the news reader: term lookup, glossary, speech and recording."""

from .config import Settings, load_settings, save_settings
from .glossary import GlossaryStore
from .models import Failure, GlossaryEntry, LocalHit, RemoteHit, VocabularyEntry
from .playback import PlaybackCoordinator, PlaybackKind
from .recording import RecordingError, RecordingSession, RecordingState
from .services.lookup import LookupOrchestrator
from .services.text_utils import normalize_term

__all__ = [
    "Failure",
    "GlossaryEntry",
    "GlossaryStore",
    "LocalHit",
    "LookupOrchestrator",
    "PlaybackCoordinator",
    "PlaybackKind",
    "RecordingError",
    "RecordingSession",
    "RecordingState",
    "RemoteHit",
    "Settings",
    "VocabularyEntry",
    "load_settings",
    "normalize_term",
    "save_settings",
]
