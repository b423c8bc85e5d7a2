"""Service layer: term lookup, speech synthesis and transcription."""

from .lexicon import LocalLexiconMatcher
from .lookup import (
    EMPTY_QUERY,
    LookupOrchestrator,
    LookupServiceError,
    RemoteLookupClient,
    parse_lookup_content,
)
from .stt import (
    ALLOWED_MIME_TYPES,
    MAX_AUDIO_DURATION_SECONDS,
    TranscriptionError,
    extract_transcript,
    prepare_wav,
    transcribe,
)
from .text_utils import normalize_term
from .tts import SpeechSynthesisClient, SynthesisError, build_ssml, synthesize_speech

__all__ = [
    "ALLOWED_MIME_TYPES",
    "EMPTY_QUERY",
    "MAX_AUDIO_DURATION_SECONDS",
    "LocalLexiconMatcher",
    "LookupOrchestrator",
    "LookupServiceError",
    "RemoteLookupClient",
    "SpeechSynthesisClient",
    "SynthesisError",
    "TranscriptionError",
    "build_ssml",
    "extract_transcript",
    "normalize_term",
    "parse_lookup_content",
    "prepare_wav",
    "synthesize_speech",
    "transcribe",
]
