"""Text-to-speech via the Azure Speech REST endpoint."""

from __future__ import annotations

import logging
from typing import Callable, Final
from xml.sax.saxutils import escape

import requests

from ..audio import ArtifactRegistry, AudioArtifact
from ..config import Settings
from ._client import AzureSpeechCredentials, get_azure_credentials, get_http_session

LOGGER = logging.getLogger(__name__)

TTS_URL_TEMPLATE: Final[str] = "https://{region}.tts.speech.microsoft.com/cognitiveservices/v1"
XML_LANGS: Final[dict[str, str]] = {"en": "en-US", "ja": "ja-JP"}
DEFAULT_TIMEOUT: Final[float] = 30.0
SSML_TEMPLATE: Final[str] = '<speak version="1.0" xml:lang="{xml_lang}"><voice name="{voice}">{text}</voice></speak>'


class SynthesisError(RuntimeError):
    """Raised when the synthesis service cannot produce audio."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def build_ssml(text: str, lang: str, voice: str) -> str:
    """Wrap *text* in SSML, escaping markup characters."""

    xml_lang = XML_LANGS.get(lang, XML_LANGS["en"])
    escaped = escape(text, {'"': "&quot;", "'": "&apos;"})
    return SSML_TEMPLATE.format(xml_lang=xml_lang, voice=escape(voice, {'"': "&quot;"}), text=escaped)


class SpeechSynthesisClient:
    """Stateless text-to-speech client; every call is an independent request."""

    def __init__(
        self,
        registry: ArtifactRegistry | None = None,
        settings: Settings | None = None,
        *,
        session: requests.Session | None = None,
        credentials: Callable[[], AzureSpeechCredentials] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.registry = registry if registry is not None else ArtifactRegistry()
        self.settings = settings or Settings()
        self._session = session
        self._credentials = credentials or (lambda: get_azure_credentials("tts"))
        self._timeout = timeout

    def synthesize_bytes(self, text: str, lang: str = "en") -> bytes:
        clean = (text or "").strip()
        if not clean:
            raise ValueError("Cannot generate speech for empty text")

        creds = self._credentials()
        voice = self.settings.voice_for(lang)
        url = TTS_URL_TEMPLATE.format(region=creds.region)
        LOGGER.info("Synthesizing %d characters with voice %s", len(clean), voice)
        session = self._session or get_http_session()
        try:
            response = session.post(
                url,
                data=build_ssml(clean, lang, voice).encode("utf-8"),
                headers={
                    "Ocp-Apim-Subscription-Key": creds.key,
                    "Content-Type": "application/ssml+xml",
                    "X-Microsoft-OutputFormat": self.settings.output_format,
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            LOGGER.error("Synthesis request failed: %s", exc)
            raise SynthesisError(f"Azure TTS request failed: {exc}") from exc

        if response.status_code >= 400:
            LOGGER.error("Synthesis returned HTTP %s", response.status_code)
            raise SynthesisError(
                f"Azure TTS error {response.status_code}: {response.text}",
                status=response.status_code,
            )
        return response.content

    def synthesize(self, text: str, lang: str = "en") -> AudioArtifact:
        audio = self.synthesize_bytes(text, lang)
        return self.registry.create(audio, "audio/mpeg", "mp3")


def synthesize_speech(text: str, lang: str = "en", settings: Settings | None = None) -> bytes:
    """Generate MP3 audio for *text* in *lang* using the configured voice."""

    return SpeechSynthesisClient(settings=settings).synthesize_bytes(text, lang)


__all__ = ["SpeechSynthesisClient", "SynthesisError", "build_ssml", "synthesize_speech"]
