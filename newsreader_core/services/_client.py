"""Shared helpers for acquiring API clients and service credentials."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

import requests
from dotenv import load_dotenv
from openai import OpenAI

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AzureSpeechCredentials:
    key: str
    region: str


@lru_cache(maxsize=1)
def get_openai_client() -> OpenAI:
    """Return a cached OpenAI client configured via environment variables.

    Retries are disabled: a failed lookup is reported straight back to the
    learner, who decides whether to try again.
    """

    load_dotenv()
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise RuntimeError("NO_OPENAI_KEY")
    LOGGER.debug("Initialising OpenAI client")
    return OpenAI(api_key=api_key, max_retries=0)


def get_azure_credentials(purpose: str = "speech") -> AzureSpeechCredentials:
    """Resolve Azure Speech credentials, preferring ``AZURE_TTS_*`` for synthesis."""

    load_dotenv()
    key = os.getenv("AZURE_SPEECH_KEY")
    region = os.getenv("AZURE_SPEECH_REGION")
    if purpose == "tts":
        key = os.getenv("AZURE_TTS_KEY") or key
        region = os.getenv("AZURE_TTS_REGION") or region
    if not key or not region:
        raise RuntimeError("Missing AZURE_SPEECH_* environment configuration")
    return AzureSpeechCredentials(key=key, region=region)


@lru_cache(maxsize=1)
def get_http_session() -> requests.Session:
    LOGGER.debug("Initialising shared HTTP session")
    return requests.Session()


__all__ = ["AzureSpeechCredentials", "get_azure_credentials", "get_http_session", "get_openai_client"]
