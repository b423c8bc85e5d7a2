"""Configuration helpers shared by the web API and the engine."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
import json
import logging
import os
from typing import Any, Mapping

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path(os.environ.get("NEWSREADER_HOME", Path.home() / ".newsreader"))
SETTINGS_PATH = CONFIG_DIR / "settings.json"
GLOSSARY_KEY = "nt_glossary"

UI_LANGUAGES = ("en", "ja")
LEVELS = ("JHS", "HS")


@dataclass(slots=True)
class Settings:
    """Runtime configuration for lookups, synthesis and exports."""

    ui_language: str = "en"
    level: str = "JHS"
    en_voice: str = "en-US-JennyNeural"
    ja_voice: str = "ja-JP-NanamiNeural"
    lookup_model: str = "gpt-4o-mini"
    output_format: str = "audio-24khz-48kbitrate-mono-mp3"

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Settings":
        """Create :class:`Settings` from any mapping."""
        defaults = cls()
        return cls(
            ui_language=_coerce_choice(payload.get("ui_language", payload.get("uiLang")), UI_LANGUAGES, "en"),
            level=_coerce_choice(payload.get("level"), LEVELS, "JHS"),
            en_voice=str(payload.get("en_voice") or defaults.en_voice),
            ja_voice=str(payload.get("ja_voice") or defaults.ja_voice),
            lookup_model=str(payload.get("lookup_model") or defaults.lookup_model),
            output_format=str(payload.get("output_format") or defaults.output_format),
        )

    def to_mapping(self) -> dict[str, Any]:
        """Serialize to a mapping suitable for JSON dumps."""
        return asdict(self)

    def voice_for(self, lang: str) -> str:
        return self.ja_voice if lang == "ja" else self.en_voice


def config_dir() -> Path:
    """Return the data directory, honouring a late ``NEWSREADER_HOME`` override."""

    override = os.environ.get("NEWSREADER_HOME")
    return Path(override) if override else CONFIG_DIR


def glossary_path() -> Path:
    return config_dir() / f"{GLOSSARY_KEY}.json"


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from disk, falling back to defaults on any problem."""

    settings_path = path or config_dir() / SETTINGS_PATH.name
    try:
        raw = settings_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        LOGGER.debug("No settings.json found at %s; using defaults", settings_path)
        return Settings()
    except OSError as exc:  # pragma: no cover - filesystem failure
        LOGGER.warning("Failed reading settings at %s: %s", settings_path, exc)
        return Settings()

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        LOGGER.warning("Invalid JSON in %s: %s", settings_path, exc)
        return Settings()
    if not isinstance(payload, dict):
        LOGGER.warning("Ignoring non-object settings payload in %s", settings_path)
        return Settings()

    return Settings.from_mapping(payload)


def save_settings(settings: Settings, path: Path | None = None) -> None:
    """Persist settings to disk in JSON format."""

    settings_path = path or config_dir() / SETTINGS_PATH.name
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(settings.to_mapping(), indent=2, sort_keys=True)
    settings_path.write_text(payload, encoding="utf-8")
    LOGGER.debug("Saved settings to %s", settings_path)


def _coerce_choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    if value in (None, "", "default"):
        return default
    text = str(value)
    return text if text in choices else default


__all__ = [
    "Settings",
    "load_settings",
    "save_settings",
    "config_dir",
    "glossary_path",
    "CONFIG_DIR",
    "SETTINGS_PATH",
    "GLOSSARY_KEY",
    "UI_LANGUAGES",
    "LEVELS",
]
