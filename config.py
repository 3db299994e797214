"""Simple JSON-based config store."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

from models import RecordingMode, ReplacementRule

DEFAULT_HOTKEY = "ctrl+shift+space"
DEFAULT_LANGUAGE = "en"
DEFAULT_FORMATTING_LEVEL = "basic"


def config_dir() -> Path:
    return Path.home() / ".holdtalk"


def normalize_recording_mode(mode: str) -> Optional[str]:
    normalized = mode.strip().lower()
    if normalized in (RecordingMode.HOLD.value, RecordingMode.TOGGLE.value):
        return normalized
    return None


def sanitize_recording_mode(mode: str) -> str:
    return normalize_recording_mode(mode) or RecordingMode.HOLD.value


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or config_dir() / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        return str(self._read_all().get("api_key", ""))

    def set_api_key(self, key: str) -> None:
        self._update("api_key", key.strip())

    def get_hotkey(self) -> str:
        return str(self._read_all().get("hotkey", DEFAULT_HOTKEY))

    def set_hotkey(self, hotkey: str) -> None:
        self._update("hotkey", hotkey)

    def get_language(self) -> str:
        return str(self._read_all().get("language", DEFAULT_LANGUAGE))

    def set_language(self, language: str) -> None:
        self._update("language", language)

    def get_mode(self) -> str:
        return sanitize_recording_mode(str(self._read_all().get("mode", RecordingMode.HOLD.value)))

    def set_mode(self, mode: str) -> None:
        normalized = normalize_recording_mode(mode)
        if normalized is None:
            raise ValueError("mode must be 'hold' or 'toggle'")
        self._update("mode", normalized)

    def get_formatting_level(self) -> str:
        return str(self._read_all().get("formatting_level", DEFAULT_FORMATTING_LEVEL))

    def set_formatting_level(self, level: str) -> None:
        self._update("formatting_level", level)

    def get_dictionary_words(self) -> list[str]:
        words = self._read_all().get("dictionary_words", [])
        if not isinstance(words, list):
            return []
        return [str(w) for w in words if str(w).strip()]

    def set_dictionary_words(self, words: list[str]) -> None:
        self._update("dictionary_words", list(words))

    def get_replacements(self) -> list[ReplacementRule]:
        entries = self._read_all().get("replacements", [])
        if not isinstance(entries, list):
            return []
        rules = []
        for entry in entries:
            if not isinstance(entry, dict) or "from" not in entry or "to" not in entry:
                continue
            rules.append(ReplacementRule(source=str(entry["from"]), target=str(entry["to"])))
        return rules

    def set_replacements(self, rules: list[ReplacementRule]) -> None:
        self._update(
            "replacements",
            [{"from": rule.source, "to": rule.target} for rule in rules],
        )

    def get_prompt_mode_enabled(self) -> bool:
        return bool(self._read_all().get("prompt_mode_enabled", False))

    def set_prompt_mode_enabled(self, enabled: bool) -> None:
        self._update("prompt_mode_enabled", bool(enabled))

    def _update(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
