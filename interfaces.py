"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Callable, Protocol, Sequence

import numpy as np

from models import InjectionResult, ReplacementRule

LevelCallback = Callable[[float], None]


class AudioCapture(Protocol):
    def start(self, on_level: LevelCallback) -> None: ...

    def stop(self) -> np.ndarray: ...

    @property
    def is_active(self) -> bool: ...


class Transcriber(Protocol):
    def is_ready(self) -> bool: ...

    def transcribe(
        self,
        samples: np.ndarray,
        language: str,
        glossary: Sequence[str] = (),
    ) -> str: ...


class Injector(Protocol):
    def paste_text(self, text: str) -> InjectionResult: ...


class Restructurer(Protocol):
    def restructure(self, text: str) -> str: ...


class ConfigStore(Protocol):
    def get_hotkey(self) -> str: ...

    def get_language(self) -> str: ...

    def get_mode(self) -> str: ...

    def get_formatting_level(self) -> str: ...

    def get_dictionary_words(self) -> list[str]: ...

    def get_replacements(self) -> list[ReplacementRule]: ...

    def get_prompt_mode_enabled(self) -> bool: ...
