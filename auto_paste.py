"""Text injection through the clipboard and a synthetic paste keystroke."""

from __future__ import annotations

import logging
import sys
import time
from typing import Optional

from errors import NO_ACTIVE_TARGET
from models import InjectionResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore


class ClipboardPasteService:
    def __init__(
        self,
        sync_delay_s: float = 0.05,
        restore_delay_s: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sync_delay_s = sync_delay_s
        self._restore_delay_s = restore_delay_s
        self._log = logger or logging.getLogger(__name__)

    def _paste_modifier(self) -> object:
        return Key.cmd if sys.platform == "darwin" else Key.ctrl

    def paste_text(self, text: str) -> InjectionResult:
        if not text.strip():
            return InjectionResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return InjectionResult(
                success=False,
                reason="clipboard/keyboard dependency missing",
                clipboard_restored=False,
            )

        old_clip: str | None = None
        restored = False
        try:
            old_clip = pyperclip.paste()
            pyperclip.copy(text)
            time.sleep(self._sync_delay_s)
            keyboard = Controller()
            modifier = self._paste_modifier()
            keyboard.press(modifier)
            keyboard.press("v")
            keyboard.release("v")
            keyboard.release(modifier)
            time.sleep(self._restore_delay_s)
            pyperclip.copy(old_clip)
            return InjectionResult(success=True, reason="ok", clipboard_restored=True)
        except Exception as exc:
            self._log.warning("paste: failed: %s", exc)
            try:
                if old_clip is not None:
                    pyperclip.copy(old_clip)
                    restored = True
            except Exception as restore_exc:
                self._log.warning("paste: clipboard restore failed: %s", restore_exc)
                restored = False
            return InjectionResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=restored,
            )
