"""Application entrypoint."""

from __future__ import annotations

import logging
import threading
import time

from auto_paste import ClipboardPasteService
from config import JsonConfigStore, config_dir
from hotkey import GlobalHotkeyAdapter
from log_context import LogContext
from models import GestureEvent, SessionStatus
from recorder import SoundDeviceCapture
from session_controller import SessionController
from transcriber import DashscopeTranscriber


class App:
    def __init__(self, log_context: LogContext) -> None:
        self._log_context = log_context
        self.log = log_context.child("app")
        self.config_store = JsonConfigStore()
        self._stopped = threading.Event()

        self.controller = SessionController(
            capture=SoundDeviceCapture(logger=log_context.child("audio")),
            transcriber=DashscopeTranscriber(
                api_key=self.config_store.get_api_key(),
                logger=log_context.child("transcriber"),
            ),
            injector=ClipboardPasteService(logger=log_context.child("paste")),
            config=self.config_store,
            logger=log_context.child("session"),
            on_state_change=self._on_state_change,
            on_error=self._on_error,
            on_result=self._on_result,
            on_toggle_mode=self._on_toggle_mode,
        )
        self.hotkey = GlobalHotkeyAdapter(hotkey=self.config_store.get_hotkey())

    # ------------------------------------------------------------------
    # Callbacks (called from listener and worker threads)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionStatus, to_state: SessionStatus) -> None:
        self.log.info("status: %s -> %s", from_state.value, to_state.value)

    def _on_error(self, code: str, message: str) -> None:
        self.log.warning("error shown to user: %s: %s", code, message)

    def _on_result(self, text: str) -> None:
        self.log.info("delivered %d chars", len(text))

    def _on_toggle_mode(self) -> None:
        self.log.info("toggle mode: tap the hotkey again to stop")

    # ------------------------------------------------------------------
    # Hotkey handlers
    # ------------------------------------------------------------------

    def _on_hotkey_press(self) -> None:
        self.controller.handle_event(GestureEvent(pressed=True, timestamp=time.monotonic()))

    def _on_hotkey_release(self) -> None:
        self.controller.handle_event(GestureEvent(pressed=False, timestamp=time.monotonic()))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> int:
        try:
            self.hotkey.start(
                on_press=self._on_hotkey_press,
                on_release=self._on_hotkey_release,
            )
        except (RuntimeError, ValueError) as exc:
            self.log.error("hotkey disabled: %s", exc)
            return 1
        self.log.info("ready, hold or tap %s to dictate", self.config_store.get_hotkey())
        try:
            self._stopped.wait()
        except KeyboardInterrupt:
            pass
        finally:
            self.quit()
        return 0

    def quit(self) -> None:
        self.hotkey.stop()
        self.controller.cancel_session("app quit")
        self._stopped.set()


def main() -> int:
    log_context = LogContext(log_dir=config_dir(), level=logging.INFO)
    with log_context:
        app = App(log_context)
        return app.run()


if __name__ == "__main__":
    raise SystemExit(main())
