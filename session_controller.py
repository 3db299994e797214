"""State-machine based session orchestration.

Session state is a tagged value (``Idle``, ``Recording``, ``Processing``,
``Failed``) guarded by ``_lock``. Toggle-mode bookkeeping lives inside
``Recording``, so it disappears on any transition out of recording, whichever
path triggered it.

Lock order is ``_capture_lock`` then ``_lock``. The hotkey listener thread only
ever takes ``_lock`` and only for flag reads and writes; capture start/stop and
the transcription pipeline run on worker threads.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Optional, Sequence

import numpy as np

from errors import (
    DEVICE_UNAVAILABLE,
    MODEL_UNAVAILABLE,
    NO_ACTIVE_TARGET,
    PERMISSION_DENIED,
    TRANSCRIPTION_FAILED,
    CaptureError,
    PipelineStageFailure,
    user_message,
)
from formatter import apply_replacements, format_text
from gesture import resolve_gesture
from interfaces import AudioCapture, ConfigStore, Injector, Restructurer, Transcriber
from models import (
    Action,
    Failed,
    GestureEvent,
    Idle,
    Processing,
    Recording,
    SessionFlags,
    SessionState,
    SessionStatus,
    ToggleState,
)

# ~1 s at 16 kHz; shorter captures are dropped without transcribing
MIN_TRANSCRIBE_SAMPLES = 16000

StateCallback = Callable[[SessionStatus, SessionStatus], None]
LevelCallback = Callable[[float], None]
ErrorCallback = Callable[[str, str], None]
ResultCallback = Callable[[str], None]
Spawner = Callable[[Callable[[], object]], None]


def _spawn_thread(target: Callable[[], object]) -> None:
    threading.Thread(target=target, daemon=True).start()


class SessionController:
    def __init__(
        self,
        capture: AudioCapture,
        transcriber: Transcriber,
        injector: Injector,
        config: ConfigStore,
        restructurer: Optional[Restructurer] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
        spawn: Spawner = _spawn_thread,
        on_state_change: Optional[StateCallback] = None,
        on_level: Optional[LevelCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_result: Optional[ResultCallback] = None,
        on_toggle_mode: Optional[Callable[[], None]] = None,
    ) -> None:
        self._capture = capture
        self._transcriber = transcriber
        self._injector = injector
        self._config = config
        self._restructurer = restructurer
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock
        self._spawn = spawn
        self._on_state_change = on_state_change
        self._on_level = on_level
        self._on_error = on_error
        self._on_result = on_result
        self._on_toggle_mode = on_toggle_mode

        self._lock = threading.RLock()
        self._capture_lock = threading.RLock()
        self._session: SessionState = Idle()
        self._shortcut_held = False
        self._session_id = 0

    @property
    def state(self) -> SessionStatus:
        return self.get_status()

    def get_status(self) -> SessionStatus:
        with self._lock:
            return self._session.status

    @property
    def flags(self) -> SessionFlags:
        with self._lock:
            toggle = self._session.toggle if isinstance(self._session, Recording) else ToggleState()
            return SessionFlags(
                toggle_shortcut_held=self._shortcut_held,
                toggle_active=toggle.active,
                press_instant=toggle.press_instant,
            )

    # ------------------------------------------------------------------
    # Hotkey gestures (listener thread)
    # ------------------------------------------------------------------

    def handle_event(self, event: GestureEvent) -> Optional[Action]:
        return self.handle_gesture(event.pressed, event.timestamp)

    def handle_gesture(self, pressed: bool, timestamp: Optional[float] = None) -> Optional[Action]:
        now = self._clock() if timestamp is None else timestamp
        session_id = 0
        model_missing = False

        with self._lock:
            session = self._session
            toggle = session.toggle if isinstance(session, Recording) else None
            held_ms = None
            if toggle is not None and toggle.press_instant is not None:
                held_ms = (now - toggle.press_instant) * 1000.0

            action = resolve_gesture(
                pressed=pressed,
                is_idle=isinstance(session, Idle),
                is_recording=toggle is not None,
                toggle_shortcut_held=self._shortcut_held,
                toggle_active=toggle.active if toggle is not None else False,
                held_ms=held_ms,
            )
            self._shortcut_held = pressed

            if action is Action.START:
                if self._transcriber.is_ready():
                    session_id = self._begin_recording(press_instant=now)
                else:
                    model_missing = True
                    action = None
            elif action is Action.STOP:
                session_id = self._begin_processing()
            elif action is Action.TOGGLE_ACTIVATED and toggle is not None:
                self._session = replace(session, toggle=replace(toggle, active=True))

        if model_missing:
            self._emit_error(MODEL_UNAVAILABLE, user_message(MODEL_UNAVAILABLE))
            return None

        if action is Action.START:
            self._spawn(lambda: self._start_capture(session_id))
        elif action is Action.STOP:
            self._spawn(lambda: self._finish(session_id))
        elif action is Action.TOGGLE_ACTIVATED:
            self._log.info("hotkey: toggle mode active")
            if self._on_toggle_mode:
                self._on_toggle_mode()
        return action

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def start_session(self) -> bool:
        session_id = 0
        with self._lock:
            if not isinstance(self._session, Idle):
                return False
            ready = self._transcriber.is_ready()
            if ready:
                session_id = self._begin_recording(press_instant=None)

        if not ready:
            self._emit_error(MODEL_UNAVAILABLE, user_message(MODEL_UNAVAILABLE))
            return False
        return self._start_capture(session_id)

    def stop_session(self) -> str:
        with self._lock:
            if not isinstance(self._session, Recording):
                return ""
            session_id = self._begin_processing()
        return self._finish(session_id)

    def cancel_session(self, reason: str = "cancelled") -> bool:
        with self._capture_lock:
            with self._lock:
                if not isinstance(self._session, Recording):
                    return False
                session_id = self._session.session_id
                self._transition(Idle())
            self._safe_stop_capture()
        self._log.info("session %d: cancelled (%s)", session_id, reason)
        return True

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _start_capture(self, session_id: int) -> bool:
        with self._capture_lock:
            if self._live_session_id(Recording) != session_id:
                return False
            try:
                self._capture.start(self._handle_level)
            except Exception as exc:
                code = getattr(exc, "code", DEVICE_UNAVAILABLE)
                self._log.error("session %d: capture failed to start: %s", session_id, exc)
                self._fail(code, str(exc), session_id)
                return False
        self._log.info("session %d: recording", session_id)
        return True

    def _finish(self, session_id: int) -> str:
        try:
            text = self._run_pipeline(session_id)
        except PipelineStageFailure as exc:
            self._log.error("session %d: %s failed: %s", session_id, exc.stage, exc.message)
            self._fail(exc.code, exc.message, session_id)
            return ""
        except CaptureError as exc:
            self._log.error("session %d: capture failed to stop: %s", session_id, exc)
            self._fail(exc.code, str(exc), session_id)
            return ""
        except Exception as exc:
            self._log.exception("session %d: pipeline failed", session_id)
            self._fail(TRANSCRIPTION_FAILED, str(exc), session_id)
            return ""

        self._reset_to_idle(session_id)
        if text and self._on_result:
            self._on_result(text)
        return text

    def _run_pipeline(self, session_id: int) -> str:
        with self._capture_lock:
            if self._live_session_id(Processing) != session_id:
                self._log.info("session %d: superseded before capture stopped", session_id)
                return ""
            samples = self._capture.stop()

        if len(samples) == 0:
            self._log.info("session %d: no speech captured", session_id)
            return ""
        if len(samples) < MIN_TRANSCRIBE_SAMPLES:
            self._log.info(
                "session %d: recording too short (%d samples); skipping transcription",
                session_id,
                len(samples),
            )
            return ""

        language = self._config.get_language()
        glossary = self._config.get_dictionary_words()
        self._log.info("session %d: transcribing %d samples", session_id, len(samples))
        raw_text = self._transcribe(samples, language, glossary)
        self._log.info("session %d: transcription done, raw len=%d", session_id, len(raw_text))

        if self._config.get_formatting_level() == "basic":
            text = format_text(raw_text)
        else:
            text = raw_text.strip()
        text = apply_replacements(text, self._config.get_replacements())

        if not text.strip():
            self._log.info("session %d: empty transcript; skipping paste", session_id)
            return ""

        text = self._maybe_restructure(session_id, text)
        self._inject(session_id, text)
        return text

    def _transcribe(self, samples: np.ndarray, language: str, glossary: Sequence[str]) -> str:
        try:
            return self._transcriber.transcribe(samples, language, glossary)
        except PipelineStageFailure:
            raise
        except Exception as exc:
            raise PipelineStageFailure("transcription", TRANSCRIPTION_FAILED, str(exc)) from exc

    def _maybe_restructure(self, session_id: int, text: str) -> str:
        if self._restructurer is None or not self._config.get_prompt_mode_enabled():
            return text
        try:
            structured = self._restructurer.restructure(text)
        except Exception as exc:
            self._log.warning("session %d: prompt structuring failed, falling back: %s", session_id, exc)
            return text
        if not structured or not structured.strip():
            self._log.info("session %d: prompt structuring returned empty text, falling back", session_id)
            return text
        self._log.info("session %d: prompt structuring done, len=%d", session_id, len(structured))
        return structured

    def _inject(self, session_id: int, text: str) -> None:
        self._log.info("session %d: injecting text len=%d", session_id, len(text))
        try:
            result = self._injector.paste_text(text)
        except Exception as exc:
            raise PipelineStageFailure("injection", NO_ACTIVE_TARGET, str(exc)) from exc
        if not result.success:
            code = PERMISSION_DENIED if "permission" in result.reason.lower() else NO_ACTIVE_TARGET
            raise PipelineStageFailure("injection", code, result.reason)
        self._log.info("session %d: injection done", session_id)

    def _handle_level(self, level: float) -> None:
        if self._on_level:
            self._on_level(level)

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _begin_recording(self, press_instant: Optional[float]) -> int:
        self._session_id += 1
        self._transition(
            Recording(session_id=self._session_id, toggle=ToggleState(press_instant=press_instant))
        )
        return self._session_id

    def _begin_processing(self) -> int:
        session_id = self._session.session_id
        self._transition(Processing(session_id=session_id))
        return session_id

    def _live_session_id(self, *kinds: type) -> Optional[int]:
        with self._lock:
            session = self._session
            if isinstance(session, kinds or (Recording, Processing)):
                return session.session_id
            return None

    def _reset_to_idle(self, session_id: int) -> None:
        with self._lock:
            if self._live_session_id() == session_id:
                self._transition(Idle())

    def _fail(self, code: str, message: str, session_id: Optional[int] = None) -> None:
        """Route through ERROR back to IDLE and stop any lingering capture.

        Safe to call repeatedly. A failure reported by a session that has
        already been superseded leaves the live session alone.
        """
        with self._capture_lock:
            with self._lock:
                live = self._live_session_id()
                stale = session_id is not None and live is not None and live != session_id
                if not stale and not isinstance(self._session, Idle):
                    self._transition(Failed(message=message))
                    self._transition(Idle())
            if not stale:
                self._safe_stop_capture()

        if stale:
            self._log.warning("session %s: ignoring stale failure: %s", session_id, message)
            return
        self._emit_error(code, message)

    def _safe_stop_capture(self) -> None:
        try:
            self._capture.stop()
        except Exception as exc:
            self._log.warning("capture stop failed during reset: %s", exc)

    def _emit_error(self, code: str, message: str) -> None:
        self._log.error("%s: %s", code, message)
        if self._on_error:
            self._on_error(code, message)

    def _transition(self, to_state: SessionState) -> None:
        from_status = self._session.status
        self._session = to_state
        if from_status != to_state.status and self._on_state_change:
            self._on_state_change(from_status, to_state.status)
