"""Global hotkey listener based on pynput.

Every press of the configured combo is forwarded, OS key-repeat included;
repeat suppression is the gesture resolver's job.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

_TOKEN_ALIASES = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "shift": "shift",
    "alt": "alt",
    "option": "alt",
    "cmd": "cmd",
    "meta": "cmd",
    "super": "cmd",
    "space": "space",
}

_PYNPUT_KEYS = {
    "ctrl": ("ctrl", "ctrl_l", "ctrl_r"),
    "shift": ("shift", "shift_l", "shift_r"),
    "alt": ("alt", "alt_l", "alt_r", "alt_gr"),
    "cmd": ("cmd", "cmd_l", "cmd_r"),
    "space": ("space",),
}


def parse_hotkey(combo: str) -> list[str]:
    """Parse "ctrl+shift+space" into canonical key names."""
    parts = []
    for raw in combo.split("+"):
        token = raw.strip().lower()
        if not token:
            continue
        name = _TOKEN_ALIASES.get(token)
        if name is None:
            raise ValueError(f"unsupported key token: {token}")
        if name not in parts:
            parts.append(name)
    if not parts:
        raise ValueError("empty hotkey")
    return parts


class GlobalHotkeyAdapter:
    def __init__(self, hotkey: str = "ctrl+shift+space") -> None:
        self._names = parse_hotkey(hotkey)
        self._listener: Optional[object] = None
        self._down: set[str] = set()
        self._active = False
        self._lock = threading.Lock()
        self._key_map: dict[object, str] = {}

    def _build_key_map(self) -> dict[object, str]:
        key_map: dict[object, str] = {}
        for name in self._names:
            for attr in _PYNPUT_KEYS[name]:
                key = getattr(keyboard.Key, attr, None)
                if key is not None:
                    key_map[key] = name
        return key_map

    def start(self, on_press: Callable[[], None], on_release: Callable[[], None]) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        self._key_map = self._build_key_map()

        def _on_press(key: object) -> None:
            name = self._key_map.get(key)
            if name is None:
                return
            with self._lock:
                self._down.add(name)
                if len(self._down) != len(self._names):
                    return
                self._active = True
            on_press()

        def _on_release(key: object) -> None:
            name = self._key_map.get(key)
            if name is None:
                return
            with self._lock:
                self._down.discard(name)
                if not self._active:
                    return
                self._active = False
            on_release()

        self._listener = keyboard.Listener(on_press=_on_press, on_release=_on_release)
        self._listener.start()

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        with self._lock:
            self._down.clear()
            self._active = False
