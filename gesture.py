"""Hotkey gesture resolution.

Dual-mode hotkey handling:

- Hold the hotkey for at least ``HOLD_THRESHOLD_MS``: push-to-talk, the
  release stops recording.
- Quick tap (shorter than the threshold): toggle mode, the next press stops.

``resolve_gesture`` is pure. The caller owns the flags and applies any
mutation under the same lock it used to read them.
"""

from __future__ import annotations

from typing import Optional

from models import Action

HOLD_THRESHOLD_MS = 300.0


def resolve_gesture(
    pressed: bool,
    is_idle: bool,
    is_recording: bool,
    toggle_shortcut_held: bool,
    toggle_active: bool,
    held_ms: Optional[float],
) -> Optional[Action]:
    if pressed:
        if toggle_shortcut_held:
            # OS key-repeat while the key is physically down
            return None
        if toggle_active:
            return Action.STOP
        if is_idle:
            return Action.START
        return None

    if is_recording and not toggle_active:
        # Unknown hold time counts as a long hold so recording never runs on unnoticed.
        if held_ms is None or held_ms >= HOLD_THRESHOLD_MS:
            return Action.STOP
        return Action.TOGGLE_ACTIVATED
    return None
