"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

DEVICE_UNAVAILABLE = "DEVICE_UNAVAILABLE"
UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
DEVICE_BUSY = "DEVICE_BUSY"
LOCK_UNAVAILABLE = "LOCK_UNAVAILABLE"
MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
TRANSCRIPTION_FAILED = "TRANSCRIPTION_FAILED"
AUTH_FAILED = "AUTH_FAILED"
NETWORK_ERROR = "NETWORK_ERROR"
PERMISSION_DENIED = "PERMISSION_DENIED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"

ERROR_MESSAGES = {
    DEVICE_UNAVAILABLE: "No usable microphone was found.",
    UNSUPPORTED_FORMAT: "The microphone uses an unsupported sample format.",
    DEVICE_BUSY: "The microphone is busy or could not be opened.",
    LOCK_UNAVAILABLE: "Audio state is temporarily unavailable, please retry.",
    MODEL_UNAVAILABLE: "Transcription is not configured yet.",
    TRANSCRIPTION_FAILED: "Transcription failed.",
    AUTH_FAILED: "API key is invalid.",
    NETWORK_ERROR: "Network failed, please retry.",
    PERMISSION_DENIED: "Accessibility permission is required to paste text.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
}


class CaptureError(Exception):
    code = DEVICE_UNAVAILABLE


class DeviceUnavailable(CaptureError):
    code = DEVICE_UNAVAILABLE


class UnsupportedFormat(CaptureError):
    code = UNSUPPORTED_FORMAT


class DeviceBusy(CaptureError):
    code = DEVICE_BUSY


class LockUnavailable(CaptureError):
    code = LOCK_UNAVAILABLE


class PipelineStageFailure(Exception):
    """A transcription, restructuring or injection step failed."""

    def __init__(self, stage: str, code: str, message: str) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.code = code
        self.message = message


def user_message(code: str, detail: str = "") -> str:
    base = ERROR_MESSAGES.get(code, code)
    if detail:
        return f"{base} ({detail})"
    return base
