"""Tests for SoundDeviceCapture."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from errors import DeviceBusy, DeviceUnavailable, LockUnavailable, UnsupportedFormat
import recorder
from recorder import SoundDeviceCapture


# ---------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------

def _device_info(sample_rate: int = 16000, channels: int = 1) -> dict:
    return {
        "name": "Fake Mic",
        "index": 3,
        "max_input_channels": channels,
        "default_samplerate": float(sample_rate),
    }


class _FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def _loud_chunk(n: int = 1600, channels: int = 1, value: float = 0.5) -> np.ndarray:
    return np.full((n, channels), value, dtype=np.float32)


def _make_capture(mock_sd: MagicMock, **kwargs) -> SoundDeviceCapture:  # noqa: ANN003
    info = kwargs.pop("info", _device_info())
    mock_sd.query_devices.return_value = info
    mock_sd.InputStream.return_value = MagicMock()
    return SoundDeviceCapture(**kwargs)


# ---------------------------------------------------------------
# Device cache
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_device_is_cached_at_construction(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, info=_device_info(48000, 2))

    assert capture.device_config is not None
    assert capture.device_config.sample_rate == 48000
    assert capture.device_config.channels == 2
    mock_sd.query_devices.assert_called_once_with(kind="input")


@patch("recorder.sd")
def test_start_refreshes_missing_device_cache(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)
    capture.invalidate_device()

    capture.start(lambda level: None)

    assert mock_sd.query_devices.call_count == 2
    capture.stop()


@patch("recorder.sd")
def test_start_without_default_device_raises(mock_sd: MagicMock) -> None:
    mock_sd.query_devices.side_effect = ValueError("No input device matching ''")
    capture = SoundDeviceCapture()

    with pytest.raises(DeviceUnavailable):
        capture.start(lambda level: None)
    mock_sd.InputStream.assert_not_called()


@patch("recorder.sd")
def test_unsupported_dtype_raises(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, dtype="int32")

    with pytest.raises(UnsupportedFormat):
        capture.start(lambda level: None)


@patch("recorder.sd")
def test_stream_open_failure_is_device_busy(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)
    mock_sd.InputStream.side_effect = RuntimeError("Device unavailable [PaErrorCode -9985]")
    levels: list[float] = []

    with pytest.raises(DeviceBusy):
        capture.start(levels.append)
    assert capture.is_active is False
    assert capture._on_level is None


def test_start_raises_without_sounddevice(monkeypatch) -> None:  # noqa: ANN001
    import recorder as rec_mod
    monkeypatch.setattr(rec_mod, "sd", None)

    capture = SoundDeviceCapture()
    with pytest.raises(DeviceUnavailable, match="sounddevice is not installed"):
        capture.start(lambda level: None)


# ---------------------------------------------------------------
# Basic start / stop
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_start_creates_stream_and_runs(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)
    mock_stream = mock_sd.InputStream.return_value

    capture.start(lambda level: None)

    mock_sd.InputStream.assert_called_once()
    mock_stream.start.assert_called_once()
    assert capture.is_active is True

    capture.stop()
    mock_stream.stop.assert_called_once()
    mock_stream.close.assert_called_once()
    assert capture.is_active is False


@patch("recorder.sd")
def test_start_is_idempotent(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)

    capture.start(lambda level: None)
    capture.start(lambda level: None)

    assert mock_sd.InputStream.call_count == 1
    capture.stop()


@patch("recorder.sd")
def test_stop_without_session_returns_empty(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)
    out = capture.stop()
    assert len(out) == 0


# ---------------------------------------------------------------
# Callback accumulation and output shaping
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_callback_accumulates_and_stop_returns_trimmed(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)
    capture.start(lambda level: None)

    silence = np.zeros((960, 1), dtype=np.float32)
    capture._on_audio(silence, frames=960, time_info=None, status=None)
    capture._on_audio(_loud_chunk(960), frames=960, time_info=None, status=None)

    out = capture.stop()
    assert len(out) == 960
    assert np.all(out == 0.5)


@patch("recorder.sd")
def test_stop_resamples_to_target_rate(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, info=_device_info(48000, 2))
    capture.start(lambda level: None)

    frames = np.zeros((4800, 2), dtype=np.float32)
    frames[:, 0] = 0.5  # second channel stays silent and must be ignored
    capture._on_audio(frames, frames=4800, time_info=None, status=None)

    out = capture.stop()
    assert len(out) == 1600
    assert np.allclose(out, 0.5)


@patch("recorder.sd")
def test_int16_chunks_are_normalized(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, dtype="int16")
    capture.start(lambda level: None)

    chunk = np.full((960, 1), 16384, dtype=np.int16)
    capture._on_audio(chunk, frames=960, time_info=None, status=None)

    out = capture.stop()
    assert np.allclose(out, 16384 / 32767)


@patch("recorder.sd")
def test_buffer_is_cleared_between_sessions(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd)

    capture.start(lambda level: None)
    capture._on_audio(_loud_chunk(960), frames=960, time_info=None, status=None)
    assert len(capture.stop()) == 960

    capture.start(lambda level: None)
    assert len(capture.stop()) == 0


# ---------------------------------------------------------------
# Level metering
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_level_callback_is_throttled(mock_sd: MagicMock) -> None:
    clock = _FakeClock()
    capture = _make_capture(mock_sd, clock=clock)
    levels: list[float] = []
    capture.start(levels.append)

    capture._on_audio(_loud_chunk(160), frames=160, time_info=None, status=None)
    assert levels == []  # less than 50 ms since start

    clock.now += 0.06
    capture._on_audio(_loud_chunk(160), frames=160, time_info=None, status=None)
    clock.now += 0.01
    capture._on_audio(_loud_chunk(160), frames=160, time_info=None, status=None)
    assert levels == [pytest.approx(0.5)]

    clock.now += 0.06
    capture._on_audio(_loud_chunk(160, value=2.0), frames=160, time_info=None, status=None)
    assert levels[-1] == 1.0  # clamped
    capture.stop()


@patch("recorder.sd")
def test_callback_after_stop_does_not_emit_levels(mock_sd: MagicMock) -> None:
    clock = _FakeClock()
    capture = _make_capture(mock_sd, clock=clock)
    levels: list[float] = []
    capture.start(levels.append)
    capture.stop()

    clock.now += 1.0
    capture._on_audio(_loud_chunk(160), frames=160, time_info=None, status=None)
    assert levels == []


# ---------------------------------------------------------------
# Device changes and failures mid-session
# ---------------------------------------------------------------

@patch("recorder.sd")
def test_stop_resamples_from_stream_rate_after_device_invalidated(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, info=_device_info(48000, 1))
    capture.start(lambda level: None)
    capture._on_audio(_loud_chunk(48000), frames=48000, time_info=None, status=None)

    capture.invalidate_device()
    out = capture.stop()

    assert len(out) == 16000
    assert np.allclose(out, 0.5)


@patch("recorder.sd")
def test_stop_keeps_stream_rate_when_device_switches(mock_sd: MagicMock) -> None:
    capture = _make_capture(mock_sd, info=_device_info(48000, 1))
    capture.start(lambda level: None)
    capture._on_audio(_loud_chunk(4800), frames=4800, time_info=None, status=None)

    mock_sd.query_devices.return_value = _device_info(16000, 1)
    capture.refresh_device()
    out = capture.stop()

    assert len(out) == 1600


@patch("recorder.sd")
def test_start_raises_when_buffer_lock_is_held(mock_sd: MagicMock, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(recorder, "BUFFER_LOCK_TIMEOUT_S", 0.01)
    capture = _make_capture(mock_sd)

    capture._buffer_lock.acquire()
    try:
        with pytest.raises(LockUnavailable):
            capture.start(lambda level: None)
    finally:
        capture._buffer_lock.release()
    mock_sd.InputStream.assert_not_called()
    assert capture.is_active is False


@patch("recorder.sd")
def test_stop_raises_when_buffer_lock_is_held(mock_sd: MagicMock, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(recorder, "BUFFER_LOCK_TIMEOUT_S", 0.01)
    capture = _make_capture(mock_sd)
    capture.start(lambda level: None)

    capture._buffer_lock.acquire()
    try:
        with pytest.raises(LockUnavailable):
            capture.stop()
    finally:
        capture._buffer_lock.release()
    assert capture.is_active is False
    assert len(capture.stop()) == 0


@patch("recorder.sd")
def test_unsupported_chunk_format_is_logged_once_per_session(mock_sd: MagicMock) -> None:
    log = MagicMock()
    capture = _make_capture(mock_sd, logger=log)
    capture.start(lambda level: None)

    bad = np.zeros((160, 1), dtype=np.int32)
    for _ in range(5):
        capture._on_audio(bad, frames=160, time_info=None, status=None)

    assert log.error.call_count == 1
    assert len(capture.stop()) == 0

    capture.start(lambda level: None)
    capture._on_audio(bad, frames=160, time_info=None, status=None)
    assert log.error.call_count == 2
    capture.stop()
