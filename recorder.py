"""Microphone capture pipeline on top of sounddevice.

The PortAudio stream is owned by ``SoundDeviceCapture`` and only touched while
``_stream_lock`` is held. The device callback thread never takes that lock: it
only appends to the sample buffer (``_buffer_lock``) and updates the level
throttle (``_level_lock``), so metering never waits on session state.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

import numpy as np

from audio_dsp import (
    SUPPORTED_DTYPES,
    TARGET_SAMPLE_RATE,
    downmix_first_channel,
    resample_linear,
    rms,
    to_float,
    trim_silence,
)
from errors import DeviceBusy, DeviceUnavailable, LockUnavailable, UnsupportedFormat
from models import DeviceConfig

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

LEVEL_INTERVAL_S = 0.05
BUFFER_LOCK_TIMEOUT_S = 1.0

LevelCallback = Callable[[float], None]


class SoundDeviceCapture:
    def __init__(
        self,
        target_rate: int = TARGET_SAMPLE_RATE,
        dtype: str = "float32",
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.target_rate = target_rate
        self.dtype = dtype
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock

        self._stream_lock = threading.Lock()
        self._stream: Any = None
        self._device_config: Optional[DeviceConfig] = None

        self._buffer_lock = threading.Lock()
        self._chunks: list[np.ndarray] = []

        self._level_lock = threading.Lock()
        self._last_level_emit = 0.0
        self._on_level: Optional[LevelCallback] = None
        self._channels = 1
        self._stream_rate = target_rate
        self._format_error_logged = False

        self.refresh_device()

    @property
    def is_active(self) -> bool:
        return self._stream is not None

    @property
    def device_config(self) -> Optional[DeviceConfig]:
        return self._device_config

    def refresh_device(self) -> Optional[DeviceConfig]:
        """Re-query the default input device, e.g. after the user switched inputs."""
        self._device_config = None
        if sd is None:
            self._log.warning("audio: sounddevice is not installed")
            return None
        try:
            info = sd.query_devices(kind="input")
        except Exception as exc:
            self._log.warning("audio: no default input device found: %s", exc)
            return None
        channels = int(info.get("max_input_channels", 0))
        sample_rate = int(info.get("default_samplerate", 0))
        if channels <= 0 or sample_rate <= 0:
            self._log.warning("audio: default input device has no usable config: %s", info)
            return None
        self._device_config = DeviceConfig(
            sample_rate=sample_rate,
            channels=channels,
            dtype=self.dtype,
            device=info.get("index"),
        )
        self._log.info(
            "audio: cached input device %s (%d Hz, %d ch, %s)",
            info.get("name", "?"),
            sample_rate,
            channels,
            self.dtype,
        )
        return self._device_config

    def invalidate_device(self) -> None:
        self._device_config = None

    def start(self, on_level: LevelCallback) -> None:
        with self._stream_lock:
            if self._stream is not None:
                return
            if sd is None:
                raise DeviceUnavailable("sounddevice is not installed")

            config = self._device_config or self.refresh_device()
            if config is None:
                raise DeviceUnavailable("no default microphone found")
            if config.dtype not in SUPPORTED_DTYPES:
                raise UnsupportedFormat(f"unsupported sample format: {config.dtype}")

            if not self._buffer_lock.acquire(timeout=BUFFER_LOCK_TIMEOUT_S):
                raise LockUnavailable("audio sample buffer is locked")
            try:
                self._chunks = []
            finally:
                self._buffer_lock.release()

            with self._level_lock:
                self._on_level = on_level
                self._last_level_emit = self._clock()
            self._channels = config.channels
            self._stream_rate = config.sample_rate
            self._format_error_logged = False

            try:
                stream = sd.InputStream(
                    device=config.device,
                    samplerate=config.sample_rate,
                    channels=config.channels,
                    dtype=config.dtype,
                    callback=self._on_audio,
                )
                stream.start()
            except Exception as exc:
                with self._level_lock:
                    self._on_level = None
                self._log.error("audio: failed to open input stream: %s", exc)
                raise DeviceBusy(f"failed to start input stream: {exc}") from exc
            self._stream = stream

    def stop(self) -> np.ndarray:
        with self._stream_lock:
            if self._stream is None:
                return np.zeros(0, dtype=np.float32)
            stream, self._stream = self._stream, None
            try:
                stream.stop()
                stream.close()
            except Exception as exc:
                self._log.warning("audio: error while closing stream: %s", exc)

            with self._level_lock:
                self._on_level = None

            if not self._buffer_lock.acquire(timeout=BUFFER_LOCK_TIMEOUT_S):
                raise LockUnavailable("audio sample buffer is locked")
            try:
                chunks, self._chunks = self._chunks, []
            finally:
                self._buffer_lock.release()

            source_rate = self._stream_rate

        if chunks:
            recorded = np.concatenate(chunks).astype(np.float32)
        else:
            recorded = np.zeros(0, dtype=np.float32)
        self._log.info("audio: captured %d samples at %d Hz", len(recorded), source_rate)

        if source_rate != self.target_rate:
            recorded = resample_linear(recorded, source_rate, self.target_rate)
        return trim_silence(recorded)

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            self._log.debug("audio: stream status %s", status)
        try:
            mono = downmix_first_channel(to_float(indata), self._channels)
        except UnsupportedFormat as exc:
            if not self._format_error_logged:
                self._format_error_logged = True
                self._log.error("audio: %s; dropping chunks until restart", exc)
            return
        mono = np.array(mono, dtype=np.float32, copy=True)

        with self._buffer_lock:
            self._chunks.append(mono)

        level = min(max(rms(mono), 0.0), 1.0)
        callback = None
        with self._level_lock:
            now = self._clock()
            if self._on_level is not None and now - self._last_level_emit >= LEVEL_INTERVAL_S:
                self._last_level_emit = now
                callback = self._on_level
        if callback is not None:
            callback(level)
