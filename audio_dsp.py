"""Sample conversion and post-capture processing for microphone audio."""

from __future__ import annotations

import numpy as np

from errors import UnsupportedFormat

TARGET_SAMPLE_RATE = 16000
SILENCE_THRESHOLD = 0.01
# 480 samples ~= 30 ms at 16 kHz
SILENCE_WINDOW = 480
# ~500 ms kept after the last voiced window so trailing words are not clipped
TAIL_PADDING = TARGET_SAMPLE_RATE // 2

SUPPORTED_DTYPES = ("float32", "int16", "uint16")

_I16_MAX = float(np.iinfo(np.int16).max)
_U16_MAX = float(np.iinfo(np.uint16).max)


def to_float(data: np.ndarray) -> np.ndarray:
    """Normalize a device chunk to float32 in [-1, 1]."""
    arr = np.asarray(data)
    if arr.dtype == np.float32:
        return arr
    if arr.dtype == np.float64:
        return arr.astype(np.float32)
    if arr.dtype == np.int16:
        return arr.astype(np.float32) / _I16_MAX
    if arr.dtype == np.uint16:
        return (arr.astype(np.float32) / _U16_MAX) * 2.0 - 1.0
    raise UnsupportedFormat(f"unsupported sample format: {arr.dtype}")


def downmix_first_channel(data: np.ndarray, channels: int) -> np.ndarray:
    """Keep only the first channel of each frame (no averaging)."""
    if channels <= 0:
        return np.zeros(0, dtype=np.float32)
    arr = np.asarray(data)
    if arr.ndim == 2:
        return arr[:, 0]
    if channels == 1:
        return arr.reshape(-1)
    return arr.reshape(-1)[::channels]


def rms(samples: np.ndarray) -> float:
    if len(samples) == 0:
        return 0.0
    values = np.asarray(samples, dtype=np.float64)
    return float(np.sqrt(np.mean(values * values)))


def resample_linear(samples: np.ndarray, in_rate: int, out_rate: int) -> np.ndarray:
    """Linear-interpolation resampler.

    For output index ``i`` the source position is ``i * in_rate / out_rate``;
    the value blends the sample at the floor index with the next one, which is
    clamped to the last available sample.
    """
    data = np.asarray(samples, dtype=np.float32)
    if len(data) == 0 or in_rate == out_rate:
        return data

    ratio = in_rate / out_rate
    out_len = int(len(data) / ratio)
    if out_len == 0:
        return np.zeros(0, dtype=np.float32)

    positions = np.arange(out_len, dtype=np.float64) * ratio
    idx = np.floor(positions).astype(np.int64)
    idx = np.minimum(idx, len(data) - 1)
    frac = (positions - idx).astype(np.float32)

    a = data[idx]
    b = data[np.minimum(idx + 1, len(data) - 1)]
    return (a + (b - a) * frac).astype(np.float32)


def trim_silence(
    samples: np.ndarray,
    threshold: float = SILENCE_THRESHOLD,
    window: int = SILENCE_WINDOW,
    tail_padding: int = TAIL_PADDING,
) -> np.ndarray:
    """Drop leading and trailing windows whose RMS is below ``threshold``.

    Keeps ``tail_padding`` samples after the last voiced window, clamped to
    the buffer length. Returns an empty array when every window is silent.
    """
    data = np.asarray(samples, dtype=np.float32)
    voiced = [
        start
        for start in range(0, len(data), window)
        if rms(data[start:start + window]) >= threshold
    ]
    if not voiced:
        return np.zeros(0, dtype=np.float32)

    begin = voiced[0]
    end = min(voiced[-1] + window + tail_padding, len(data))
    if begin >= end:
        return np.zeros(0, dtype=np.float32)
    return data[begin:end]
