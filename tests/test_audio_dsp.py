from __future__ import annotations

import numpy as np
import pytest

from audio_dsp import (
    TAIL_PADDING,
    downmix_first_channel,
    resample_linear,
    rms,
    to_float,
    trim_silence,
)
from errors import UnsupportedFormat


# ---------------------------------------------------------------
# Sample decoding / downmix
# ---------------------------------------------------------------

def test_int16_is_scaled_by_max_magnitude() -> None:
    out = to_float(np.array([0, 32767, -32767], dtype=np.int16))
    assert out.dtype == np.float32
    assert out.tolist() == pytest.approx([0.0, 1.0, -1.0])


def test_uint16_is_centered_on_zero() -> None:
    out = to_float(np.array([0, 65535], dtype=np.uint16))
    assert out.tolist() == pytest.approx([-1.0, 1.0])


def test_unsupported_dtype_raises() -> None:
    with pytest.raises(UnsupportedFormat):
        to_float(np.array([1, 2], dtype=np.int32))


def test_downmix_takes_first_channel_not_average() -> None:
    frames = np.array([[0.5, -0.5], [0.25, 1.0], [-0.1, 0.3]], dtype=np.float32)
    assert downmix_first_channel(frames, 2).tolist() == pytest.approx([0.5, 0.25, -0.1])


def test_downmix_interleaved_flat_buffer() -> None:
    flat = np.array([1.0, 9.0, 2.0, 9.0, 3.0, 9.0], dtype=np.float32)
    assert downmix_first_channel(flat, 2).tolist() == [1.0, 2.0, 3.0]


def test_rms_of_empty_is_zero() -> None:
    assert rms(np.zeros(0, dtype=np.float32)) == 0.0
    assert rms(np.full(100, 0.5, dtype=np.float32)) == pytest.approx(0.5)


# ---------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------

def test_resample_identity_when_rates_match() -> None:
    samples = np.arange(100, dtype=np.float32) / 100.0
    out = resample_linear(samples, 16000, 16000)
    assert np.array_equal(out, samples)


def test_resample_empty_input() -> None:
    assert len(resample_linear(np.zeros(0, dtype=np.float32), 48000, 16000)) == 0


def test_resample_2_to_1_halves_length() -> None:
    samples = np.sin(np.arange(1000, dtype=np.float32) * 0.01)
    assert len(resample_linear(samples, 32000, 16000)) == 500


def test_resample_3_to_1_thirds_length() -> None:
    samples = np.sin(np.arange(900, dtype=np.float32) * 0.01)
    assert len(resample_linear(samples, 48000, 16000)) == 300


def test_resample_interpolates_between_neighbours() -> None:
    samples = np.array([0.0, 1.0, 2.0, 3.0], dtype=np.float32)
    # upsample 1 -> 2: positions 0, .5, 1, 1.5, ...
    out = resample_linear(samples, 8000, 16000)
    assert out.tolist()[:4] == pytest.approx([0.0, 0.5, 1.0, 1.5])
    # last position clamps to the final sample
    assert out[-1] == pytest.approx(3.0)


# ---------------------------------------------------------------
# Silence trimming
# ---------------------------------------------------------------

def test_trim_silence_all_silent() -> None:
    assert len(trim_silence(np.zeros(2000, dtype=np.float32))) == 0


def test_trim_silence_preserves_loud_middle() -> None:
    samples = np.concatenate([
        np.zeros(480, dtype=np.float32),
        np.full(480, 0.5, dtype=np.float32),
        np.zeros(480, dtype=np.float32),
    ])
    trimmed = trim_silence(samples)
    assert 480 <= len(trimmed) <= 960
    assert np.all(trimmed[:480] == 0.5)


def test_trim_silence_all_loud_is_unchanged() -> None:
    samples = np.full(960, 0.5, dtype=np.float32)
    assert len(trim_silence(samples)) == 960


def test_trim_silence_tail_padding_is_bounded() -> None:
    samples = np.concatenate([
        np.full(480, 0.5, dtype=np.float32),
        np.zeros(20000, dtype=np.float32),
    ])
    trimmed = trim_silence(samples)
    assert len(trimmed) == 480 + TAIL_PADDING
