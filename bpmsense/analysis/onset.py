"""Energy-flux onset envelope."""

import math

import numpy as np
import librosa

from bpmsense.analysis.models import OnsetEnvelope
from bpmsense.analysis.tuning import OnsetParams

_EPS = 1e-12


def sanitize(samples) -> np.ndarray:
    """Return *samples* as contiguous float32 with non-finite values zeroed."""
    audio = np.asarray(samples, dtype=np.float32).ravel()
    if not np.all(np.isfinite(audio)):
        audio = np.nan_to_num(audio, nan=0.0, posinf=0.0, neginf=0.0)
    return np.ascontiguousarray(audio)


def valid_sample_rate(sr) -> float | None:
    """Return *sr* as a float, or None if it is not a positive finite number."""
    try:
        value = float(sr)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def frame_count(n_samples: int, params: OnsetParams) -> int:
    """Number of full RMS frames a slice of *n_samples* yields."""
    if n_samples < params.window_size:
        return 0
    return 1 + (n_samples - params.window_size) // params.hop_size


def smooth(values: np.ndarray, half_width: int) -> np.ndarray:
    """Centered moving average; edge frames average their in-range neighbours."""
    if half_width <= 0 or len(values) == 0:
        return values
    kernel = np.ones(2 * half_width + 1)
    acc = np.convolve(values, kernel, mode="same")
    counts = np.convolve(np.ones(len(values)), kernel, mode="same")
    return acc / counts


def onset_envelope(
    samples: np.ndarray,
    sr: float,
    params: OnsetParams | None = None,
) -> OnsetEnvelope | None:
    """Build a normalized, smoothed onset envelope from mono samples.

    Frame RMS is differenced and half-wave rectified so that energy rises
    (onsets) count and decays do not. Returns None when the slice is too
    short to autocorrelate or *sr* is unusable.
    """
    params = params or OnsetParams()
    sr = valid_sample_rate(sr)
    if sr is None:
        return None

    audio = sanitize(samples)
    if frame_count(len(audio), params) <= params.min_frames:
        return None

    rms = librosa.feature.rms(
        y=audio,
        frame_length=params.window_size,
        hop_length=params.hop_size,
        center=False,
    )[0].astype(np.float64)

    # First frame has no predecessor, so it carries no flux
    flux = np.maximum(0.0, np.diff(rms, prepend=rms[0]))
    flux /= max(float(flux.max()), _EPS)

    return OnsetEnvelope(
        samples=smooth(flux, params.smoothing_half_width),
        frame_rate=float(sr) / params.hop_size,
    )
