"""Audio preprocessing ahead of tempo analysis."""

from __future__ import annotations

import numpy as np
from scipy.signal import butter, sosfilt


def remove_dc(audio: np.ndarray) -> np.ndarray:
    """Subtract the mean so a constant offset does not count as energy."""
    if len(audio) == 0:
        return audio
    return audio - np.mean(audio)


def normalize(audio: np.ndarray) -> np.ndarray:
    """Peak-normalize audio to the range [-1, 1].

    If the audio is silent (all zeros), it is returned unchanged.
    """
    if len(audio) == 0:
        return audio
    peak = np.max(np.abs(audio))
    if peak == 0:
        return audio
    return audio / peak


def high_pass_filter(
    audio: np.ndarray,
    sr: int,
    cutoff: float = 40.0,
) -> np.ndarray:
    """Apply a 4th-order Butterworth high-pass filter.

    Parameters
    ----------
    audio:
        Input audio signal.
    sr:
        Sample rate in Hz.
    cutoff:
        High-pass cutoff frequency in Hz. Defaults to 40 Hz.
    """
    sos = butter(N=4, Wn=cutoff, btype="high", fs=sr, output="sos")
    return sosfilt(sos, audio).astype(np.float32)


def preprocess(audio: np.ndarray, sr: int, cutoff: float = 40.0) -> np.ndarray:
    """Remove DC, peak-normalize, then high-pass filter."""
    audio = remove_dc(np.asarray(audio, dtype=np.float32))
    audio = normalize(audio)
    if len(audio) == 0:
        return audio
    return high_pass_filter(audio, sr, cutoff)
