"""Audio decoding into mono float samples."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Union

import librosa
import numpy as np


def load_audio(
    file_path_or_buffer: Union[str, Path, BytesIO],
    sr: int = 22050,
    max_seconds: float | None = None,
) -> tuple[np.ndarray, int]:
    """Decode an audio file or buffer to mono at *sr*.

    Parameters
    ----------
    file_path_or_buffer:
        Path to an audio file or a BytesIO buffer containing audio data.
    sr:
        Target sample rate. Defaults to 22050 Hz.
    max_seconds:
        Decode at most this many seconds from the start. The tempo engine
        only looks at roughly the first two minutes, so the rest is skipped.

    Returns
    -------
    tuple[np.ndarray, int]
        A tuple of (audio_array, sample_rate).
    """
    audio, sample_rate = librosa.load(file_path_or_buffer, sr=sr, mono=True, duration=max_seconds)
    return audio, sample_rate
