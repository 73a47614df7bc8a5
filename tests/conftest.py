"""Shared test fixtures for tempo analysis tests."""

import io

import numpy as np
import pytest
import soundfile as sf
from fastapi.testclient import TestClient

from bpmsense.analysis.support import RhythmProfile
from bpmsense.main import app

SR = 22050


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(app)


def _click(sr: int) -> np.ndarray:
    # 20ms sine burst with a fast decay
    click_samples = int(0.02 * sr)
    t_click = np.arange(click_samples) / sr
    return np.sin(2 * np.pi * 1000 * t_click) * np.exp(-t_click * 100)


def _place_clicks(audio: np.ndarray, times: np.ndarray, gain: float, sr: int) -> None:
    click = _click(sr)
    n_samples = len(audio)
    for time in times:
        sample_pos = int(time * sr)
        end = min(sample_pos + len(click), n_samples)
        length = end - sample_pos
        if length > 0:
            audio[sample_pos:end] += click[:length] * gain


def generate_click_track(
    bpm: float,
    duration_seconds: float = 60.0,
    sr: int = SR,
    noise: float = 0.0,
    offbeat_gain: float = 0.0,
    seed: int = 0,
) -> np.ndarray:
    """Synthetic click track at *bpm*, peak-normalized before noise is added.

    *offbeat_gain* > 0 adds a second click halfway between beats (a backbeat
    style pattern); *noise* is the standard deviation of added white noise.
    """
    n_samples = int(duration_seconds * sr)
    audio = np.zeros(n_samples, dtype=np.float64)

    beat_interval = 60.0 / bpm
    beats = np.arange(0.0, duration_seconds, beat_interval)
    _place_clicks(audio, beats, 1.0, sr)
    if offbeat_gain > 0:
        _place_clicks(audio, beats + beat_interval / 2, offbeat_gain, sr)

    peak = np.max(np.abs(audio))
    if peak > 0:
        audio = audio / peak

    if noise > 0:
        rng = np.random.default_rng(seed)
        audio = audio + rng.normal(0.0, noise, n_samples)

    return audio.astype(np.float32)


def wav_bytes(audio: np.ndarray, sr: int = SR) -> bytes:
    """Encode *audio* as an in-memory WAV file."""
    buf = io.BytesIO()
    sf.write(buf, audio, sr, format="WAV")
    return buf.getvalue()


@pytest.fixture(scope="session")
def click_128():
    """One minute of clicks at 128 BPM with light noise."""
    return generate_click_track(bpm=128, noise=0.05)


@pytest.fixture(scope="session")
def profile_128(click_128):
    return RhythmProfile.from_samples(click_128, SR)


@pytest.fixture(scope="session")
def backbeat_120():
    """Clicks at 120 BPM with equally loud clicks between the beats."""
    return generate_click_track(bpm=120, noise=0.02, offbeat_gain=1.0)


@pytest.fixture(scope="session")
def onbeat_120():
    """Clicks at 120 BPM on the beat only."""
    return generate_click_track(bpm=120, noise=0.02)
