"""Tests for the async analysis service."""

import asyncio

import numpy as np
import pytest

import bpmsense.analysis.service as service_module
from bpmsense.analysis.engine import ANALYSIS_VERSION, estimate_tempo
from bpmsense.analysis.models import BeatMode
from bpmsense.analysis.service import TempoService, analysis_key, decode_audio
from tests.conftest import SR, generate_click_track, wav_bytes


@pytest.fixture
def fake_decoder(monkeypatch, click_128):
    """Replace decoding with a call counter returning the 128 BPM click track."""
    calls = []

    def _decode(data, suffix=""):
        calls.append(data)
        return click_128, SR

    monkeypatch.setattr(service_module, "decode_audio", _decode)
    return calls


def test_analysis_key():
    key = analysis_key(b"abc", BeatMode.STRAIGHT)
    assert key.endswith(f":{ANALYSIS_VERSION}:straight")
    assert key != analysis_key(b"abc", BeatMode.BREAKBEAT)
    assert key != analysis_key(b"abd", BeatMode.STRAIGHT)


def test_concurrent_requests_share_one_analysis(fake_decoder):
    service = TempoService()

    async def main():
        results = await asyncio.gather(
            service.analyze(b"same-bytes", "straight"),
            service.analyze(b"same-bytes", BeatMode.STRAIGHT),
        )
        return results, service.in_flight

    (first, second), in_flight = asyncio.run(main())
    assert len(fake_decoder) == 1
    assert first == second
    assert first is not None
    assert in_flight == 0


def test_different_modes_run_separately(fake_decoder):
    service = TempoService()

    async def main():
        return await asyncio.gather(
            service.analyze(b"same-bytes", "straight"),
            service.analyze(b"same-bytes", "breakbeat"),
        )

    straight, breakbeat = asyncio.run(main())
    assert len(fake_decoder) == 2
    assert straight.beat_mode is BeatMode.STRAIGHT
    assert breakbeat.beat_mode is BeatMode.BREAKBEAT


def test_sequential_requests_are_not_cached(fake_decoder):
    service = TempoService()
    asyncio.run(service.analyze(b"x", "straight"))
    asyncio.run(service.analyze(b"x", "straight"))
    assert len(fake_decoder) == 2


def test_default_mode_from_settings(fake_decoder, monkeypatch):
    monkeypatch.setattr(service_module.settings, "default_beat_mode", "breakbeat")
    result = asyncio.run(TempoService().analyze(b"x"))
    assert result.beat_mode is BeatMode.BREAKBEAT


def test_progress_reaches_first_caller(fake_decoder):
    updates = []
    asyncio.run(TempoService().analyze(b"x", "straight", on_progress=updates.append))
    assert len(updates) == 1


def test_decode_errors_propagate(monkeypatch):
    def _broken(data, suffix=""):
        raise ValueError("not audio")

    monkeypatch.setattr(service_module, "decode_audio", _broken)
    service = TempoService()
    with pytest.raises(ValueError, match="not audio"):
        asyncio.run(service.analyze(b"junk", "auto"))
    assert service.in_flight == 0


def test_decode_audio_wav():
    audio = generate_click_track(bpm=128, duration_seconds=20, noise=0.05)
    samples, sr = decode_audio(wav_bytes(audio), ".wav")

    assert sr == SR
    assert len(samples) == pytest.approx(len(audio), abs=1)
    assert np.max(np.abs(samples)) <= 1.5


def test_decode_audio_respects_max_seconds(monkeypatch):
    monkeypatch.setattr(service_module.settings, "max_audio_seconds", 5.0)
    audio = generate_click_track(bpm=128, duration_seconds=20)
    samples, sr = decode_audio(wav_bytes(audio), ".wav")
    assert len(samples) == 5 * sr


def test_service_result_matches_engine():
    audio = generate_click_track(bpm=128, noise=0.05)
    data = wav_bytes(audio)
    samples, sr = decode_audio(data, ".wav")

    result = asyncio.run(TempoService().analyze(data, "straight", suffix=".wav"))
    assert result == estimate_tempo(samples, sr, BeatMode.STRAIGHT)
