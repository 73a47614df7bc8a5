"""Async analysis service: decode an encoded upload and estimate its tempo."""

import asyncio
import hashlib
import logging
import os
import tempfile

import numpy as np

from bpmsense.analysis.engine import ANALYSIS_VERSION, TempoEngine
from bpmsense.analysis.hypotheses import ProgressCallback
from bpmsense.analysis.models import BeatMode, TempoResult
from bpmsense.audio.loader import load_audio
from bpmsense.audio.preprocessing import preprocess
from bpmsense.config import settings

logger = logging.getLogger(__name__)


def analysis_key(data: bytes, beat_mode: BeatMode) -> str:
    """Identity of one analysis: content hash, algorithm version and beat mode."""
    digest = hashlib.sha256(data).hexdigest()
    return f"{digest}:{ANALYSIS_VERSION}:{beat_mode.value}"


class TempoService:
    """Runs tempo analyses for a host, at most one per analysis key at a time.

    Concurrent requests for the same content and mode share one in-flight
    task. Only the request that started the task receives progress updates.
    Results are not kept once the task finishes.
    """

    def __init__(self, engine: TempoEngine | None = None):
        self.engine = engine or TempoEngine()
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def analyze(
        self,
        data: bytes,
        beat_mode: BeatMode | str | None = None,
        on_progress: ProgressCallback | None = None,
        suffix: str = "",
    ) -> TempoResult | None:
        mode = BeatMode.parse(beat_mode if beat_mode is not None else settings.default_beat_mode)
        key = analysis_key(data, mode)

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._run(data, suffix, mode, on_progress))
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            logger.info(f"Joining in-flight analysis {key[:12]}")

        # One caller going away must not cancel the shared analysis
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _run(
        self,
        data: bytes,
        suffix: str,
        mode: BeatMode,
        on_progress: ProgressCallback | None,
    ) -> TempoResult | None:
        audio, sr = await asyncio.to_thread(decode_audio, data, suffix)
        return await self.engine.estimate_async(audio, sr, mode, on_progress)


def decode_audio(data: bytes, suffix: str = "") -> tuple[np.ndarray, int]:
    """Decode encoded audio bytes and preprocess them for the engine."""
    # Write to temp file (librosa needs a file path for some formats)
    with tempfile.NamedTemporaryFile(suffix=suffix, delete=False) as tmp:
        tmp.write(data)
        tmp_path = tmp.name
    try:
        audio, sr = load_audio(tmp_path, sr=settings.sample_rate, max_seconds=settings.max_audio_seconds)
    finally:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
    logger.info(f"Decoded {len(audio) / sr:.1f}s of audio at {sr}Hz")
    return preprocess(audio, sr, settings.high_pass_cutoff), sr
