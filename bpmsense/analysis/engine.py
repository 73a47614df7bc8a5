"""Tempo engine - combines the analysis stages into one estimate."""

import asyncio
import logging
import math
from dataclasses import dataclass, field

import numpy as np

from bpmsense.analysis.clustering import cluster_hypotheses
from bpmsense.analysis.confidence import compute_confidence
from bpmsense.analysis.hypotheses import HypothesisBuilder, ProgressCallback
from bpmsense.analysis.models import BeatMode, BeatType, TempoCluster, TempoResult
from bpmsense.analysis.onset import sanitize, valid_sample_rate
from bpmsense.analysis.priors import pick_seed
from bpmsense.analysis.promotion import promote_tempo
from bpmsense.analysis.refine import refine_harmonics
from bpmsense.analysis.support import RhythmProfile, classify_beat_type, tempo_support_score
from bpmsense.analysis.tuning import DEFAULT_TUNING, TempoTuning

logger = logging.getLogger(__name__)

# Bump when a change alters results for the same audio
ANALYSIS_VERSION = "1.0"

_SOLVED_MODES = (BeatMode.STRAIGHT, BeatMode.BREAKBEAT)


@dataclass
class ModeSolution:
    """Outcome of the pipeline for one fixed beat mode."""
    mode: BeatMode
    bpm: float
    confidence: int
    support: float
    beat_type: BeatType
    breakbeat_score: float
    promotions: list[str] = field(default_factory=list)


class TempoEngine:
    """Estimates tempo, meter feel and confidence from mono samples.

    The engine keeps no state between calls; one instance can serve any
    number of concurrent estimates.
    """

    def __init__(self, tuning: TempoTuning = DEFAULT_TUNING):
        self.tuning = tuning

    def estimate(
        self,
        samples,
        sr: float,
        beat_mode: BeatMode | str | None = BeatMode.AUTO,
        on_progress: ProgressCallback | None = None,
    ) -> TempoResult | None:
        """Estimate the tempo of *samples*; None when no tempo can be found."""
        prepared = self._prepare(samples, sr, beat_mode, on_progress)
        if prepared is None:
            return None
        builder, mode = prepared
        for _ in builder.iter_windows():
            pass
        return self._finish(builder, mode)

    async def estimate_async(
        self,
        samples,
        sr: float,
        beat_mode: BeatMode | str | None = BeatMode.AUTO,
        on_progress: ProgressCallback | None = None,
    ) -> TempoResult | None:
        """Same as :meth:`estimate`, yielding to the event loop after every window.

        Cancelling the task takes effect at the next window boundary.
        """
        prepared = self._prepare(samples, sr, beat_mode, on_progress)
        if prepared is None:
            return None
        builder, mode = prepared
        for _ in builder.iter_windows():
            await asyncio.sleep(0)
        return self._finish(builder, mode)

    def _prepare(self, samples, sr, beat_mode, on_progress) -> tuple[HypothesisBuilder, BeatMode] | None:
        mode = BeatMode.parse(beat_mode)
        rate = valid_sample_rate(sr)
        if rate is None:
            logger.warning(f"Invalid sample rate {sr!r}, skipping analysis")
            return None
        audio = sanitize(samples)
        logger.info(f"Estimating tempo of {len(audio) / rate:.1f}s of audio at {rate:g}Hz ({mode.value})")
        return HypothesisBuilder(audio, rate, self.tuning, on_progress), mode

    def _finish(self, builder: HypothesisBuilder, mode: BeatMode) -> TempoResult | None:
        if not builder.hypotheses:
            logger.info("No tempo hypotheses (silent, constant or too short input)")
            return None

        clusters = cluster_hypotheses(builder.hypotheses, self.tuning)
        profile = RhythmProfile(builder.windows, self.tuning)
        logger.debug("Top clusters: " + ", ".join(
            f"{c.center:.1f} (w={c.weight_sum:.2f}, n={len(c.members)})" for c in clusters[:5]))

        modes = _SOLVED_MODES if mode is BeatMode.AUTO else (mode,)
        winner: ModeSolution | None = None
        for m in modes:
            solution = self._solve(profile, clusters, m, builder.windows_processed)
            if solution is None:
                continue
            if winner is None or (solution.confidence, solution.support) > (winner.confidence, winner.support):
                winner = solution

        if winner is None:
            return None
        return TempoResult(
            bpm=round(winner.bpm, 1),
            confidence=winner.confidence,
            beat_type_auto=winner.beat_type,
            breakbeat_score=round(winner.breakbeat_score, 4),
            beat_mode=winner.mode,
        )

    def _solve(
        self,
        profile: RhythmProfile,
        clusters: list[TempoCluster],
        mode: BeatMode,
        windows_analyzed: int,
    ) -> ModeSolution | None:
        seed = pick_seed(clusters, mode, self.tuning)
        logger.debug(f"[{mode.value}] seed {seed:.2f} BPM")

        evidence = refine_harmonics(profile, seed, mode)
        bpm, promotions = promote_tempo(profile, evidence.bpm, mode)
        if not math.isfinite(bpm) or bpm <= 0:
            return None

        beat_type, breakbeat_score = classify_beat_type(profile, bpm)
        support = tempo_support_score(profile, bpm)
        confidence = compute_confidence(profile, bpm, clusters, windows_analyzed, mode)
        logger.info(f"[{mode.value}] {bpm:.1f} BPM, confidence {confidence}, {beat_type.value} "
                    f"(breakbeat score {breakbeat_score:.2f})"
                    + (f", promoted by {', '.join(promotions)}" if promotions else ""))
        return ModeSolution(
            mode=mode,
            bpm=bpm,
            confidence=confidence,
            support=support,
            beat_type=beat_type,
            breakbeat_score=breakbeat_score,
            promotions=promotions,
        )


_default_engine = TempoEngine()


def estimate_tempo(
    samples: np.ndarray,
    sr: float,
    beat_mode: BeatMode | str | None = BeatMode.AUTO,
    on_progress: ProgressCallback | None = None,
) -> TempoResult | None:
    """Estimate tempo with the default tuning."""
    return _default_engine.estimate(samples, sr, beat_mode, on_progress)


async def estimate_tempo_async(
    samples: np.ndarray,
    sr: float,
    beat_mode: BeatMode | str | None = BeatMode.AUTO,
    on_progress: ProgressCallback | None = None,
) -> TempoResult | None:
    return await _default_engine.estimate_async(samples, sr, beat_mode, on_progress)
