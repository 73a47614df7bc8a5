"""Multi-window hypothesis pool with harmonic variants."""

import logging
import math
from collections.abc import Callable, Iterator

import numpy as np

from bpmsense.analysis.autocorrelation import candidates_from_scores, fold_into_range
from bpmsense.analysis.clustering import cluster_hypotheses
from bpmsense.analysis.models import ProgressUpdate, TempoCandidate, TempoHypothesis
from bpmsense.analysis.support import (
    RhythmProfile,
    WindowAnalysis,
    analyze_window,
    classify_beat_type,
    window_bounds,
)
from bpmsense.analysis.tuning import DEFAULT_TUNING, TempoTuning

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressUpdate], None]


def expand_harmonics(
    candidate: TempoCandidate,
    window: int = 0,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> list[TempoHypothesis]:
    """The candidate itself plus its down-weighted harmonic readings."""
    hypotheses = []
    for variant in tuning.harmonic_variants:
        bpm = fold_into_range(candidate.bpm * variant.multiple, tuning.min_bpm, tuning.max_bpm)
        weight = candidate.score * variant.weight
        if not (math.isfinite(bpm) and bpm > 0 and math.isfinite(weight)):
            continue
        hypotheses.append(TempoHypothesis(bpm=bpm, weight=weight, window=window))
    return hypotheses


class HypothesisBuilder:
    """Walks the analysis windows of one track, one window per step.

    ``iter_windows()`` is a generator that yields the window index after each
    window, which is where an async driver hands control back to its event
    loop. After the loop, ``hypotheses`` holds the pool and ``windows`` the
    per-window analyses for reuse by the evidence scorer.
    """

    def __init__(
        self,
        samples: np.ndarray,
        sr: float,
        tuning: TempoTuning = DEFAULT_TUNING,
        on_progress: ProgressCallback | None = None,
    ):
        self.samples = samples
        self.sr = sr
        self.tuning = tuning
        self.on_progress = on_progress
        self.hypotheses: list[TempoHypothesis] = []
        self.windows: list[WindowAnalysis] = []
        self.windows_processed = 0
        self._preliminary_sent = False

    def iter_windows(self) -> Iterator[int]:
        tuning = self.tuning
        for index, start, end in window_bounds(len(self.samples), self.sr, tuning):
            analysis = analyze_window(self.samples[start:end], self.sr, index, tuning)
            if analysis is not None and analysis.scores is not None:
                self.windows.append(analysis)
                self._add_window(analysis)
            yield index

    def _add_window(self, analysis: WindowAnalysis) -> None:
        tuning = self.tuning
        if analysis.lag_max <= analysis.lag_min + tuning.min_lag_span:
            logger.debug(f"Window {analysis.index}: no usable periodicity")
            return

        candidates = candidates_from_scores(
            analysis.scores, analysis.envelope.frame_rate,
            analysis.lag_min, analysis.lag_max, tuning,
        )
        if not candidates:
            logger.debug(f"Window {analysis.index}: no autocorrelation peaks")
            return

        logger.debug(f"Window {analysis.index}: candidates "
                     + ", ".join(f"{c.bpm:.1f} ({c.score:.3f})" for c in candidates))
        for candidate in candidates:
            self.hypotheses.extend(expand_harmonics(candidate, analysis.index, tuning))

        self.windows_processed += 1
        if self.windows_processed == tuning.preliminary_after_windows:
            self._send_preliminary()

    def _send_preliminary(self) -> None:
        tuning = self.tuning
        if self.on_progress is None or self._preliminary_sent:
            return
        if len(self.hypotheses) < tuning.preliminary_min_hypotheses:
            return

        clusters = cluster_hypotheses(list(self.hypotheses), tuning)
        if not clusters:
            return
        bpm = fold_into_range(clusters[0].center, tuning.min_bpm, tuning.max_bpm)
        beat_type, breakbeat_score = classify_beat_type(RhythmProfile(self.windows, tuning), bpm)
        self._preliminary_sent = True
        try:
            self.on_progress(ProgressUpdate(
                bpm=round(bpm, 1),
                confidence=tuning.preliminary_confidence,
                windows_processed=self.windows_processed,
                beat_type_auto=beat_type,
                breakbeat_score=round(breakbeat_score, 4),
            ))
        except Exception as e:
            logger.warning(f"Progress callback failed: {e}")
