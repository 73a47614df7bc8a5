"""Tempo support and meter evidence.

Every refinement stage asks the same questions of a candidate BPM: how
strongly does the onset envelope repeat at that period, and is the energy
concentrated on the beat or on the half-beat between beats? The answers are
computed here from a :class:`RhythmProfile`, which holds the per-window onset
envelopes and autocorrelation scores so they are built once per analysis.
"""

import logging
import math
from dataclasses import dataclass

import numpy as np

from bpmsense.analysis.autocorrelation import lag_range, pearson_autocorr_scores
from bpmsense.analysis.models import BeatMode, BeatType, MeterEvidence, OnsetEnvelope
from bpmsense.analysis.onset import onset_envelope, sanitize, valid_sample_rate
from bpmsense.analysis.priors import plausibility_bonus
from bpmsense.analysis.tuning import DEFAULT_TUNING, TempoTuning

logger = logging.getLogger(__name__)

_EPS = 1e-9


@dataclass
class WindowAnalysis:
    """Onset envelope of one analysis window plus its autocorrelation scores."""
    index: int
    envelope: OnsetEnvelope
    scores: np.ndarray | None  # indexed by lag, padded past lag_max; None for a flat envelope
    lag_min: int
    lag_max: int


def window_bounds(n_samples: int, sr: float, tuning: TempoTuning = DEFAULT_TUNING) -> list[tuple[int, int, int]]:
    """(window index, start, end) sample bounds of the windows long enough to analyse."""
    bounds = []
    for i, window in enumerate(tuning.windows):
        start = int(math.floor(window.start_seconds * sr))
        end = min(n_samples, start + int(math.floor(window.length_seconds * sr)))
        if end - start < sr * tuning.min_window_seconds:
            continue
        bounds.append((i, start, end))
    return bounds


def analyze_window(
    segment: np.ndarray,
    sr: float,
    index: int = 0,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> WindowAnalysis | None:
    """Onset envelope and autocorrelation for one slice, or None if it is unusable."""
    envelope = onset_envelope(segment, sr, tuning.onset)
    if envelope is None:
        return None
    lag_min, lag_max = lag_range(envelope.frame_rate, tuning.min_bpm, tuning.max_bpm)
    scores = pearson_autocorr_scores(envelope.samples, lag_min, lag_max + tuning.slow_lag_padding)
    return WindowAnalysis(
        index=index,
        envelope=envelope,
        scores=scores,
        lag_min=lag_min,
        lag_max=lag_max,
    )


class RhythmProfile:
    """The analysed windows of one track, shared by every evidence query."""

    def __init__(self, windows: list[WindowAnalysis], tuning: TempoTuning = DEFAULT_TUNING):
        self.windows = windows
        self.tuning = tuning

    @classmethod
    def from_samples(cls, samples, sr, tuning: TempoTuning = DEFAULT_TUNING) -> "RhythmProfile":
        audio = sanitize(samples)
        rate = valid_sample_rate(sr)
        windows: list[WindowAnalysis] = []
        if rate is not None:
            for index, start, end in window_bounds(len(audio), rate, tuning):
                analysis = analyze_window(audio[start:end], rate, index, tuning)
                if analysis is None or analysis.scores is None:
                    logger.debug(f"Window {index}: no usable onset envelope, skipped")
                    continue
                windows.append(analysis)
        return cls(windows, tuning)

    def __len__(self) -> int:
        return len(self.windows)


def tempo_support_score(profile: RhythmProfile, bpm: float) -> float:
    """Mean over windows of the best autocorrelation score near *bpm*'s period.

    Negative scores count as 0. Returns 0 when no window is usable.
    """
    if not math.isfinite(bpm) or bpm <= 0:
        return 0.0
    jitter = profile.tuning.support_lag_jitter
    padding = profile.tuning.slow_lag_padding
    total = 0.0
    n = 0
    for w in profile.windows:
        if w.scores is None:
            continue
        lag = int(round(60.0 * w.envelope.frame_rate / bpm))
        lo = max(w.lag_min, lag - jitter)
        hi = min(w.lag_max + padding, lag + jitter)
        best = float(w.scores[lo:hi + 1].max()) if hi >= lo else 0.0
        total += max(0.0, best)
        n += 1
    return total / n if n else 0.0


def beat_grid_energy(
    envelope: np.ndarray,
    frame_rate: float,
    bpm: float,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> tuple[float, float] | None:
    """Summed envelope energy on the beat grid and on the half-beat grid.

    The grid phase is the one (within a beat period) that collects the most
    on-beat energy, so a track that does not start on a beat still lines up.
    Returns None when the period is too short or no cycle fits.
    """
    if not math.isfinite(bpm) or bpm <= 0:
        return None
    period = 60.0 * frame_rate / bpm
    if period < tuning.min_period_frames:
        return None

    n = len(envelope)
    cycles = np.arange(tuning.beat_cycle_start, tuning.beat_cycle_stop)
    best: tuple[float, float] | None = None
    for phase in range(int(period)):
        on_idx = np.round(cycles * period).astype(int) + phase
        off_idx = np.round(cycles * period + period / 2).astype(int) + phase
        keep = off_idx < n
        if not keep.any():
            break
        on = float(envelope[on_idx[keep]].sum())
        off = float(envelope[off_idx[keep]].sum())
        if best is None or on > best[0]:
            best = (on, off)
    return best


def onbeat_dominance_for_tempo(envelope: OnsetEnvelope, bpm: float, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    energy = beat_grid_energy(envelope.samples, envelope.frame_rate, bpm, tuning)
    if energy is None:
        return 0.0
    on, off = energy
    return on / (off + _EPS)


def offbeat_ratio_for_tempo(envelope: OnsetEnvelope, bpm: float, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    energy = beat_grid_energy(envelope.samples, envelope.frame_rate, bpm, tuning)
    if energy is None:
        return 0.0
    on, off = energy
    return off / (on + _EPS)


def onbeat_dominance(profile: RhythmProfile, bpm: float) -> float:
    """On-beat / off-beat energy ratio averaged over the usable windows."""
    values = [onbeat_dominance_for_tempo(w.envelope, bpm, profile.tuning) for w in profile.windows]
    return sum(values) / len(values) if values else 0.0


def classify_beat_type(profile: RhythmProfile, bpm: float) -> tuple[BeatType, float]:
    """Straight vs breakbeat from the average off-beat ratio at *bpm*."""
    if not profile.windows:
        return BeatType.UNKNOWN, 0.0
    ratios = [offbeat_ratio_for_tempo(w.envelope, bpm, profile.tuning) for w in profile.windows]
    avg = sum(ratios) / len(ratios)
    if avg >= profile.tuning.breakbeat_offbeat_ratio:
        return BeatType.BREAKBEAT, avg
    return BeatType.STRAIGHT, avg


def meter_evidence(
    profile: RhythmProfile,
    bpm: float,
    weight: float,
    mode: BeatMode,
    support: float | None = None,
) -> MeterEvidence:
    """Score *bpm* as one harmonic branch of the refiner."""
    tuning = profile.tuning
    if support is None:
        support = tempo_support_score(profile, bpm)
    dominance = onbeat_dominance(profile, bpm)
    beat_type, breakbeat_score = classify_beat_type(profile, bpm)
    score = (
        support * weight
        + tuning.dominance_weight * math.log1p(min(dominance, tuning.dominance_cap))
        + plausibility_bonus(bpm, mode, tuning)
    )
    return MeterEvidence(
        bpm=bpm,
        support=support,
        onbeat_dominance=dominance,
        beat_type=beat_type,
        breakbeat_score=breakbeat_score,
        score=score,
    )


def support_for_samples(samples, sr, bpm: float, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    """One-off support score straight from samples."""
    return tempo_support_score(RhythmProfile.from_samples(samples, sr, tuning), bpm)
