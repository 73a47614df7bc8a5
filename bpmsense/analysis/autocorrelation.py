"""Autocorrelation tempo candidates from an onset envelope."""

import math

import numpy as np

from bpmsense.analysis.models import OnsetEnvelope, TempoCandidate
from bpmsense.analysis.tuning import DEFAULT_TUNING, TempoTuning

_EPS = 1e-12


def fold_into_range(bpm: float, min_bpm: float, max_bpm: float) -> float:
    """Fold *bpm* into [min_bpm, max_bpm] by repeated doubling/halving."""
    if not math.isfinite(bpm) or bpm <= 0:
        return bpm
    while bpm < min_bpm:
        bpm *= 2
    while bpm > max_bpm:
        bpm /= 2
    return bpm


def lag_range(frame_rate: float, min_bpm: float, max_bpm: float) -> tuple[int, int]:
    """Lags (in frames) covering the BPM range; fast tempo = short lag."""
    lag_min = int(math.floor(60.0 * frame_rate / max_bpm))
    lag_max = int(math.floor(60.0 * frame_rate / min_bpm))
    return lag_min, lag_max


def pearson_autocorr_scores(
    envelope: np.ndarray,
    lag_min: int,
    lag_max: int,
) -> np.ndarray | None:
    """Normalized autocorrelation for every lag in [lag_min, lag_max].

    The returned array is indexed by lag (entries outside the range are 0).
    Returns None for a flat envelope.
    """
    x = np.asarray(envelope, dtype=np.float64)
    x = x - x.mean()
    denom = float(np.dot(x, x))
    if denom <= _EPS:
        return None

    scores = np.zeros(lag_max + 2)
    n = len(x)
    for lag in range(max(lag_min, 1), min(lag_max, n - 1) + 1):
        scores[lag] = np.dot(x[:n - lag], x[lag:]) / denom
    return scores


def parabolic_refine(scores: np.ndarray, lag: int) -> float:
    """Sub-frame peak position from the peak and its two neighbours."""
    if lag < 1 or lag > len(scores) - 2:
        return float(lag)
    s_l, s_0, s_r = scores[lag - 1], scores[lag], scores[lag + 1]
    denom = s_l - 2 * s_0 + s_r
    if abs(denom) < _EPS:
        return float(lag)
    offset = 0.5 * (s_l - s_r) / denom
    return lag + float(np.clip(offset, -1.0, 1.0))


def pick_peaks(
    scores: np.ndarray,
    lag_min: int,
    lag_max: int,
    top_k: int,
    min_separation: int,
    min_score: float = 0.0,
) -> list[int]:
    """Strongest local maxima, at least *min_separation* lags apart."""
    lags = np.arange(lag_min + 1, lag_max)
    if len(lags) == 0:
        return []
    s = scores[lags]
    is_peak = (s > scores[lags - 1]) & (s > scores[lags + 1]) & (s > min_score)
    peak_lags = lags[is_peak]
    # Stable sort keeps shorter lags first among equal scores
    order = np.argsort(-scores[peak_lags], kind="stable")

    picked: list[int] = []
    for lag in peak_lags[order]:
        if len(picked) >= top_k:
            break
        if any(abs(int(lag) - q) < min_separation for q in picked):
            continue
        picked.append(int(lag))
    return picked


def tempo_candidates(
    envelope: OnsetEnvelope,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> list[TempoCandidate] | None:
    """Ranked BPM candidates for one onset envelope.

    Returns None when the lag range is too narrow or the envelope is flat.
    """
    lag_min, lag_max = lag_range(envelope.frame_rate, tuning.min_bpm, tuning.max_bpm)
    if lag_max <= lag_min + tuning.min_lag_span:
        return None

    scores = pearson_autocorr_scores(envelope.samples, lag_min, lag_max + tuning.slow_lag_padding)
    if scores is None:
        return None
    return candidates_from_scores(scores, envelope.frame_rate, lag_min, lag_max, tuning)


def candidates_from_scores(
    scores: np.ndarray,
    frame_rate: float,
    lag_min: int,
    lag_max: int,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> list[TempoCandidate]:
    """Peak-pick an autocorrelation score array into BPM candidates.

    *scores* must cover *lag_max* plus the slow-end padding, so a tempo whose
    period falls just past the last whole lag can still peak. Sub-frame
    refinement that lands past either end of the BPM range is clamped to it
    rather than folded an octave away.
    """
    peaks = pick_peaks(
        scores, lag_min, lag_max + tuning.slow_lag_padding,
        top_k=tuning.top_k,
        min_separation=tuning.min_peak_separation,
        min_score=tuning.min_peak_score,
    )

    candidates = []
    for lag in peaks:
        refined = parabolic_refine(scores, lag)
        # Every picked lag lies in the scanned range, so an overshoot is the range edge
        bpm = min(max(60.0 * frame_rate / refined, tuning.min_bpm), tuning.max_bpm)
        candidates.append(TempoCandidate(
            bpm=bpm,
            score=float(scores[lag]),
        ))
    return candidates
