"""Musical tempo priors per beat mode."""

from bpmsense.analysis.autocorrelation import fold_into_range
from bpmsense.analysis.clustering import cluster_rank
from bpmsense.analysis.models import BeatMode, TempoCluster
from bpmsense.analysis.tuning import DEFAULT_TUNING, PriorBand, TempoTuning


def smoothstep(x: float, edge0: float, edge1: float) -> float:
    t = min(1.0, max(0.0, (x - edge0) / (edge1 - edge0)))
    return t * t * (3 - 2 * t)


def band_prior(bpm: float, band: PriorBand) -> float:
    """Prior in [floor, 1]: 1 on the plateau, *floor* far outside it."""
    up = smoothstep(bpm, band.rise_start, band.rise_end)
    down = 1.0 - smoothstep(bpm, band.fall_start, band.fall_end)
    plateau = min(1.0, max(0.0, min(up, down)))
    return band.floor + (1.0 - band.floor) * plateau


def straight_prior(bpm: float, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    return band_prior(bpm, tuning.straight_prior)


def breakbeat_prior(bpm: float, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    # Slow tempos are unlikely breakbeat readings
    lo, hi = tuning.breakbeat_slow_band
    slowness = 1.0 - smoothstep(bpm, lo, hi)
    return band_prior(bpm, tuning.breakbeat_prior) * (1.0 - tuning.breakbeat_slow_penalty * slowness)


def mode_prior(bpm: float, mode: BeatMode, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    if mode is BeatMode.BREAKBEAT:
        return breakbeat_prior(bpm, tuning)
    return straight_prior(bpm, tuning)


def plausibility_bonus(bpm: float, mode: BeatMode, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    """Small additive prior for evidence scores; penalizes the phantom band."""
    bonus = tuning.plausibility_weight * mode_prior(bpm, mode, tuning)
    lo, hi = tuning.phantom_band
    if lo <= bpm <= hi:
        bonus -= tuning.phantom_penalty
    return bonus


def pick_seed(
    clusters: list[TempoCluster],
    mode: BeatMode,
    tuning: TempoTuning = DEFAULT_TUNING,
) -> float:
    """Choose the starting BPM for *mode*: cluster rank weighted by the mode prior.

    Ties keep the earlier (better ranked) cluster.
    """
    best = clusters[0]
    best_score = float("-inf")
    for cluster in clusters:
        score = cluster_rank(cluster, tuning) * mode_prior(cluster.center, mode, tuning)
        if score > best_score:
            best_score = score
            best = cluster
    return fold_into_range(best.center, tuning.min_bpm, tuning.max_bpm)
