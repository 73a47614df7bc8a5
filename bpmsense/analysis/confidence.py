"""Confidence score for a final tempo."""

from bpmsense.analysis.autocorrelation import fold_into_range
from bpmsense.analysis.models import BeatMode, TempoCluster
from bpmsense.analysis.priors import mode_prior
from bpmsense.analysis.support import RhythmProfile, tempo_support_score


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def closest_cluster(clusters: list[TempoCluster], bpm: float) -> TempoCluster | None:
    best = None
    best_distance = float("inf")
    for cluster in clusters:
        d = abs(cluster.center - bpm)
        if d < best_distance:
            best_distance = d
            best = cluster
    return best


def support_margin(profile: RhythmProfile, bpm: float) -> float:
    """Support of *bpm* minus the best support among its faster or triplet readings.

    Half tempo is not a rival: its period spans two beats of *bpm*, so its
    support follows the same pulse and only drifts with noise.
    """
    tuning = profile.tuning
    alternatives = [fold_into_range(bpm * r, tuning.min_bpm, tuning.max_bpm)
                    for r in tuning.confidence_alternatives]
    alternatives = [b for b in alternatives if abs(b - bpm) > tuning.alternative_min_distance]
    alt_support = max([tempo_support_score(profile, b) for b in alternatives] + [0.0])
    return tempo_support_score(profile, bpm) - alt_support


def compute_confidence(
    profile: RhythmProfile,
    bpm: float,
    clusters: list[TempoCluster],
    windows_analyzed: int,
    mode: BeatMode,
) -> int:
    """0-99: window agreement on the nearest cluster plus the support margin.

    Agreement counts distinct windows that contributed to the cluster closest
    to *bpm*; the margin is how much better *bpm* is supported than its
    double and triplet readings.
    """
    tuning = profile.tuning
    cluster = closest_cluster(clusters, bpm)
    agreeing = len(cluster.windows) if cluster is not None else 0
    agreement = _clamp(agreeing / max(windows_analyzed, 1) * tuning.agreement_max,
                       0.0, tuning.agreement_max)

    margin = _clamp(support_margin(profile, bpm) * tuning.margin_scale, 0.0, tuning.margin_max)

    bonus = tuning.prior_bonus if mode_prior(bpm, mode, tuning) >= tuning.prior_bonus_threshold else 0.0
    return int(round(_clamp(agreement + margin + bonus, 0.0, tuning.max_confidence)))
