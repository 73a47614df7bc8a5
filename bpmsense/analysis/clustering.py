"""Consensus tempo from weighted hypotheses."""

from bpmsense.analysis.models import TempoCluster, TempoHypothesis
from bpmsense.analysis.tuning import DEFAULT_TUNING, TempoTuning


def cluster_rank(cluster: TempoCluster, tuning: TempoTuning = DEFAULT_TUNING) -> float:
    """Ranking key: total weight plus a small bonus per corroborating member."""
    return cluster.weight_sum + len(cluster.members) * tuning.cluster_member_bonus


def _harmonic_match(
    bpm: float,
    cluster: TempoCluster,
    tuning: TempoTuning,
) -> float | None:
    """Return *bpm* rescaled into the cluster's octave if it is an integer-ratio match."""
    tol = tuning.harmonic_match_tolerance
    if tol is None or cluster.center <= 0:
        return None
    for ratio in tuning.harmonic_match_ratios:
        target = cluster.center * ratio
        if abs(bpm - target) <= tol * target:
            return bpm / ratio
    return None


def cluster_hypotheses(
    hypotheses: list[TempoHypothesis],
    tuning: TempoTuning = DEFAULT_TUNING,
) -> list[TempoCluster]:
    """Merge nearby hypotheses into clusters, best cluster first.

    Hypotheses are visited in (bpm, weight) order so the result does not
    depend on the order they were gathered in.
    """
    clusters: list[TempoCluster] = []
    for h in sorted(hypotheses, key=lambda h: (h.bpm, h.weight, h.window)):
        target = None
        rescaled = None
        for c in clusters:
            if abs(h.bpm - c.center) <= tuning.group_tolerance:
                target = c
                break
        if target is None:
            for c in clusters:
                rescaled = _harmonic_match(h.bpm, c, tuning)
                if rescaled is not None:
                    target = c
                    break

        if target is None:
            clusters.append(TempoCluster.start(h))
        else:
            target.add(h, bpm=rescaled)

    clusters.sort(key=lambda c: cluster_rank(c, tuning), reverse=True)
    return clusters
