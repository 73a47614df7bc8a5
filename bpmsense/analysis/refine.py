"""Harmonic refinement: pick the octave/triplet reading the signal supports best."""

import logging
import math

from bpmsense.analysis.autocorrelation import fold_into_range
from bpmsense.analysis.models import BeatMode, MeterEvidence
from bpmsense.analysis.support import RhythmProfile, meter_evidence, tempo_support_score
from bpmsense.analysis.tuning import HarmonicVariant, TempoTuning

logger = logging.getLogger(__name__)

_TIE_EPS = 1e-12
_PRIMARY = (HarmonicVariant(1.0, 1.0),)


def bring_into_range(bpm: float, tuning: TempoTuning) -> float:
    """Clamp a BPM within one search span of the range, fold anything further out."""
    if tuning.max_bpm < bpm <= tuning.max_bpm + tuning.refine_range_bpm:
        return tuning.max_bpm
    if tuning.min_bpm - tuning.refine_range_bpm <= bpm < tuning.min_bpm:
        return tuning.min_bpm
    return fold_into_range(bpm, tuning.min_bpm, tuning.max_bpm)


def fine_tune(profile: RhythmProfile, bpm: float) -> float:
    """Support-only local search around *bpm*, brought into range first.

    Support is piecewise constant in BPM, so several trials usually share the
    best score. The starting BPM is kept when it is one of them, otherwise the
    middle of the best trials is returned.
    """
    if not math.isfinite(bpm) or bpm <= 0:
        return bpm
    tuning = profile.tuning
    base = bring_into_range(bpm, tuning)
    steps = int(round(tuning.refine_range_bpm / tuning.refine_step_bpm))

    trials = []
    for i in range(-steps, steps + 1):
        b = base + i * tuning.refine_step_bpm
        if tuning.min_bpm <= b <= tuning.max_bpm:
            trials.append((b, tempo_support_score(profile, b)))

    base_support = tempo_support_score(profile, base)
    best_support = max([s for _, s in trials] + [base_support])
    if base_support >= best_support - _TIE_EPS:
        return base

    tied = [b for b, s in trials if s >= best_support - _TIE_EPS]
    return tied[len(tied) // 2]


def refine_harmonics(
    profile: RhythmProfile,
    seed: float,
    mode: BeatMode,
    fine_tune_only: bool = False,
) -> MeterEvidence:
    """Best-scoring harmonic branch around *seed*.

    Each branch multiplies the seed by a harmonic variant, folds and
    fine-tunes it, then scores it as meter evidence weighted by the variant.
    The top branch gives way to a faster one that carries the same pulse.
    With *fine_tune_only* only the seed itself is considered.
    """
    variants = _PRIMARY if fine_tune_only else profile.tuning.harmonic_variants

    best: MeterEvidence | None = None
    branches: list[MeterEvidence] = []
    for variant in variants:
        bpm = fine_tune(profile, seed * variant.multiple)
        if not math.isfinite(bpm) or bpm <= 0:
            continue
        evidence = meter_evidence(profile, bpm, variant.weight, mode)
        logger.debug(f"  branch x{variant.multiple:.3f}: {bpm:.2f} BPM, "
                     f"support={evidence.support:.3f}, dominance={evidence.onbeat_dominance:.2f}, "
                     f"score={evidence.score:.3f}")
        branches.append(evidence)
        if best is None or evidence.score > best.score:
            best = evidence

    if best is None:
        # Unusable seed; report it unchanged with no support
        return meter_evidence(profile, seed, 1.0, mode, support=0.0)
    return prefer_pulse(profile, best, branches)


def prefer_pulse(profile: RhythmProfile, best: MeterEvidence, branches: list[MeterEvidence]) -> MeterEvidence:
    """Swap *best* for the fastest branch that repeats it 2 or 3 times per beat.

    An impulse train supports every whole multiple of its period about equally,
    so a slower branch can outscore the real pulse on harmonic weight alone.
    """
    tuning = profile.tuning
    pulse = best
    for branch in branches:
        if branch.bpm <= pulse.bpm or branch.support < best.support * tuning.pulse_support_ratio:
            continue
        ratio = branch.bpm / best.bpm
        if any(abs(ratio - k) <= k * tuning.pulse_match_tolerance for k in tuning.pulse_multiples):
            pulse = branch
    if pulse is not best:
        logger.debug(f"  pulse: {best.bpm:.2f} -> {pulse.bpm:.2f} BPM "
                     f"(support {best.support:.3f} -> {pulse.support:.3f})")
    return pulse
