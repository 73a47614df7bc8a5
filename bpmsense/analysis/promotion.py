"""Gated slow-to-fast tempo corrections for common octave and triplet errors."""

import logging

from bpmsense.analysis.models import BeatMode, BeatType
from bpmsense.analysis.refine import fine_tune
from bpmsense.analysis.support import RhythmProfile, classify_beat_type, tempo_support_score
from bpmsense.analysis.tuning import PromotionRule

logger = logging.getLogger(__name__)


def required_ratio(
    rule: PromotionRule,
    mode: BeatMode,
    fast_type: BeatType,
    slow_breakbeat: float,
    fast_breakbeat: float,
    improvement: float,
) -> float:
    """Support ratio the fast candidate has to clear for *rule* to fire."""
    if rule.improved_ratio is not None and fast_breakbeat - slow_breakbeat >= improvement:
        return rule.improved_ratio
    if rule.breakbeat_ratio is not None and (mode is BeatMode.BREAKBEAT or fast_type is BeatType.BREAKBEAT):
        return rule.breakbeat_ratio
    return rule.support_ratio


def promote_tempo(
    profile: RhythmProfile,
    bpm: float,
    mode: BeatMode,
) -> tuple[float, list[str]]:
    """Apply the promotion table in order.

    Every rule moves the tempo up by its factor and the result is fine-tuned
    without harmonic swapping, so a promoted tempo is never demoted again.
    Returns the final BPM and the names of the rules that fired.
    """
    tuning = profile.tuning
    applied: list[str] = []

    for rule in tuning.promotions:
        if mode not in rule.modes or not rule.in_source(bpm):
            continue
        fast = bpm * rule.factor
        if not rule.in_target(fast):
            continue

        fast_support = tempo_support_score(profile, fast)
        if fast_support <= 0:
            continue
        slow_support = tempo_support_score(profile, bpm)

        slow_type, slow_breakbeat = classify_beat_type(profile, bpm)
        fast_type, fast_breakbeat = classify_beat_type(profile, fast)
        if rule.requires_breakbeat and BeatType.BREAKBEAT not in (slow_type, fast_type):
            continue

        ratio = required_ratio(rule, mode, fast_type, slow_breakbeat, fast_breakbeat,
                               tuning.breakbeat_improvement)
        if fast_support < slow_support * ratio:
            continue

        promoted = fine_tune(profile, fast)
        logger.debug(f"  {rule.name}: {bpm:.2f} -> {promoted:.2f} BPM "
                     f"(support {slow_support:.3f} -> {fast_support:.3f}, ratio {ratio:.2f})")
        applied.append(rule.name)
        bpm = promoted

    return bpm, applied
