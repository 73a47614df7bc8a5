"""Tests for harmonic refinement, tempo promotion and confidence."""

import math

import numpy as np
import pytest

from bpmsense.analysis.autocorrelation import lag_range
from bpmsense.analysis.clustering import cluster_hypotheses
from bpmsense.analysis.confidence import closest_cluster, compute_confidence, support_margin
from bpmsense.analysis.models import (
    BeatMode,
    BeatType,
    MeterEvidence,
    OnsetEnvelope,
    TempoCluster,
    TempoHypothesis,
)
from bpmsense.analysis.promotion import promote_tempo, required_ratio
from bpmsense.analysis.refine import bring_into_range, fine_tune, prefer_pulse, refine_harmonics
from bpmsense.analysis.support import RhythmProfile, WindowAnalysis, classify_beat_type, tempo_support_score
from bpmsense.analysis.tuning import DEFAULT_TUNING, PROMOTION_RULES
from tests.conftest import SR, generate_click_track


@pytest.fixture(scope="module")
def profile_160():
    return RhythmProfile.from_samples(generate_click_track(bpm=160, noise=0.05), SR)


def _rule(name):
    return next(r for r in PROMOTION_RULES if r.name == name)


def test_fine_tune_keeps_supported_start(profile_128):
    assert fine_tune(profile_128, 128.0) == pytest.approx(128.0)


def test_fine_tune_moves_toward_support(profile_128):
    tuned = fine_tune(profile_128, 119.0)
    assert 123.0 < tuned <= 127.0
    assert tempo_support_score(profile_128, tuned) > tempo_support_score(profile_128, 119.0)


def test_fine_tune_folds_first(profile_128):
    assert 120.0 <= fine_tune(profile_128, 256.0) <= 136.0


def test_fine_tune_invalid_bpm(profile_128):
    assert math.isnan(fine_tune(profile_128, float("nan")))
    assert fine_tune(profile_128, -1.0) == -1.0


def test_refine_recovers_from_half_tempo_seed(profile_128):
    evidence = refine_harmonics(profile_128, 85.3, BeatMode.STRAIGHT)
    assert evidence.bpm == pytest.approx(128, abs=2)


def test_refine_fine_tune_only_stays_near_seed(profile_128):
    evidence = refine_harmonics(profile_128, 100.0, BeatMode.STRAIGHT, fine_tune_only=True)
    assert 92.0 <= evidence.bpm <= 108.0


def test_promotion_rules_only_go_up():
    for rule in PROMOTION_RULES:
        assert rule.factor > 1
        assert rule.target[0] > rule.source[0]


def test_required_ratio():
    rule = _rule("three_over_two")
    assert required_ratio(rule, BeatMode.STRAIGHT, BeatType.STRAIGHT, 0.3, 0.31, 0.06) == 0.55
    assert required_ratio(rule, BeatMode.BREAKBEAT, BeatType.STRAIGHT, 0.3, 0.31, 0.06) == 0.50
    assert required_ratio(rule, BeatMode.STRAIGHT, BeatType.BREAKBEAT, 0.3, 0.31, 0.06) == 0.50
    assert required_ratio(rule, BeatMode.STRAIGHT, BeatType.STRAIGHT, 0.3, 0.40, 0.06) == 0.45

    plain = _rule("double_time")
    assert required_ratio(plain, BeatMode.BREAKBEAT, BeatType.BREAKBEAT, 0.0, 1.0, 0.06) == 0.90


def test_double_time_promotion_fires(profile_160):
    bpm, applied = promote_tempo(profile_160, 80.0, BeatMode.STRAIGHT)
    assert applied == ["double_time"]
    assert bpm == pytest.approx(160, abs=2)


def test_unsupported_promotion_is_gated(profile_128):
    # 128 sits in the 3/2 source band but 192 has no support
    bpm, applied = promote_tempo(profile_128, 128.0, BeatMode.STRAIGHT)
    assert applied == []
    assert bpm == 128.0


def test_breakbeat_rule_needs_breakbeat_mode(profile_128):
    _, applied = promote_tempo(profile_128, 110.0, BeatMode.STRAIGHT)
    assert "breakbeat_halftime" not in applied


def test_closest_cluster():
    clusters = [TempoCluster.start(TempoHypothesis(b, 1.0)) for b in (90.0, 128.0, 170.0)]
    assert closest_cluster(clusters, 131.0).center == 128.0
    assert closest_cluster([], 131.0) is None


def test_support_margin_positive_at_true_tempo(profile_128):
    assert support_margin(profile_128, 128) > 0.2
    assert support_margin(profile_128, 192) < 0


def test_confidence_range(profile_128):
    hyps = [TempoHypothesis(128.0, 0.8, window=0), TempoHypothesis(128.3, 0.8, window=1)]
    clusters = cluster_hypotheses(hyps)

    full = compute_confidence(profile_128, 128.0, clusters, 2, BeatMode.STRAIGHT)
    assert isinstance(full, int)
    assert 55 <= full <= 99

    # Half the windows agreeing costs agreement points
    partial = compute_confidence(profile_128, 128.0, clusters, 4, BeatMode.STRAIGHT)
    assert partial < full

    wrong = compute_confidence(profile_128, 192.0, clusters, 2, BeatMode.STRAIGHT)
    assert wrong < full


# Hand-built profiles: one window at 100 frames/s with chosen support levels

FRAME_RATE = 100.0


def _profile(support: dict[float, float], event_period: int | None = None) -> RhythmProfile:
    """Profile whose support at each BPM in *support* is the given value, 0 elsewhere.

    *event_period* puts envelope impulses every that many frames; without it the
    envelope is flat and every tempo reads as straight.
    """
    tuning = DEFAULT_TUNING
    lag_min, lag_max = lag_range(FRAME_RATE, tuning.min_bpm, tuning.max_bpm)
    scores = np.zeros(lag_max + tuning.slow_lag_padding + 2)
    for bpm, value in support.items():
        scores[int(round(60.0 * FRAME_RATE / bpm))] = value

    samples = np.zeros(4200)
    if event_period is not None:
        samples[::event_period] = 1.0
    window = WindowAnalysis(
        index=0,
        envelope=OnsetEnvelope(samples=samples, frame_rate=FRAME_RATE),
        scores=scores,
        lag_min=lag_min,
        lag_max=lag_max,
    )
    return RhythmProfile([window], tuning)


def test_breakbeat_halftime_fires():
    # Events every half beat at 120 BPM make the slow reading a breakbeat
    profile = _profile({120.0: 0.5, 180.0: 0.5}, event_period=25)
    bpm, applied = promote_tempo(profile, 120.0, BeatMode.BREAKBEAT)

    assert applied == ["breakbeat_halftime"]
    assert bpm == pytest.approx(180.0)


def test_three_over_two_uses_breakbeat_ratio():
    # 0.52 clears the breakbeat ratio (0.50) but not the straight one (0.55)
    profile = _profile({100.0: 1.0, 150.0: 0.52})
    bpm, applied = promote_tempo(profile, 100.0, BeatMode.BREAKBEAT)

    assert applied == ["three_over_two"]
    assert bpm == pytest.approx(150.0)


def test_three_over_two_uses_improved_ratio():
    # Beats every 60 frames: straight at 100 BPM, half-beat hits at 150 BPM
    profile = _profile({100.0: 1.0, 150.0: 0.47}, event_period=60)
    _, slow_score = classify_beat_type(profile, 100.0)
    _, fast_score = classify_beat_type(profile, 150.0)
    assert fast_score - slow_score >= DEFAULT_TUNING.breakbeat_improvement

    bpm, applied = promote_tempo(profile, 100.0, BeatMode.STRAIGHT)
    assert applied == ["three_over_two"]
    assert bpm == pytest.approx(150.0)


def test_phantom_halftime_catches_what_three_over_two_rejects():
    profile = _profile({100.0: 1.0, 150.0: 0.52})
    bpm, applied = promote_tempo(profile, 100.0, BeatMode.STRAIGHT)

    assert applied == ["phantom_halftime"]
    assert bpm == pytest.approx(150.0)


def test_phantom_low_fires():
    # 87 * 1.5 = 130.5 is below the three_over_two target band
    profile = _profile({87.0: 1.0, 130.5: 0.6})
    bpm, applied = promote_tempo(profile, 87.0, BeatMode.STRAIGHT)

    assert applied == ["phantom_low"]
    assert bpm == pytest.approx(130.5)


def test_weak_fast_support_is_not_promoted():
    profile = _profile({100.0: 1.0, 150.0: 0.3})
    bpm, applied = promote_tempo(profile, 100.0, BeatMode.STRAIGHT)

    assert applied == []
    assert bpm == 100.0


def test_prefer_pulse_takes_fastest_whole_multiple():
    profile = _profile({})
    slow = MeterEvidence(73.3, 0.96, 50.0, BeatType.STRAIGHT, 0.0, score=0.9)
    double = MeterEvidence(146.7, 0.1, 1.0, BeatType.STRAIGHT, 0.9, score=0.2)
    triple = MeterEvidence(220.0, 0.98, 50.0, BeatType.STRAIGHT, 0.0, score=0.88)
    triplet = MeterEvidence(110.0, 0.97, 1.0, BeatType.BREAKBEAT, 1.0, score=0.8)

    assert prefer_pulse(profile, slow, [slow, double, triple, triplet]) is triple
    assert prefer_pulse(profile, slow, [slow, double, triplet]) is slow


def test_bring_into_range_clamps_near_misses():
    assert bring_into_range(220.4, DEFAULT_TUNING) == 220.0
    assert bring_into_range(69.8, DEFAULT_TUNING) == 70.0
    assert bring_into_range(256.0, DEFAULT_TUNING) == pytest.approx(128.0)
    assert bring_into_range(50.0, DEFAULT_TUNING) == pytest.approx(100.0)


def test_support_margin_ignores_half_tempo():
    # 75 BPM repeats the 150 BPM pulse and is not a rival
    assert support_margin(_profile({150.0: 0.8, 75.0: 0.9}), 150.0) == pytest.approx(0.8)
    # 100 BPM (x2/3) is
    assert support_margin(_profile({150.0: 0.8, 100.0: 0.5}), 150.0) == pytest.approx(0.3)
