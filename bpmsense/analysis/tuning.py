"""Tunable constants for the tempo engine, gathered in one table.

Every threshold, ratio and weight the engine uses lives here so that a
behaviour change is a data change. Values marked "re-validate" were hand-tuned
and have not been re-measured on a labelled corpus.
"""

from dataclasses import dataclass, field

from bpmsense.analysis.models import BeatMode

_BOTH_MODES = frozenset({BeatMode.STRAIGHT, BeatMode.BREAKBEAT})


@dataclass(frozen=True)
class AnalysisWindow:
    """A slice of the track analysed on its own."""
    start_seconds: float
    length_seconds: float


@dataclass(frozen=True)
class OnsetParams:
    hop_size: int = 128
    window_size: int = 1024
    smoothing_half_width: int = 4
    min_frames: int = 30  # envelopes this short are not autocorrelated


@dataclass(frozen=True)
class HarmonicVariant:
    multiple: float
    weight: float


@dataclass(frozen=True)
class PriorBand:
    """Smooth plateau: rises over (rise_start, rise_end), falls over (fall_start, fall_end)."""
    rise_start: float
    rise_end: float
    fall_start: float
    fall_end: float
    floor: float  # prior value outside the plateau


@dataclass(frozen=True)
class PromotionRule:
    """Gated slow -> fast tempo correction.

    Fires when the slow BPM sits in *source*, ``slow * factor`` sits in
    *target*, and the fast candidate's support clears ``ratio`` times the
    slow candidate's support.
    """
    name: str
    factor: float
    source: tuple[float, float]
    target: tuple[float, float]
    support_ratio: float
    modes: frozenset = _BOTH_MODES
    requires_breakbeat: bool = False
    # Looser ratio when the mode is breakbeat or the fast tempo reads as breakbeat
    breakbeat_ratio: float | None = None
    # Loosest ratio when breakbeat-ness clearly improved at the fast tempo
    improved_ratio: float | None = None

    def in_source(self, bpm: float) -> bool:
        return self.source[0] <= bpm <= self.source[1]

    def in_target(self, bpm: float) -> bool:
        return self.target[0] <= bpm <= self.target[1]


HARMONIC_VARIANTS: tuple[HarmonicVariant, ...] = (
    HarmonicVariant(1.0, 1.0),
    HarmonicVariant(0.5, 0.85),
    HarmonicVariant(2.0, 0.85),
    HarmonicVariant(2 / 3, 0.82),
    HarmonicVariant(3 / 2, 0.82),
    HarmonicVariant(3 / 4, 0.78),
    HarmonicVariant(4 / 3, 0.78),
)

PROMOTION_RULES: tuple[PromotionRule, ...] = (
    # Drum & bass played at half time reads as 105-130
    PromotionRule(
        name="breakbeat_halftime",
        factor=1.5,
        source=(105.0, 130.0),
        target=(155.0, 190.0),
        support_ratio=0.93,
        modes=frozenset({BeatMode.BREAKBEAT}),
        requires_breakbeat=True,
    ),
    PromotionRule(
        name="double_time",
        factor=2.0,
        source=(68.0, 88.0),
        target=(132.0, 180.0),
        support_ratio=0.90,
    ),
    # re-validate: the 3/2 ratios are the least settled values in this table
    PromotionRule(
        name="three_over_two",
        factor=1.5,
        source=(85.0, 130.0),
        target=(135.0, 195.0),
        support_ratio=0.55,
        breakbeat_ratio=0.50,
        improved_ratio=0.45,
    ),
    # Phantom-band fallbacks: looser than every three_over_two ratio so they
    # still catch what it rejects. re-validate: gate ratios
    PromotionRule(
        name="phantom_halftime",
        factor=1.5,
        source=(100.0, 115.0),
        target=(150.0, 175.0),
        support_ratio=0.40,
    ),
    PromotionRule(
        name="phantom_low",
        factor=1.5,
        source=(85.0, 100.0),
        target=(128.0, 150.0),
        support_ratio=0.40,
    ),
)


@dataclass(frozen=True)
class TempoTuning:
    """The complete parameter table for one engine instance."""

    # BPM search range
    min_bpm: float = 70.0
    max_bpm: float = 220.0

    # Analysis windows (skip the intro, cover roughly the first two minutes)
    windows: tuple[AnalysisWindow, ...] = (
        AnalysisWindow(10.0, 24.0),
        AnalysisWindow(45.0, 24.0),
        AnalysisWindow(80.0, 24.0),
        AnalysisWindow(115.0, 24.0),
    )
    min_window_seconds: float = 10.0

    onset: OnsetParams = field(default_factory=OnsetParams)

    # Autocorrelation peak picking
    top_k: int = 6
    min_peak_separation: int = 3  # lags
    min_peak_score: float = 0.0
    min_lag_span: int = 8
    # Extra lags scored past the slowest tempo so a peak right at min_bpm is a local max
    slow_lag_padding: int = 2

    # Hypotheses and clustering
    harmonic_variants: tuple[HarmonicVariant, ...] = HARMONIC_VARIANTS
    group_tolerance: float = 4.5  # BPM
    cluster_member_bonus: float = 0.15
    # Relative tolerance for merging through an integer ratio; None disables it
    harmonic_match_tolerance: float | None = None
    harmonic_match_ratios: tuple[float, ...] = (2.0, 3.0, 0.5, 1 / 3, 1.5, 2 / 3)

    # Preliminary progress callback
    preliminary_after_windows: int = 2
    preliminary_min_hypotheses: int = 4
    preliminary_confidence: int = 65

    # Meter evidence
    breakbeat_offbeat_ratio: float = 0.85
    beat_cycle_start: int = 2
    beat_cycle_stop: int = 80
    min_period_frames: float = 4.0
    support_lag_jitter: int = 2
    # Small next to support: dominance only separates branches with near-equal support
    dominance_weight: float = 0.02
    dominance_cap: float = 50.0
    breakbeat_improvement: float = 0.06

    # Local search
    refine_range_bpm: float = 8.0
    refine_step_bpm: float = 0.2

    # A faster branch at an integer multiple of the winner replaces it when its
    # support is nearly as high; the slower reading only repeats the same pulse
    pulse_multiples: tuple[int, ...] = (2, 3)
    pulse_match_tolerance: float = 0.03  # relative
    pulse_support_ratio: float = 0.9

    # Musical priors
    straight_prior: PriorBand = PriorBand(112.0, 120.0, 150.0, 162.0, floor=0.35)
    breakbeat_prior: PriorBand = PriorBand(120.0, 140.0, 190.0, 205.0, floor=0.55)
    # Breakbeat prior is scaled down by up to this much below the slow band
    breakbeat_slow_band: tuple[float, float] = (90.0, 115.0)
    breakbeat_slow_penalty: float = 0.5
    plausibility_weight: float = 0.06
    phantom_band: tuple[float, float] = (100.0, 115.0)
    phantom_penalty: float = 0.03

    promotions: tuple[PromotionRule, ...] = PROMOTION_RULES

    # Confidence
    agreement_max: float = 55.0
    margin_max: float = 45.0
    margin_scale: float = 70.0
    prior_bonus: float = 4.0
    prior_bonus_threshold: float = 0.9
    max_confidence: int = 99
    # No half-tempo rival: a periodic signal supports every whole-multiple period
    confidence_alternatives: tuple[float, ...] = (2.0, 2 / 3, 3 / 2)
    alternative_min_distance: float = 1.0


DEFAULT_TUNING = TempoTuning()
