"""Core data models for tempo analysis."""

from dataclasses import dataclass, field
from enum import Enum

import numpy as np


class BeatMode(str, Enum):
    """Caller intent: which meter heuristics apply."""
    AUTO = "auto"
    STRAIGHT = "straight"
    BREAKBEAT = "breakbeat"

    @classmethod
    def parse(cls, value) -> "BeatMode":
        """Coerce *value* to a BeatMode, falling back to AUTO."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.AUTO


class BeatType(str, Enum):
    """Detected meter feel."""
    STRAIGHT = "straight"
    BREAKBEAT = "breakbeat"
    UNKNOWN = "unknown"


@dataclass
class OnsetEnvelope:
    """Frame-rate energy flux, normalized to [0, 1]."""
    samples: np.ndarray
    frame_rate: float  # frames per second

    def __len__(self) -> int:
        return len(self.samples)


@dataclass
class TempoCandidate:
    """One autocorrelation peak converted to BPM."""
    bpm: float
    score: float


@dataclass
class TempoHypothesis:
    """A weighted BPM guess from a single analysis window."""
    bpm: float
    weight: float
    window: int = 0  # index of the analysis window that produced it


@dataclass
class TempoCluster:
    """Nearby hypotheses merged into a consensus tempo."""
    center: float
    members: list[TempoHypothesis] = field(default_factory=list)
    weight_sum: float = 0.0

    @classmethod
    def start(cls, hypothesis: TempoHypothesis) -> "TempoCluster":
        return cls(center=hypothesis.bpm, members=[hypothesis], weight_sum=hypothesis.weight)

    def add(self, hypothesis: TempoHypothesis, bpm: float | None = None) -> None:
        """Merge *hypothesis*, updating the weighted mean incrementally.

        *bpm* overrides the hypothesis tempo when it was matched through a
        harmonic ratio and has to be rescaled to this cluster's octave.
        """
        value = hypothesis.bpm if bpm is None else bpm
        total = self.weight_sum + hypothesis.weight
        if total > 0:
            self.center += (value - self.center) * (hypothesis.weight / total)
        self.weight_sum = total
        self.members.append(hypothesis)

    @property
    def windows(self) -> set[int]:
        """Distinct analysis windows that contributed to this cluster."""
        return {h.window for h in self.members}


@dataclass
class MeterEvidence:
    """How well one BPM explains the signal, plus its meter reading."""
    bpm: float
    support: float
    onbeat_dominance: float
    beat_type: BeatType
    breakbeat_score: float
    score: float


@dataclass(frozen=True)
class TempoResult:
    """Final tempo estimate returned to callers."""
    bpm: float
    confidence: int  # 0-99
    beat_type_auto: BeatType
    breakbeat_score: float
    beat_mode: BeatMode

    def to_dict(self) -> dict:
        return {
            "bpm": self.bpm,
            "confidence": self.confidence,
            "beat_type_auto": self.beat_type_auto.value,
            "breakbeat_score": self.breakbeat_score,
            "beat_mode": self.beat_mode.value,
        }


@dataclass(frozen=True)
class ProgressUpdate:
    """Early low-fidelity estimate delivered while windows are still pending."""
    bpm: float
    confidence: int
    windows_processed: int
    beat_type_auto: BeatType = BeatType.UNKNOWN
    breakbeat_score: float = 0.0
    preliminary: bool = True
