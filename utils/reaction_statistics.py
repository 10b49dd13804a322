"""
Reaction Statistics Module

PVT-style (psychomotor vigilance task) summary of reaction-time samples:
mean, population standard deviation, lapses (> 500 ms), false starts
(< 200 ms), error rate, and a categorical interpretation.

The interpretation is picked by an ordered rule cascade; the first matching
rule wins. The rules overlap, so order encodes severity:
  1. high alertness           - variability < 50 ms, no lapses, no false starts
  2. strong fatigue signal    - variability > 100 ms, > 2 lapses, or mean > 400 ms
  3. moderate fatigue         - 1-2 lapses
  4. possible attention issues - any false starts
  5. normal, minor variation
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Sequence, Tuple

import numpy as np

LAPSE_THRESHOLD_MS = 500.0
FALSE_START_THRESHOLD_MS = 200.0
LOW_VARIABILITY_MS = 50.0
HIGH_VARIABILITY_MS = 100.0
SLOW_MEAN_MS = 400.0


class FatigueInterpretation(Enum):
    """Categorical reading of a set of reaction times."""
    NO_DATA = "no data"
    HIGH_ALERTNESS = "high alertness"
    MODERATE_FATIGUE = "moderate fatigue"
    STRONG_FATIGUE = "strong fatigue signal"
    ATTENTION_ISSUES = "possible attention issues"
    NORMAL = "normal, minor variation"


class SampleKind(Enum):
    HIT = "hit"
    MISS = "miss"
    ERROR = "error"


@dataclass(frozen=True)
class ReactionSample:
    """One elapsed-time measurement (ms). Misses carry no meaningful time."""
    elapsed_ms: float
    kind: SampleKind = SampleKind.HIT


@dataclass(frozen=True)
class FatigueMetrics:
    """Reaction-time summary. reaction_time_variability is the population standard deviation."""
    average_reaction_time: float = 0.0
    reaction_time_variability: float = 0.0
    standard_deviation: float = 0.0
    lapses: int = 0
    false_starts: int = 0
    error_rate: float = 0.0
    interpretation: FatigueInterpretation = FatigueInterpretation.NO_DATA

    @property
    def has_data(self) -> bool:
        return self.interpretation is not FatigueInterpretation.NO_DATA

    def to_dict(self) -> dict:
        return {
            "averageReactionTime": self.average_reaction_time,
            "reactionTimeVariability": self.reaction_time_variability,
            "standardDeviation": self.standard_deviation,
            "lapses": self.lapses,
            "falseStarts": self.false_starts,
            "errorRate": self.error_rate,
            "interpretation": self.interpretation.value,
        }


NO_DATA = FatigueMetrics()

_Rule = Tuple[Callable[[float, float, int, int], bool], FatigueInterpretation]

_INTERPRETATION_RULES: List[_Rule] = [
    (lambda mean, var, lapses, fs: var < LOW_VARIABILITY_MS and lapses == 0 and fs == 0,
     FatigueInterpretation.HIGH_ALERTNESS),
    (lambda mean, var, lapses, fs: var > HIGH_VARIABILITY_MS or lapses > 2 or mean > SLOW_MEAN_MS,
     FatigueInterpretation.STRONG_FATIGUE),
    (lambda mean, var, lapses, fs: 1 <= lapses <= 2,
     FatigueInterpretation.MODERATE_FATIGUE),
    (lambda mean, var, lapses, fs: fs > 0,
     FatigueInterpretation.ATTENTION_ISSUES),
]


def interpret(mean: float, variability: float, lapses: int, false_starts: int) -> FatigueInterpretation:
    for predicate, label in _INTERPRETATION_RULES:
        if predicate(mean, variability, lapses, false_starts):
            return label
    return FatigueInterpretation.NORMAL


def compute(samples: Sequence[float], misses: int = 0, total_attempts: int = 0) -> FatigueMetrics:
    """
    Summarize reaction times in ms.

    Args:
        samples: elapsed times of the responses that happened
        misses: attempts with no response (timeouts)
        total_attempts: planned attempts; the error-rate denominator is
            max(total_attempts, len(samples) + misses)

    Returns:
        FatigueMetrics; the NO_DATA sentinel when samples is empty.
    """
    values = np.asarray([float(s) for s in samples], dtype=np.float64)
    if values.size == 0:
        return NO_DATA

    misses = max(0, int(misses))
    mean = float(values.mean())
    std = float(values.std())
    lapses = int((values > LAPSE_THRESHOLD_MS).sum())
    false_starts = int((values < FALSE_START_THRESHOLD_MS).sum())
    denominator = max(int(total_attempts), int(values.size) + misses)
    error_rate = 100.0 * (misses + false_starts) / denominator

    return FatigueMetrics(
        average_reaction_time=round(mean, 1),
        reaction_time_variability=round(std, 1),
        standard_deviation=round(std, 1),
        lapses=lapses,
        false_starts=false_starts,
        error_rate=round(error_rate, 1),
        interpretation=interpret(mean, std, lapses, false_starts),
    )


def compute_from_samples(samples: Sequence[ReactionSample], total_attempts: int = 0) -> FatigueMetrics:
    """Tagged-sample variant: hits are timed, misses and errors count toward the error rate."""
    hits = [s.elapsed_ms for s in samples if s.kind is SampleKind.HIT]
    misses = sum(1 for s in samples if s.kind in (SampleKind.MISS, SampleKind.ERROR))
    return compute(hits, misses=misses, total_attempts=max(total_attempts, len(samples)))

