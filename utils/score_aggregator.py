"""
Score Aggregator Module

Turns per-test measurements into 0-100 scores and the combined NeuroScore.

- Simple test: reaction-time bucket minus a movement penalty (only with a
  confirmed face; pixel motion without a face says nothing about alertness)
- Dot grid: accuracy and speed blend minus per-error and per-miss penalties
- Flash: attention and stability blend adjusted by reaction-time fatigue signs
- Combined: mean of per-test scores, valid only when every required test is in
"""

from enum import Enum
from typing import Dict, Optional, Sequence

import config
from utils.reaction_statistics import FatigueMetrics

# Reaction-time score table: (upper bound ms, score). The first band is exclusive
# (<200 ms is anticipatory and scores below the 200-300 band), the rest inclusive.
_ANTICIPATORY_MS = 200.0
_ANTICIPATORY_SCORE = 85
_REACTION_BUCKETS = ((300.0, 100), (500.0, 80), (700.0, 60))
_REACTION_FLOOR_SCORE = 30

MOVEMENT_PENALTY_START = 20.0
MOVEMENT_PENALTY_KNEE = 50.0
MOVEMENT_PENALTY_LOW_RATE = 0.3
MOVEMENT_PENALTY_HIGH_RATE = 0.6

DOT_ACCURACY_WEIGHT = 0.7
DOT_SPEED_WEIGHT = 0.3
DOT_ERROR_PENALTY = 5
DOT_MISS_PENALTY = 3

FLASH_ATTENTION_WEIGHT = 0.6
FLASH_STABILITY_WEIGHT = 0.4
FLASH_LAPSE_PENALTY = 5
FLASH_FALSE_START_PENALTY = 5
FLASH_VARIABILITY_PENALTY = 10
FLASH_HIGH_VARIABILITY_MS = 100.0


class AlertLevel(Enum):
    """Alert classification shared by every score type."""
    HIGH_ALERTNESS = "High Alertness"
    NORMAL = "Normal"
    COGNITIVE_FATIGUE = "Cognitive Fatigue Detected"

    @classmethod
    def from_score(cls, score: float) -> "AlertLevel":
        if score >= 75:
            return cls.HIGH_ALERTNESS
        if score >= 50:
            return cls.NORMAL
        return cls.COGNITIVE_FATIGUE


class FatigueLevel(Enum):
    """Three-level label for the flash test."""
    FRESH = "Fresh"
    NORMAL = "Normal"
    FATIGUED = "Fatigued"

    @classmethod
    def from_score(cls, score: float) -> "FatigueLevel":
        if score >= 75:
            return cls.FRESH
        if score < 50:
            return cls.FATIGUED
        return cls.NORMAL


def _clamp(value: float) -> int:
    return int(round(max(0.0, min(100.0, value))))


def reaction_time_bucket(reaction_ms: float) -> int:
    """Fixed score table for a single reaction time."""
    if reaction_ms < _ANTICIPATORY_MS:
        return _ANTICIPATORY_SCORE
    for upper, score in _REACTION_BUCKETS:
        if reaction_ms <= upper:
            return score
    return _REACTION_FLOOR_SCORE


def movement_penalty(movement: float) -> float:
    """Piecewise linear: nothing up to 20, 0.3/unit to 50, 0.6/unit beyond."""
    if movement <= MOVEMENT_PENALTY_START:
        return 0.0
    low_span = min(movement, MOVEMENT_PENALTY_KNEE) - MOVEMENT_PENALTY_START
    penalty = low_span * MOVEMENT_PENALTY_LOW_RATE
    if movement > MOVEMENT_PENALTY_KNEE:
        penalty += (movement - MOVEMENT_PENALTY_KNEE) * MOVEMENT_PENALTY_HIGH_RATE
    return penalty


def simple_test_score(reaction_ms: float, movement: float = 0.0, face_detected: bool = False) -> int:
    score = float(reaction_time_bucket(reaction_ms))
    if face_detected:
        score -= movement_penalty(movement)
    return _clamp(score)


def dot_grid_score(hits: int, misses: int, errors: int, average_reaction_ms: float,
                   rounds: Optional[int] = None) -> int:
    rounds = int(rounds or config.DOT_GRID_ROUNDS)
    accuracy = 100.0 * max(0, hits) / max(1, rounds)
    speed = float(reaction_time_bucket(average_reaction_ms)) if hits > 0 else 0.0
    score = DOT_ACCURACY_WEIGHT * accuracy + DOT_SPEED_WEIGHT * speed
    score -= DOT_ERROR_PENALTY * max(0, errors) + DOT_MISS_PENALTY * max(0, misses)
    return _clamp(score)


def stability_score(movement_variability: float) -> int:
    """100 at a perfectly steady head, 0 at a variability of 50."""
    return _clamp(100.0 - 2.0 * movement_variability)


def flash_score(attention: float, movement_variability: float,
                metrics: Optional[FatigueMetrics] = None) -> int:
    score = (FLASH_ATTENTION_WEIGHT * attention
             + FLASH_STABILITY_WEIGHT * stability_score(movement_variability))
    if metrics is not None and metrics.has_data:
        score -= FLASH_LAPSE_PENALTY * metrics.lapses
        score -= FLASH_FALSE_START_PENALTY * metrics.false_starts
        if metrics.reaction_time_variability > FLASH_HIGH_VARIABILITY_MS:
            score -= FLASH_VARIABILITY_PENALTY
    return _clamp(score)


def combined_score(scores: Dict[str, Optional[float]],
                   required: Optional[Sequence[str]] = None) -> int:
    """
    Rounded mean of the per-test scores, or 0 when any required test is missing.

    A partial session never reports a partial average; callers tell the 0
    sentinel apart from a real zero with is_complete().
    """
    required = list(required if required is not None else config.REQUIRED_TESTS)
    if not is_complete(scores, required):
        return 0
    values = [float(v) for v in scores.values() if v is not None]
    if not values:
        return 0
    return int(round(sum(values) / len(values)))


def is_complete(scores: Dict[str, Optional[float]], required: Optional[Sequence[str]] = None) -> bool:
    required = list(required if required is not None else config.REQUIRED_TESTS)
    return all(scores.get(name) is not None for name in required)
