"""
Test Results Module

Typed, immutable results for the three screening tests and the Session that
collects them.

Each builder takes the raw measurements a test produced (reaction times, hit
counts, the optional VideoAnalysisResult) and computes the scores once. The
Session holds at most one result per test type; when every required slot is
filled it hands a record to the storage callback and starts over.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import config
from utils import reaction_statistics, score_aggregator
from utils.reaction_statistics import FatigueMetrics
from utils.score_aggregator import AlertLevel, FatigueLevel
from utils.video_session_analyzer import TestType, VideoAnalysisResult

logger = logging.getLogger(__name__)


class NoFaceDetectedError(Exception):
    """No face was confirmed during a flash test; the user should retry."""

    def __init__(self, message: str = "No face detected. Center your face in the camera and retry the flash test."):
        super().__init__(message)


def _video_dict(video: Optional[VideoAnalysisResult]) -> Optional[dict]:
    return video.to_dict() if video is not None else None


@dataclass(frozen=True)
class SimpleTestResult:
    reaction_time: float
    movement_index: float
    neuro_score: int
    alert_level: AlertLevel
    fatigue_metrics: FatigueMetrics
    video_analysis: Optional[VideoAnalysisResult] = None

    test_type = TestType.SIMPLE

    @property
    def score(self) -> int:
        return self.neuro_score

    def to_dict(self) -> dict:
        out = {
            "reactionTime": self.reaction_time,
            "movementIndex": self.movement_index,
            "neuroScore": self.neuro_score,
            "alertLevel": self.alert_level.value,
            "fatigueMetrics": self.fatigue_metrics.to_dict(),
        }
        if self.video_analysis is not None:
            out["videoAnalysis"] = _video_dict(self.video_analysis)
        return out


@dataclass(frozen=True)
class DotGridTestResult:
    average_reaction_time: float
    hits: int
    misses: int
    errors: int
    dot_score: int
    fatigue_metrics: FatigueMetrics
    video_analysis: Optional[VideoAnalysisResult] = None

    test_type = TestType.DOTGRID

    @property
    def score(self) -> int:
        return self.dot_score

    def to_dict(self) -> dict:
        out = {
            "averageReactionTime": self.average_reaction_time,
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "dotScore": self.dot_score,
            "fatigueMetrics": self.fatigue_metrics.to_dict(),
        }
        if self.video_analysis is not None:
            out["videoAnalysis"] = _video_dict(self.video_analysis)
        return out


@dataclass(frozen=True)
class FlashTestResult:
    reaction_time_ms: float
    blink_latency_ms: int
    blink_count: int
    stability_score: int
    fatigue_level: FatigueLevel
    fatigue_score: int
    fatigue_metrics: FatigueMetrics
    video_analysis: Optional[VideoAnalysisResult] = None

    test_type = TestType.FLASH

    @property
    def score(self) -> int:
        return self.fatigue_score

    def to_dict(self) -> dict:
        out = {
            "reactionTimeMs": self.reaction_time_ms,
            "blinkLatencyMs": self.blink_latency_ms,
            "blinkCount": self.blink_count,
            "stabilityScore": self.stability_score,
            "fatigueLevel": self.fatigue_level.value,
            "fatigueScore": self.fatigue_score,
            "fatigueMetrics": self.fatigue_metrics.to_dict(),
        }
        if self.video_analysis is not None:
            out["videoAnalysis"] = _video_dict(self.video_analysis)
        return out


def build_simple_result(reaction_times: Sequence[float], misses: int = 0,
                        video: Optional[VideoAnalysisResult] = None) -> SimpleTestResult:
    """
    Score a simple reaction test. The headline reaction time is the mean of
    the recorded responses; movement comes from the video analysis when one ran.
    """
    metrics = reaction_statistics.compute(reaction_times, misses=misses, total_attempts=len(reaction_times) + misses)
    reaction = metrics.average_reaction_time
    movement = video.average_movement if video is not None else 0.0
    face = video.face_detected if video is not None else False
    score = score_aggregator.simple_test_score(reaction, movement, face) if metrics.has_data else 0
    return SimpleTestResult(
        reaction_time=round(reaction),
        movement_index=round(movement, 1),
        neuro_score=score,
        alert_level=AlertLevel.from_score(score),
        fatigue_metrics=metrics,
        video_analysis=video,
    )


def build_dot_grid_result(reaction_times: Sequence[float], misses: int, errors: int,
                          rounds: Optional[int] = None,
                          video: Optional[VideoAnalysisResult] = None) -> DotGridTestResult:
    """reaction_times holds one entry per hit; misses are timeouts, errors off-target clicks."""
    rounds = int(rounds or config.DOT_GRID_ROUNDS)
    hits = len(reaction_times)
    metrics = reaction_statistics.compute(reaction_times, misses=misses, total_attempts=rounds)
    average = metrics.average_reaction_time
    return DotGridTestResult(
        average_reaction_time=round(average),
        hits=hits,
        misses=int(misses),
        errors=int(errors),
        dot_score=score_aggregator.dot_grid_score(hits, misses, errors, average, rounds),
        fatigue_metrics=metrics,
        video_analysis=video,
    )


def blink_latency_ms(video: Optional[VideoAnalysisResult], flash_onset_ms: Optional[float]) -> int:
    """Delay from flash onset to the first blink that starts after it; 0 when none."""
    if video is None or flash_onset_ms is None or not video.blink_onsets_ms:
        return 0
    after = [onset - flash_onset_ms for onset in video.blink_onsets_ms if onset >= flash_onset_ms]
    return int(round(min(after))) if after else 0


def build_flash_result(video: VideoAnalysisResult, reaction_times: Sequence[float] = (),
                       flash_onset_ms: Optional[float] = None) -> FlashTestResult:
    """
    Score a flash test.

    Raises:
        NoFaceDetectedError: the recording never confirmed a face, so the
            pupil and blink figures mean nothing.
    """
    if video is None or not video.face_detected:
        raise NoFaceDetectedError()

    metrics = reaction_statistics.compute(reaction_times)
    score = score_aggregator.flash_score(video.attention_score, video.movement_variability, metrics)
    return FlashTestResult(
        reaction_time_ms=round(metrics.average_reaction_time) if metrics.has_data else 0,
        blink_latency_ms=blink_latency_ms(video, flash_onset_ms),
        blink_count=video.blink_count,
        stability_score=score_aggregator.stability_score(video.movement_variability),
        fatigue_level=FatigueLevel.from_score(score),
        fatigue_score=score,
        fatigue_metrics=metrics,
        video_analysis=video,
    )


class Session:
    """
    Up to one result per test type plus the derived combined score.

    Usage:
        session = Session(on_complete=store.save)
        session.attach(simple_result)
        ...
        session.attach(flash_result)   # hands the record off and resets

    attach() is serialized with a lock so the HTTP layer can share one Session.
    """

    def __init__(self, required: Optional[Sequence[str]] = None,
                 on_complete: Optional[Callable[[dict], None]] = None,
                 reset_on_complete: bool = True):
        self.required: List[str] = list(required if required is not None else config.REQUIRED_TESTS)
        self.on_complete = on_complete
        self.reset_on_complete = reset_on_complete
        self._results: Dict[TestType, object] = {}
        self._lock = threading.Lock()
        self.last_record: Optional[dict] = None
        # Result objects behind last_record, keyed by test type
        self.last_results: Dict[TestType, object] = {}

    @property
    def results(self) -> Dict[TestType, object]:
        return dict(self._results)

    def get(self, test_type) -> Optional[object]:
        return self._results.get(TestType.parse(test_type))

    def scores(self) -> Dict[str, Optional[int]]:
        scores = {t.value: None for t in TestType}
        for t, result in self._results.items():
            scores[t.value] = result.score
        return scores

    def is_complete(self) -> bool:
        return score_aggregator.is_complete(self.scores(), self.required)

    def combined_score(self) -> int:
        return score_aggregator.combined_score(self.scores(), self.required)

    def alert_level(self) -> Optional[AlertLevel]:
        if not self.is_complete():
            return None
        return AlertLevel.from_score(self.combined_score())

    def attach(self, result) -> Optional[dict]:
        """
        Store a finished test result, replacing any earlier one of the same type.
        Returns the handed-off record when this completed the session.
        """
        with self._lock:
            self._results[result.test_type] = result
            if not self.is_complete():
                return None
            record = self.to_record()
            self.last_record = record
            self.last_results = dict(self._results)
            if self.reset_on_complete:
                self._results = {}

        logger.info("Session complete: combined score %s", record["combinedScore"])
        if self.on_complete is not None:
            self.on_complete(record)
        return record

    def last_session(self) -> Tuple[Optional[dict], Dict[TestType, object]]:
        """The last handed-off record and its result objects, read together."""
        with self._lock:
            return self.last_record, dict(self.last_results)

    def reset(self, forget_last: bool = False) -> None:
        with self._lock:
            self._results = {}
            if forget_last:
                self.last_record = None
                self.last_results = {}

    def to_record(self) -> dict:
        """The shape the storage collaborator persists."""
        return {
            "id": "%d-%s" % (int(time.time() * 1000), uuid.uuid4().hex[:9]),
            "timestamp": int(time.time() * 1000),
            "results": {t.value: r.to_dict() for t, r in self._results.items()},
            "combinedScore": self.combined_score(),
        }
