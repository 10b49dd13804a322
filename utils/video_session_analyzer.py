"""
Video Session Analyzer

Orchestrates one test's recording window:
  start_session() -> on_frame(buffer) per sampled still -> end_session()

Each frame is scored against the previous one (MotionAnalyzer) and reduced
to an eye-region sample (BlinkAndPupilAnalyzer) as it arrives, so only a
bounded window of raw frames is kept for the face-presence check.

end_session() produces an immutable VideoAnalysisResult:
- movement statistics over the movement series (population stdev)
- head_movement = movement variability (stability proxy)
- blinks and, for the flash test, pupil response
- attention score = 100 - 0.5*avg - 0.3*stdev (+10 for a flash constriction)
- micro-expression count: a weighted tally of small oscillations, twitches,
  eye-movement-like patterns and (flash) startle responses. This is a
  heuristic proxy, not a validated facial action unit detector.

Too few frames never raises; the result is zeroed and flagged.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

import numpy as np

import config
from utils.analysis_thresholds import AnalysisThresholds, get_thresholds
from utils.blink_pupil_analyzer import BlinkAndPupilAnalyzer, EyeSample
from utils.face_presence import FacePresenceDetector
from utils.motion_analyzer import MotionAnalyzer
from utils.pixel_buffer import FrameSequence, PixelBuffer

logger = logging.getLogger(__name__)


class TestType(Enum):
    """The three screening tasks."""
    SIMPLE = "simple"
    DOTGRID = "dotgrid"
    FLASH = "flash"

    @classmethod
    def parse(cls, value) -> "TestType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            raise ValueError("testType must be 'simple', 'dotgrid', or 'flash'") from None


class SessionState(Enum):
    """Lifecycle of one recording."""
    IDLE = "idle"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    COMPLETED = "completed"


@dataclass(frozen=True)
class VideoAnalysisResult:
    """Consolidated analysis of one recording."""
    total_frames: int = 0
    average_movement: float = 0.0
    peak_movement: int = 0
    movement_variability: float = 0.0
    blink_count: int = 0
    eye_closure_duration_ms: int = 0
    head_movement: float = 0.0
    attention_score: int = 0
    micro_expression_count: int = 0
    face_detected: bool = False
    pupil_constriction_detected: bool = False
    pupil_dilation_series: Optional[List[float]] = None
    blink_onsets_ms: Optional[List[float]] = None
    insufficient_data: bool = False

    def to_dict(self) -> dict:
        out = {
            "totalFrames": self.total_frames,
            "averageMovement": self.average_movement,
            "peakMovement": self.peak_movement,
            "movementVariability": self.movement_variability,
            "blinkCount": self.blink_count,
            "eyeClosureDuration": self.eye_closure_duration_ms,
            "headMovement": self.head_movement,
            "attentionScore": self.attention_score,
            "microExpressions": self.micro_expression_count,
            "faceDetected": self.face_detected,
            "pupilConstrictionDetected": self.pupil_constriction_detected,
            "insufficientData": self.insufficient_data,
        }
        if self.pupil_dilation_series is not None:
            out["pupilDilation"] = list(self.pupil_dilation_series)
        return out


def attention_score(average_movement: float, movement_variability: float,
                    flash_constriction: bool = False,
                    thresholds: Optional[AnalysisThresholds] = None) -> int:
    """Inverse of erratic motion, with a bonus for a physiologically correct flash response."""
    t = thresholds or get_thresholds()
    score = 100.0 - t.attention_movement_weight * average_movement - t.attention_variability_weight * movement_variability
    score = max(0.0, min(100.0, score))
    if flash_constriction:
        score = min(100.0, score + t.attention_flash_bonus)
    return int(round(score))


class VideoSessionAnalyzer:
    """
    One test's recording lifecycle.

    Usage:
        analyzer = VideoSessionAnalyzer(TestType.FLASH)
        analyzer.start_session()
        for buffer in frames:            # ~every 100 ms
            analyzer.on_frame(buffer)
        result = analyzer.end_session(flash_onset_ms=onset)

    Not thread-safe: one owner feeds frames and ends the session.
    """

    def __init__(
        self,
        test_type=TestType.SIMPLE,
        thresholds: Optional[AnalysisThresholds] = None,
        window_size: Optional[int] = None,
        min_frames: Optional[int] = None,
    ):
        self.test_type = TestType.parse(test_type)
        self._thresholds = thresholds
        self.window_size = int(window_size or config.FRAME_WINDOW_SIZE)
        self.min_frames = int(min_frames or config.MIN_FRAMES_FOR_ANALYSIS)
        self.motion = MotionAnalyzer(thresholds)
        self.face_detector = FacePresenceDetector(thresholds)
        self.eye_analyzer = BlinkAndPupilAnalyzer(thresholds)

        self.state = SessionState.IDLE
        self.sequence = FrameSequence(window_size=self.window_size)
        self._eye_samples: List[EyeSample] = []
        self._start_ms: Optional[float] = None
        self.result: Optional[VideoAnalysisResult] = None

    @property
    def thresholds(self) -> AnalysisThresholds:
        return self._thresholds or get_thresholds()

    @property
    def is_flash_test(self) -> bool:
        return self.test_type is TestType.FLASH

    @property
    def frame_count(self) -> int:
        return self.sequence.total_frames

    def start_session(self, start_ms: Optional[float] = None) -> None:
        """Reset buffers and begin recording."""
        self.sequence.clear()
        self._eye_samples = []
        self.result = None
        self._start_ms = start_ms
        self.state = SessionState.RECORDING

    def on_frame(self, buffer: PixelBuffer) -> Optional[int]:
        """
        Append one sampled frame. Returns the movement score against the
        previous frame (None for the first frame or when not recording).
        """
        if self.state is not SessionState.RECORDING:
            logger.debug("frame ignored in state %s", self.state.value)
            return None
        if self._start_ms is None:
            self._start_ms = float(buffer.timestamp_ms)

        movement = None
        prev = self.sequence.last
        if prev is not None:
            movement = self.motion.compute_movement(prev, buffer)
        self.sequence.append(buffer, movement)
        self._eye_samples.append(self.eye_analyzer.sample_frame(buffer, self.is_flash_test))
        return movement

    def cancel(self) -> VideoAnalysisResult:
        """Stop recording and finalize whatever was collected."""
        return self.end_session()

    def end_session(self, flash_onset_ms: Optional[float] = None) -> VideoAnalysisResult:
        """Finalize the recording. Safe to call more than once."""
        if self.state is SessionState.COMPLETED and self.result is not None:
            return self.result
        self.state = SessionState.ANALYZING
        try:
            self.result = self._analyze(flash_onset_ms)
        finally:
            # Only the result outlives the recording
            self.sequence.release_frames()
            self._eye_samples = []
            self.state = SessionState.COMPLETED
        return self.result

    def _analyze(self, flash_onset_ms: Optional[float]) -> VideoAnalysisResult:
        total = self.sequence.total_frames
        if total < self.min_frames:
            logger.warning(
                "Insufficient frames for %s analysis (%d < %d); returning zeroed result",
                self.test_type.value, total, self.min_frames,
            )
            return VideoAnalysisResult(total_frames=total, insufficient_data=True)

        movement = np.asarray(self.sequence.movement, dtype=np.float64)
        average = float(movement.mean()) if movement.size else 0.0
        peak = int(movement.max()) if movement.size else 0
        variability = float(movement.std()) if movement.size else 0.0

        face = self.face_detector.evaluate(self.sequence.window(), self.sequence.movement)
        if not face.face_detected:
            logger.warning("No face detected during %s test (%s)", self.test_type.value,
                           face.rejected_reason or "too few indicators")

        eyes = self.eye_analyzer.analyze_samples(
            self._eye_samples, self.sequence.timestamps, self.is_flash_test, flash_onset_ms,
        )
        attention = attention_score(average, variability, eyes.pupil_constriction_detected, self.thresholds)
        micro = self.count_micro_expressions(self.sequence.movement, self.sequence.timestamps)

        result = VideoAnalysisResult(
            total_frames=total,
            average_movement=round(average, 2),
            peak_movement=peak,
            movement_variability=round(variability, 2),
            blink_count=eyes.blink_count,
            eye_closure_duration_ms=eyes.eye_closure_duration_ms,
            head_movement=round(variability, 2),
            attention_score=attention,
            micro_expression_count=micro,
            face_detected=face.face_detected,
            pupil_constriction_detected=eyes.pupil_constriction_detected,
            pupil_dilation_series=eyes.pupil_dilation_series,
            blink_onsets_ms=list(eyes.blink_onsets_ms),
        )
        logger.debug("%s analysis: %s", self.test_type.value, result.to_dict())
        return result

    def count_micro_expressions(self, movement: Sequence[float], timestamps: Sequence[float]) -> int:
        """Rounded weighted sum of the micro-movement signal types."""
        t = self.thresholds
        m = [float(x) for x in movement]
        total = 0.0
        total += self._small_oscillations(m)
        total += t.twitch_weight * self._twitches(m)
        patterns = self._eye_movement_patterns(m)
        total += t.eye_pattern_weight * (patterns // max(1, t.eye_pattern_group))
        if self.is_flash_test:
            total += self._startle_response(m, timestamps)
        return int(round(total))

    def _small_oscillations(self, m: List[float]) -> int:
        """Rapid small back-and-forth changes inside an otherwise low-movement window."""
        t = self.thresholds
        size = max(3, int(t.micro_window))
        count = 0
        i = 0
        while i + size <= len(m):
            window = m[i:i + size]
            if np.mean(window) < t.micro_low_movement:
                deltas = np.diff(window)
                small = [d for d in deltas if t.micro_min_delta <= abs(d) <= t.micro_max_delta]
                reversals = sum(1 for a, b in zip(deltas[:-1], deltas[1:]) if a * b < 0)
                if len(small) >= size - 2 and reversals >= t.micro_min_reversals:
                    count += 1
                    i += size
                    continue
            i += 1
        return count

    def _twitches(self, m: List[float]) -> int:
        """Sharp spikes above both neighbours."""
        delta = self.thresholds.twitch_delta
        return sum(
            1 for i in range(1, len(m) - 1)
            if m[i] - m[i - 1] > delta and m[i] - m[i + 1] > delta
        )

    def _eye_movement_patterns(self, m: List[float]) -> int:
        """Alternating up/down runs of eye_pattern_length samples with bounded amplitude."""
        t = self.thresholds
        length = max(3, int(t.eye_pattern_length))
        count = 0
        i = 0
        while i + length <= len(m):
            window = m[i:i + length]
            deltas = np.diff(window)
            alternating = all(d != 0 for d in deltas) and all(a * b < 0 for a, b in zip(deltas[:-1], deltas[1:]))
            amplitude = max(window) - min(window)
            if alternating and t.eye_pattern_min_amplitude <= amplitude <= t.eye_pattern_max_amplitude:
                count += 1
                i += length
                continue
            i += 1
        return count

    def _startle_response(self, m: List[float], timestamps: Sequence[float]) -> float:
        """Small rapid movements and acceleration spikes in the first moments after start."""
        t = self.thresholds
        if not m or len(timestamps) < 2:
            return 0.0
        start = self._start_ms if self._start_ms is not None else timestamps[0]
        # movement[i] is measured at frame i + 1
        early = [m[i] for i in range(len(m)) if timestamps[i + 1] - start <= t.startle_window_ms]
        total = 0.0
        for i in range(1, len(early)):
            if (t.startle_min_movement <= early[i] <= t.startle_max_movement
                    and abs(early[i] - early[i - 1]) >= t.startle_min_delta):
                total += 1.0
        for i in range(2, len(early)):
            acceleration = early[i] - 2 * early[i - 1] + early[i - 2]
            if acceleration > t.startle_acceleration:
                total += t.startle_acceleration_weight
        return total


def analyze_frames(frames: Sequence[PixelBuffer], test_type=TestType.SIMPLE,
                   flash_onset_ms: Optional[float] = None) -> VideoAnalysisResult:
    """Run a whole recording through a fresh analyzer (offline use and tests)."""
    analyzer = VideoSessionAnalyzer(test_type, window_size=max(len(frames), 1))
    analyzer.start_session()
    for frame in frames:
        analyzer.on_frame(frame)
    return analyzer.end_session(flash_onset_ms=flash_onset_ms)


def now_ms() -> float:
    return time.monotonic() * 1000.0
