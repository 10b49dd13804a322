"""
Blink and Pupil Analyzer Module

Works on a per-frame eye-region sample:
- brightness: mean per-pixel RGB sum (0-765) in a centered eye window
- pupil size proxy (flash test): percentage of very dark pixels plus half the
  percentage of moderately dark pixels in the same window

Blinks are discrete dips in the smoothed brightness series, found with a
two-state machine (open / in-blink) that has an onset debounce and a minimum
duration. Pupil response is the smoothed pupil proxy expressed as percent
change from a robust pre-flash baseline; a drop below about -10% counts as a
valid constriction.

Sampling is assumed to be on a fixed cadence (blink_sample_interval_ms),
so durations are counted in samples.
"""

import logging
from dataclasses import dataclass, field
from typing import List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from utils.analysis_thresholds import AnalysisThresholds, get_thresholds
from utils.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)


class EyeSample(NamedTuple):
    """Eye-region measurement for one frame."""
    brightness: float
    pupil_size: float


@dataclass(frozen=True)
class BlinkPupilResult:
    """Blink and pupil measurements for one recording."""
    blink_count: int = 0
    eye_closure_duration_ms: int = 0
    blink_onsets_ms: List[float] = field(default_factory=list)
    pupil_dilation_series: Optional[List[float]] = None
    pupil_constriction_detected: bool = False


def smooth_series(values: Sequence[float], weights: Tuple[float, float, float] = (0.2, 0.6, 0.2)) -> List[float]:
    """3-point weighted moving average; edges reuse the edge value."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size < 2:
        return arr.tolist()
    padded = np.concatenate(([arr[0]], arr, [arr[-1]]))
    w_prev, w_curr, w_next = weights
    out = w_prev * padded[:-2] + w_curr * padded[1:-1] + w_next * padded[2:]
    return out.tolist()


class BlinkAndPupilAnalyzer:
    """
    Blink detection and flash pupil response from eye-region samples.

    Usage:
        analyzer = BlinkAndPupilAnalyzer()
        result = analyzer.analyze(frames, timestamps, is_flash_test=True)

    A recording session can instead call sample_frame() per frame as it
    arrives and analyze_samples() at the end, so frames need not be retained.
    """

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> AnalysisThresholds:
        return self._thresholds or get_thresholds()

    def sample_frame(self, frame: PixelBuffer, is_flash_test: bool = False) -> EyeSample:
        t = self.thresholds
        rgb = frame.rgb()
        h, w = rgb.shape[:2]
        fx0, fy0, fx1, fy1 = t.eye_region_flash if is_flash_test else t.eye_region
        x0, x1 = int(w * fx0), max(int(w * fx0) + 1, int(w * fx1))
        y0, y1 = int(h * fy0), max(int(h * fy0) + 1, int(h * fy1))
        window = rgb[y0:y1, x0:x1].astype(np.float64)
        if window.size == 0:
            window = rgb.astype(np.float64)

        sums = window.sum(axis=2)
        brightness = float(sums.mean())
        pupil = 0.0
        if is_flash_test:
            intensity = sums / 3.0
            very_dark = float((intensity < t.pupil_very_dark).mean())
            moderately_dark = float(((intensity >= t.pupil_very_dark)
                                     & (intensity < t.pupil_moderately_dark)).mean())
            pupil = 100.0 * (very_dark + t.pupil_moderate_weight * moderately_dark)
        return EyeSample(brightness, pupil)

    def analyze(self, frames: Sequence[PixelBuffer], timestamps: Sequence[float],
                is_flash_test: bool = False, flash_onset_ms: Optional[float] = None) -> BlinkPupilResult:
        samples = [self.sample_frame(f, is_flash_test) for f in frames]
        return self.analyze_samples(samples, timestamps, is_flash_test, flash_onset_ms)

    def analyze_samples(self, samples: Sequence[EyeSample], timestamps: Sequence[float],
                        is_flash_test: bool = False,
                        flash_onset_ms: Optional[float] = None) -> BlinkPupilResult:
        t = self.thresholds
        if not samples:
            return BlinkPupilResult()
        timestamps = list(timestamps) if timestamps else []
        if len(timestamps) != len(samples):
            timestamps = [i * float(t.blink_sample_interval_ms) for i in range(len(samples))]

        smoothed = smooth_series([s.brightness for s in samples], t.smoothing_weights)
        blinks = self.detect_blinks(smoothed)

        duration_ms = timestamps[-1] - timestamps[0] if len(timestamps) > 1 else 0.0
        duration_ms = max(duration_ms, len(samples) * float(t.blink_sample_interval_ms) - t.blink_sample_interval_ms)
        max_blinks = max(1, int(duration_ms / 1000.0 * t.max_blinks_per_second))
        if len(blinks) > max_blinks:
            logger.debug("blink count %d capped at %d", len(blinks), max_blinks)
            blinks = blinks[:max_blinks]

        closure_ms = sum(length * int(t.blink_sample_interval_ms) for _, length in blinks)
        onsets = [timestamps[start] for start, _ in blinks]

        series = None
        constricted = False
        if is_flash_test:
            series, constricted = self.pupil_response([s.pupil_size for s in samples], timestamps, flash_onset_ms)

        return BlinkPupilResult(
            blink_count=len(blinks),
            eye_closure_duration_ms=int(closure_ms),
            blink_onsets_ms=onsets,
            pupil_dilation_series=series,
            pupil_constriction_detected=constricted,
        )

    def detect_blinks(self, smoothed: Sequence[float]) -> List[Tuple[int, int]]:
        """
        Two-state blink machine over a smoothed brightness series.
        Returns (start_index, length_in_samples) per blink.
        """
        t = self.thresholds
        blinks: List[Tuple[int, int]] = []
        in_blink = False
        start = 0
        last_end: Optional[int] = None

        for i in range(1, len(smoothed)):
            prev, cur = smoothed[i - 1], smoothed[i]
            if not in_blink:
                debounced = last_end is None or (i - last_end) >= t.blink_debounce_samples
                if prev - cur > t.blink_drop_threshold and cur < t.blink_brightness_ceiling and debounced:
                    in_blink = True
                    start = i
                continue

            recovered = (cur - prev > t.blink_recovery_delta) or cur > t.blink_recovery_floor
            if not recovered:
                continue
            length = i - start
            in_blink = False
            if length >= t.blink_min_duration_samples:
                blinks.append((start, length))
                last_end = i

        if in_blink:
            length = len(smoothed) - start
            if length >= t.blink_min_duration_samples:
                blinks.append((start, length))
        return blinks

    def pupil_response(self, pupil_sizes: Sequence[float], timestamps: Sequence[float],
                       flash_onset_ms: Optional[float] = None) -> Tuple[List[float], bool]:
        """
        Percent change of the smoothed pupil proxy from a robust baseline.
        Returns (series, constriction_detected).
        """
        t = self.thresholds
        values = np.asarray(list(pupil_sizes), dtype=np.float64)
        if values.size == 0:
            return [], False

        baseline_values = None
        if flash_onset_ms is not None and len(timestamps) == values.size:
            before = values[np.asarray(timestamps, dtype=np.float64) < flash_onset_ms]
            if before.size >= 3:
                baseline_values = before
        if baseline_values is None:
            count = max(1, int(values.size * t.pupil_baseline_fraction))
            baseline_values = values[:count]

        baseline = self._robust_baseline(baseline_values)
        if baseline <= 1e-6:
            logger.debug("pupil baseline is zero; no dark pixels in eye window")
            return [0.0] * int(values.size), False

        smoothed = np.asarray(smooth_series(values, t.smoothing_weights))
        series = (smoothed - baseline) / baseline * 100.0
        constricted = bool(series.min() < t.pupil_constriction_percent)
        return [round(float(v), 2) for v in series], constricted

    def _robust_baseline(self, values: np.ndarray) -> float:
        """Mean after dropping samples far from the median (median absolute deviation)."""
        median = float(np.median(values))
        distance = np.abs(values - median)
        mad = float(np.median(distance))
        kept = values[distance <= self.thresholds.pupil_outlier_mad_factor * mad]
        if kept.size == 0:
            return median
        return float(kept.mean())
