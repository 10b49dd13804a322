"""
Face Presence Detector Module

Coarse, model-free check of whether a face was plausibly in frame across a
recording. This is a heuristic gate, not a face detector: it looks at a
center-biased region of each frame and tallies independent indicators.

Indicators (each worth one point):
  a) brightness: overall level in an illuminated-face range with bounded
     frame-to-frame variance
  b) eye band: brightness in the eye band varies moderately (blinks, eye
     motion) rather than not at all or chaotically
  c) skin tone: enough pixels satisfy an R > G > B skin heuristic
  d) movement: some motion, but bounded in mean and variance

Presence requires at least face_min_indicators points, so one heuristic can
fail (odd lighting, skin tone outside the heuristic) without rejecting a real
face. Some conditions reject outright: too few frames, extreme average
movement, brightness far out of range, almost no skin-tone pixels.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from utils.analysis_thresholds import AnalysisThresholds, get_thresholds
from utils.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)


@dataclass
class FacePresenceResult:
    """Outcome of a presence check with the per-indicator breakdown."""
    face_detected: bool
    indicators: Dict[str, bool] = field(default_factory=dict)
    rejected_reason: Optional[str] = None
    brightness_mean: float = 0.0
    brightness_std: float = 0.0
    eye_band_std: float = 0.0
    skin_percent: float = 0.0


class FacePresenceDetector:
    """
    Heuristic face presence over a frame window.

    Usage:
        detector = FacePresenceDetector()
        present = detector.detect_face_presence(frames, movement_series)
    """

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> AnalysisThresholds:
        return self._thresholds or get_thresholds()

    def detect_face_presence(self, frames: Sequence[PixelBuffer],
                             movement_series: Sequence[float]) -> bool:
        return self.evaluate(frames, movement_series).face_detected

    def evaluate(self, frames: Sequence[PixelBuffer],
                 movement_series: Sequence[float]) -> FacePresenceResult:
        """Run every check and return the full breakdown."""
        t = self.thresholds
        if len(frames) < t.face_min_frames:
            return FacePresenceResult(False, rejected_reason="insufficient_frames")

        movement = np.asarray(list(movement_series), dtype=np.float64)
        move_mean = float(movement.mean()) if movement.size else 0.0
        move_std = float(movement.std()) if movement.size else 0.0
        if move_mean > t.face_max_average_movement:
            return FacePresenceResult(False, rejected_reason="excessive_movement")

        brightness, eye_band, skin = [], [], []
        for frame in frames:
            b, e, s = self._sample_frame(frame)
            brightness.append(b)
            eye_band.append(e)
            skin.append(s)

        b_mean = float(np.mean(brightness))
        b_std = float(np.std(brightness))
        e_std = float(np.std(eye_band))
        skin_pct = float(np.mean(skin))
        result = FacePresenceResult(
            False,
            brightness_mean=b_mean,
            brightness_std=b_std,
            eye_band_std=e_std,
            skin_percent=skin_pct,
        )

        if (b_mean < t.face_brightness_reject_min or b_mean > t.face_brightness_reject_max
                or b_std > t.face_brightness_reject_std):
            result.rejected_reason = "brightness_out_of_range"
            return result
        if skin_pct < t.skin_reject_percent:
            result.rejected_reason = "no_skin_tone"
            return result

        result.indicators = {
            "brightness": (t.face_brightness_min <= b_mean <= t.face_brightness_max
                           and b_std <= t.face_brightness_max_std),
            "eye_band": t.face_eye_band_min_std <= e_std <= t.face_eye_band_max_std,
            "skin_tone": skin_pct >= t.skin_min_percent,
            "movement": (t.face_movement_min_mean <= move_mean <= t.face_movement_max_mean
                         and move_std <= t.face_movement_max_std),
        }
        result.face_detected = sum(result.indicators.values()) >= t.face_min_indicators
        logger.debug(
            "face presence: %s indicators=%s brightness=%.1f±%.1f skin=%.1f%%",
            result.face_detected, result.indicators, b_mean, b_std, skin_pct,
        )
        return result

    def _sample_frame(self, frame: PixelBuffer):
        """(region brightness, eye-band brightness, skin-tone percent) for one frame."""
        t = self.thresholds
        rgb = frame.rgb()
        h, w = rgb.shape[:2]
        rw = max(1, int(w * t.face_region_width))
        rh = max(1, int(h * t.face_region_height))
        x0, y0 = (w - rw) // 2, (h - rh) // 2
        region = rgb[y0:y0 + rh:2, x0:x0 + rw:2].astype(np.int32)
        if region.size == 0:
            region = rgb.astype(np.int32)

        sums = region.sum(axis=2)
        brightness = float(sums.mean())

        # Eye band: upper-middle rows of the face region, central 80% of its width
        band_top = int(sums.shape[0] * 0.25)
        band_bottom = max(band_top + 1, int(sums.shape[0] * 0.45))
        band_left = int(sums.shape[1] * 0.1)
        band_right = max(band_left + 1, int(sums.shape[1] * 0.9))
        eye_band = float(sums[band_top:band_bottom, band_left:band_right].mean())

        r, g, b = region[:, :, 0], region[:, :, 1], region[:, :, 2]
        skin_mask = (
            (r > g) & (g > b)
            & (r >= t.skin_r_range[0]) & (r <= t.skin_r_range[1])
            & (g >= t.skin_g_range[0]) & (g <= t.skin_g_range[1])
            & (b >= t.skin_b_range[0]) & (b <= t.skin_b_range[1])
        )
        skin_percent = float(skin_mask.mean() * 100.0)
        return brightness, eye_band, skin_percent


def detect_face_presence(frames: List[PixelBuffer], movement_series: List[float]) -> bool:
    """Module-level shortcut using the current global thresholds."""
    return FacePresenceDetector().detect_face_presence(frames, movement_series)
