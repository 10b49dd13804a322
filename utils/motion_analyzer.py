"""
Motion Analyzer Module

Computes a bounded movement index (0-100) between two consecutive frames.

The score samples a regular pixel grid (not every pixel) and compares RGB
channels. Two components are blended:
- plain: mean absolute channel difference over all samples
- weighted: the same, with samples near the frame center weighted up to 1.5x
  (face region) and samples on intensity edges boosted further
Both are normalized by the maximum per-pixel difference (3 x 255 = 765).
"""

from typing import Optional

import numpy as np

from utils.analysis_thresholds import AnalysisThresholds, get_thresholds
from utils.pixel_buffer import PixelBuffer

MAX_CHANNEL_DIFF = 765.0


class MotionAnalyzer:
    """
    Frame-to-frame movement scoring.

    Usage:
        analyzer = MotionAnalyzer()
        score = analyzer.compute_movement(prev_buffer, curr_buffer)
    """

    def __init__(self, thresholds: Optional[AnalysisThresholds] = None):
        self._thresholds = thresholds
        self._weight_cache = {}

    @property
    def thresholds(self) -> AnalysisThresholds:
        return self._thresholds or get_thresholds()

    def compute_movement(self, prev: PixelBuffer, curr: PixelBuffer) -> int:
        """
        Movement score between two frames.

        Returns 0 when either frame is missing or the shapes differ; this is
        treated as "no measurable motion", never as an error.
        """
        if prev is None or curr is None or not prev.same_shape(curr):
            return 0
        t = self.thresholds
        stride = max(1, int(t.motion_sample_stride))

        a = prev.rgb()[::stride, ::stride].astype(np.int16)
        b = curr.rgb()[::stride, ::stride].astype(np.int16)
        if a.size == 0:
            return 0
        diff = np.abs(a - b).sum(axis=2).astype(np.float64)

        plain = float(diff.mean())
        weights = self._center_weights(diff.shape) * self._edge_weights(b)
        weighted = float((diff * weights).sum() / weights.sum())

        blended = t.motion_plain_weight * plain + t.motion_weighted_weight * weighted
        score = int(round(blended / MAX_CHANNEL_DIFF * 100.0))
        return max(0, min(100, score))

    def _center_weights(self, shape) -> np.ndarray:
        """1.0 at the corners rising linearly to 1 + motion_center_weight at the center."""
        key = (shape, self.thresholds.motion_center_weight)
        cached = self._weight_cache.get(key)
        if cached is not None:
            return cached
        h, w = shape
        ys = (np.arange(h) - (h - 1) / 2.0) / max((h - 1) / 2.0, 1.0)
        xs = (np.arange(w) - (w - 1) / 2.0) / max((w - 1) / 2.0, 1.0)
        dist = np.sqrt(ys[:, None] ** 2 + xs[None, :] ** 2) / np.sqrt(2.0)
        weights = 1.0 + self.thresholds.motion_center_weight * (1.0 - np.clip(dist, 0.0, 1.0))
        self._weight_cache = {key: weights}
        return weights

    def _edge_weights(self, sampled_rgb: np.ndarray) -> np.ndarray:
        """Boost samples whose local intensity gradient marks an edge."""
        t = self.thresholds
        intensity = sampled_rgb.mean(axis=2)
        if min(intensity.shape) < 2:
            return np.ones(intensity.shape)
        gy, gx = np.gradient(intensity)
        gradient = np.abs(gx) + np.abs(gy)
        return np.where(gradient > t.motion_edge_threshold, t.motion_edge_boost, 1.0)


_default_analyzer: Optional[MotionAnalyzer] = None


def compute_movement(prev: PixelBuffer, curr: PixelBuffer) -> int:
    """Module-level shortcut using the current global thresholds."""
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = MotionAnalyzer()
    return _default_analyzer.compute_movement(prev, curr)
