"""
Analysis Thresholds Loader

Holds every heuristic constant used by the frame analyzers (movement, face
presence, blink/pupil, micro-expressions) in one named record so they can be
tuned per device or lighting without touching analyzer logic.

Values are loaded from ANALYSIS_THRESHOLDS_URL, else ANALYSIS_THRESHOLDS_PATH,
else the built-in defaults below. They can also be changed at runtime via
set_thresholds() (used by PUT /config/thresholds).

JSON format:
  {"blink_drop_threshold": 30.0, "skin_min_percent": 15.0, ...}

The defaults are uncalibrated placeholders, not clinically validated values.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict

import requests

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisThresholds:
    """Named heuristic constants. Brightness values use the per-pixel RGB sum (0-765)."""

    # --- Motion ---
    motion_sample_stride: int = 4  # sample every Nth pixel in x and y
    motion_center_weight: float = 0.5  # extra weight at frame center (1.0 -> 1.5)
    motion_edge_threshold: float = 30.0  # intensity gradient (0-255) marking an edge
    motion_edge_boost: float = 1.5
    motion_plain_weight: float = 0.7  # blend: plain mean vs weighted mean
    motion_weighted_weight: float = 0.3

    # --- Face presence ---
    face_min_frames: int = 5
    face_max_average_movement: float = 80.0
    face_region_width: float = 0.5  # fraction of frame width, centered
    face_region_height: float = 0.6  # fraction of frame height, centered
    face_brightness_min: float = 120.0
    face_brightness_max: float = 660.0
    face_brightness_max_std: float = 90.0
    face_brightness_reject_min: float = 45.0
    face_brightness_reject_max: float = 735.0
    face_brightness_reject_std: float = 200.0
    face_eye_band_min_std: float = 1.0
    face_eye_band_max_std: float = 60.0
    skin_min_percent: float = 15.0
    skin_reject_percent: float = 3.0
    skin_r_range: tuple = (60, 250)
    skin_g_range: tuple = (40, 230)
    skin_b_range: tuple = (20, 210)
    face_movement_min_mean: float = 0.5
    face_movement_max_mean: float = 40.0
    face_movement_max_std: float = 25.0
    face_min_indicators: int = 2

    # --- Blink / pupil ---
    eye_region: tuple = (0.3, 0.25, 0.7, 0.5)  # x0, y0, x1, y1 fractions
    eye_region_flash: tuple = (0.2, 0.2, 0.8, 0.8)  # close-up framing
    smoothing_weights: tuple = (0.2, 0.6, 0.2)
    blink_drop_threshold: float = 30.0
    blink_brightness_ceiling: float = 450.0
    blink_recovery_delta: float = 30.0
    blink_recovery_floor: float = 500.0
    blink_debounce_samples: int = 5
    blink_min_duration_samples: int = 2
    blink_sample_interval_ms: int = 100
    max_blinks_per_second: float = 0.5
    pupil_very_dark: float = 40.0  # mean channel intensity (0-255)
    pupil_moderately_dark: float = 80.0
    pupil_moderate_weight: float = 0.5
    pupil_baseline_fraction: float = 0.3
    pupil_outlier_mad_factor: float = 2.0
    pupil_constriction_percent: float = -10.0

    # --- Session / attention ---
    attention_movement_weight: float = 0.5
    attention_variability_weight: float = 0.3
    attention_flash_bonus: float = 10.0

    # --- Micro-expressions ---
    micro_window: int = 5
    micro_low_movement: float = 15.0
    micro_min_delta: float = 2.0
    micro_max_delta: float = 10.0
    micro_min_reversals: int = 3
    twitch_delta: float = 10.0
    twitch_weight: float = 0.5
    eye_pattern_length: int = 7
    eye_pattern_min_amplitude: float = 2.0
    eye_pattern_max_amplitude: float = 15.0
    eye_pattern_group: int = 3
    eye_pattern_weight: float = 0.3
    startle_window_ms: int = 600
    startle_min_movement: float = 1.0
    startle_max_movement: float = 10.0
    startle_min_delta: float = 3.0
    startle_acceleration: float = 15.0
    startle_acceleration_weight: float = 0.5


DEFAULT_THRESHOLDS = AnalysisThresholds()

_current: AnalysisThresholds = DEFAULT_THRESHOLDS
_FIELD_NAMES = {f.name for f in fields(AnalysisThresholds)}


def get_thresholds() -> AnalysisThresholds:
    """Return the current thresholds (immutable)."""
    return _current


def set_thresholds(**overrides: Any) -> AnalysisThresholds:
    """
    Update the current thresholds. Partial update: only provided names change.
    Raises ValueError for unknown names.
    """
    global _current
    unknown = sorted(set(overrides) - _FIELD_NAMES)
    if unknown:
        raise ValueError(f"unknown threshold(s): {', '.join(unknown)}")
    _current = replace(_current, **_coerce(overrides))
    return _current


def reset_thresholds() -> AnalysisThresholds:
    """Restore the built-in defaults."""
    global _current
    _current = DEFAULT_THRESHOLDS
    return _current


def thresholds_to_dict(thresholds: AnalysisThresholds = None) -> Dict[str, Any]:
    """JSON-friendly view (tuples become lists)."""
    data = asdict(thresholds or _current)
    return {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}


def _coerce(values: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for name, value in values.items():
        default = getattr(DEFAULT_THRESHOLDS, name)
        if isinstance(default, tuple):
            if not isinstance(value, (list, tuple)) or len(value) != len(default):
                raise ValueError(f"{name} must have {len(default)} elements")
            out[name] = tuple(float(x) for x in value)
        elif isinstance(default, bool):
            out[name] = bool(value)
        elif isinstance(default, int):
            out[name] = int(value)
        else:
            out[name] = float(value)
    return out


def _apply(data: dict) -> None:
    global _current
    known = {k: v for k, v in data.items() if k in _FIELD_NAMES}
    if known:
        _current = replace(DEFAULT_THRESHOLDS, **_coerce(known))


def load_thresholds() -> AnalysisThresholds:
    """
    Load from ANALYSIS_THRESHOLDS_URL, else ANALYSIS_THRESHOLDS_PATH, else defaults.
    Updates the current thresholds and returns them.
    """
    # 1) URL
    url = getattr(config, "ANALYSIS_THRESHOLDS_URL", None)
    if url:
        try:
            r = requests.get(url, timeout=5)
            if r.ok:
                _apply(r.json())
                return _current
        except (requests.RequestException, ValueError) as e:
            logger.warning("Could not load thresholds from %s: %s", url, e)

    # 2) File
    path = getattr(config, "ANALYSIS_THRESHOLDS_PATH", None)
    if path and os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                _apply(json.load(f))
            return _current
        except (OSError, ValueError) as e:
            logger.warning("Could not load thresholds from %s: %s", path, e)

    # 3) Defaults
    return reset_thresholds()
