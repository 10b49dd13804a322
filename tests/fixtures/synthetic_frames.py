"""
Synthetic frame generator for analyzer tests.

Builds small RGB PixelBuffers with known properties: flat frames of a given
per-pixel RGB sum (for blink brightness series), and a crude "face" (skin-tone
ellipse with two dark eye patches on a dark background) that passes the
face-presence heuristics.

Frames are 160x120 by default; timestamps step by 100 ms.
"""

from typing import List, Optional, Sequence

import numpy as np

from utils.pixel_buffer import PixelBuffer

WIDTH, HEIGHT = 160, 120
INTERVAL_MS = 100.0
SKIN_RGB = (200, 150, 120)
BACKGROUND_RGB = (40, 40, 40)


def rgb_for_sum(brightness_sum: int):
    """Grey RGB triple whose channel sum equals brightness_sum (0-765)."""
    base = brightness_sum // 3
    rest = brightness_sum - 3 * base
    return (base + (1 if rest > 0 else 0), base + (1 if rest > 1 else 0), base)


def flat_frame(rgb=(100, 100, 100), timestamp_ms: float = 0.0,
               width: int = WIDTH, height: int = HEIGHT) -> PixelBuffer:
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:, :] = rgb
    return PixelBuffer(pixels, timestamp_ms)


def flat_sequence(count: int, rgb=(100, 100, 100), start_ms: float = 0.0) -> List[PixelBuffer]:
    return [flat_frame(rgb, start_ms + i * INTERVAL_MS) for i in range(count)]


def brightness_sequence(sums: Sequence[int], start_ms: float = 0.0) -> List[PixelBuffer]:
    """One flat frame per brightness value (RGB sum)."""
    return [flat_frame(rgb_for_sum(s), start_ms + i * INTERVAL_MS) for i, s in enumerate(sums)]


def dip_sums(count: int, at: int, normal: int = 300, dip: int = 50, width: int = 1) -> List[int]:
    """Brightness series that sits at `normal` with a `width`-sample dip starting at `at`."""
    sums = [normal] * count
    for i in range(at, min(count, at + width)):
        sums[i] = dip
    return sums


def face_frame(timestamp_ms: float = 0.0, shift: int = 0, eye_level: int = 50,
               width: int = WIDTH, height: int = HEIGHT) -> PixelBuffer:
    """Skin ellipse centered (shifted right by `shift` px) with two eye patches."""
    pixels = np.empty((height, width, 3), dtype=np.uint8)
    pixels[:, :] = BACKGROUND_RGB
    yy, xx = np.mgrid[0:height, 0:width]
    cx, cy = width / 2.0 + shift, height / 2.0
    inside = ((xx - cx) / 45.0) ** 2 + ((yy - cy) / 55.0) ** 2 <= 1.0
    pixels[inside] = SKIN_RGB

    eye_top, eye_bottom = int(height * 0.38), int(height * 0.44)
    for ex in (int(cx) - 22, int(cx) + 8):
        pixels[eye_top:eye_bottom, ex:ex + 14] = (eye_level, eye_level, eye_level)
    return PixelBuffer(pixels, timestamp_ms)


def face_sequence(count: int, shifts: Optional[Sequence[int]] = None,
                  eye_levels: Optional[Sequence[int]] = None, start_ms: float = 0.0) -> List[PixelBuffer]:
    shifts = list(shifts) if shifts is not None else [0] * count
    eye_levels = list(eye_levels) if eye_levels is not None else [50 + 10 * (i % 3) for i in range(count)]
    return [
        face_frame(start_ms + i * INTERVAL_MS, shift=shifts[i % len(shifts)], eye_level=eye_levels[i % len(eye_levels)])
        for i in range(count)
    ]


def noise_frame(seed: int, timestamp_ms: float = 0.0, width: int = WIDTH, height: int = HEIGHT) -> PixelBuffer:
    rng = np.random.default_rng(seed)
    return PixelBuffer(rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8), timestamp_ms)
