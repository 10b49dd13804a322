"""
Pixel Buffer Module

Frame data shared by the sampler and the analyzers:
- PixelBuffer: one captured still (height x width x 3|4 uint8, RGB or RGBA)
  plus its capture timestamp. The pixel array is made read-only on creation.
- FrameSequence: the append-only record of one test's recording. Keeps a
  bounded window of recent frames, and the full timestamp and movement series.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import cv2
import numpy as np


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    A single captured frame.

    pixels is (height, width, channels) uint8 with channels 3 (RGB) or 4 (RGBA).
    timestamp_ms is the capture time in milliseconds (any monotonic origin).
    """
    pixels: np.ndarray
    timestamp_ms: float = 0.0

    def __post_init__(self):
        arr = np.asarray(self.pixels)
        if arr.ndim != 3 or arr.shape[2] not in (3, 4):
            raise ValueError(f"pixels must be HxWx3 or HxWx4, got shape {arr.shape}")
        if arr.dtype != np.uint8:
            arr = np.clip(arr, 0, 255).astype(np.uint8)
        else:
            arr = arr.copy()
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    def rgb(self) -> np.ndarray:
        """RGB view (drops alpha when present)."""
        return self.pixels[:, :, :3]

    def same_shape(self, other: "PixelBuffer") -> bool:
        return self.pixels.shape == other.pixels.shape

    @classmethod
    def from_bgr(cls, frame_bgr: np.ndarray, timestamp_ms: float = 0.0) -> "PixelBuffer":
        """Build from an OpenCV BGR frame."""
        return cls(cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB), timestamp_ms)

    @classmethod
    def from_jpeg(cls, image_bytes: bytes, timestamp_ms: float = 0.0,
                  max_width: Optional[int] = None) -> Optional["PixelBuffer"]:
        """
        Decode JPEG/PNG bytes (e.g. a frame posted by the browser).
        Frames wider than max_width are downscaled. Returns None if decoding fails.
        """
        if not image_bytes:
            return None
        arr = np.frombuffer(image_bytes, dtype=np.uint8)
        frame = cv2.imdecode(arr, cv2.IMREAD_COLOR)
        if frame is None:
            return None
        frame = resize_to_width(frame, max_width)
        return cls.from_bgr(frame, timestamp_ms)

    def to_bgr(self) -> np.ndarray:
        return cv2.cvtColor(np.ascontiguousarray(self.rgb()), cv2.COLOR_RGB2BGR)


def resize_to_width(frame: np.ndarray, max_width: Optional[int]) -> np.ndarray:
    """Downscale frames wider than max_width, keeping aspect ratio."""
    if not max_width:
        return frame
    h, w = frame.shape[:2]
    if w <= max_width:
        return frame
    scale = max_width / w
    return cv2.resize(frame, (max_width, int(round(h * scale))), interpolation=cv2.INTER_AREA)


@dataclass
class FrameSequence:
    """
    Append-only frame record for one test.

    Only the newest `window_size` frames are retained (older buffers are
    released); timestamps and movement scores are kept for the whole recording.
    movement has one entry per appended frame after the first.
    """
    window_size: int = 50
    frames: Deque[PixelBuffer] = field(default_factory=deque, init=False)
    timestamps: List[float] = field(default_factory=list, init=False)
    movement: List[int] = field(default_factory=list, init=False)
    total_frames: int = field(default=0, init=False)

    def __post_init__(self):
        self.frames = deque(maxlen=max(1, int(self.window_size)))

    def append(self, buffer: PixelBuffer, movement: Optional[int] = None) -> None:
        if self.total_frames > 0:
            self.movement.append(int(movement or 0))
        self.frames.append(buffer)
        self.timestamps.append(float(buffer.timestamp_ms))
        self.total_frames += 1

    @property
    def last(self) -> Optional[PixelBuffer]:
        return self.frames[-1] if self.frames else None

    def window(self) -> List[PixelBuffer]:
        return list(self.frames)

    def release_frames(self) -> None:
        """Drop the pixel window; the timestamp and movement series stay."""
        self.frames.clear()

    def clear(self) -> None:
        self.frames.clear()
        self.timestamps.clear()
        self.movement.clear()
        self.total_frames = 0
