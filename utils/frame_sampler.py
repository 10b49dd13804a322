"""
Frame Sampler Module

Captures single stills from a live video source on a fixed wall-clock cadence
(default 100 ms) and hands them on as PixelBuffers.

Supported sources:
- Webcam (default camera via OpenCV)
- Local video files

Browser clients push their own stills to the recording route instead.

Each tick reads whatever frame is newest at that moment. Missed ticks are
never queued: a slow capture simply yields a sparser series.
"""

import logging
import sys
import threading
import time
from enum import Enum
from typing import Callable, Optional

import cv2
import numpy as np

import config
from utils.pixel_buffer import PixelBuffer, resize_to_width

logger = logging.getLogger(__name__)


class VideoSourceType(Enum):
    """Supported video source types."""
    WEBCAM = "webcam"
    FILE = "file"


class FrameSampler:
    """
    Fixed-interval still capture.

    Usage:
        sampler = FrameSampler(interval_ms=100)
        if sampler.initialize_source(VideoSourceType.WEBCAM):
            sampler.start(analyzer.on_frame)
            ...
            sampler.stop()

    capture() can also be called directly for pull-style use.
    """

    def __init__(self, interval_ms: Optional[int] = None, max_width: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.interval_ms = int(interval_ms or config.FRAME_SAMPLE_INTERVAL_MS)
        self.max_width = max_width if max_width is not None else config.FRAME_MAX_WIDTH
        self.cap: Optional[cv2.VideoCapture] = None
        self.source_type: Optional[VideoSourceType] = None
        self.source_path: Optional[str] = None
        self.is_running = False
        self.sample_thread: Optional[threading.Thread] = None
        self.samples_taken = 0
        self.ticks_missed = 0
        self._clock = clock
        self._start_time: Optional[float] = None

    def initialize_source(self, source_type: VideoSourceType, source_path: Optional[str] = None) -> bool:
        """
        Open a video source. Returns False (and logs) when the device or file
        cannot be opened; callers then simply never receive frames.
        """
        self.release()
        self.source_type = source_type
        self.source_path = source_path

        try:
            if source_type == VideoSourceType.WEBCAM:
                api = cv2.CAP_DSHOW if sys.platform == "win32" else cv2.CAP_ANY
                self.cap = cv2.VideoCapture(int(source_path or 0), api)
                if self.cap.isOpened():
                    self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, 640)
                    self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 480)
                    self.cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
            elif source_type == VideoSourceType.FILE:
                if not source_path:
                    raise ValueError("source_path is required for FILE source type")
                self.cap = cv2.VideoCapture(source_path)
            else:
                raise ValueError(f"Unsupported source type: {source_type}")
        except cv2.error as e:
            logger.warning("Error initializing video source %s: %s", source_type.value, e)
            self.release()
            self.source_type = None
            return False

        if self.cap is None or not self.cap.isOpened():
            logger.warning("Video source %s could not be opened (path=%s)", source_type.value, source_path)
            self.release()
            self.source_type = None
            return False
        return True

    def read_frame(self) -> Optional[np.ndarray]:
        """Newest BGR frame from the source, or None."""
        if self.cap is None or not self.cap.isOpened():
            return None
        ret, frame = self.cap.read()
        if not ret or frame is None:
            return None
        return frame

    def elapsed_ms(self) -> float:
        if self._start_time is None:
            return 0.0
        return (self._clock() - self._start_time) * 1000.0

    def capture(self) -> Optional[PixelBuffer]:
        """One still as a PixelBuffer timestamped relative to start(), or None."""
        frame = self.read_frame()
        if frame is None:
            return None
        frame = resize_to_width(frame, self.max_width)
        return PixelBuffer.from_bgr(frame, timestamp_ms=self.elapsed_ms())

    def start(self, on_sample: Callable[[PixelBuffer], object]) -> bool:
        """Run the capture timer on a background thread, calling on_sample per still."""
        if self.is_running:
            self.stop()
        if self.source_type is None:
            logger.warning("FrameSampler.start called before initialize_source")
            return False
        self.samples_taken = 0
        self.ticks_missed = 0
        self._start_time = self._clock()
        self.is_running = True
        self.sample_thread = threading.Thread(target=self._sample_loop, args=(on_sample,), daemon=True)
        self.sample_thread.start()
        return True

    def stop(self) -> None:
        """Stop the timer. Frames already delivered stay with the consumer."""
        self.is_running = False
        if self.sample_thread and self.sample_thread.is_alive() and self.sample_thread is not threading.current_thread():
            self.sample_thread.join(timeout=2.0)
        self.sample_thread = None

    def release(self) -> None:
        self.stop()
        if self.cap is not None:
            self.cap.release()
            self.cap = None

    def _sample_loop(self, on_sample: Callable[[PixelBuffer], object]) -> None:
        interval = self.interval_ms / 1000.0
        next_tick = self._clock()
        while self.is_running:
            buffer = self.capture()
            if buffer is not None:
                self.samples_taken += 1
                try:
                    on_sample(buffer)
                except Exception:
                    logger.exception("Error in frame sample callback")
            else:
                logger.debug("no frame available at %.0f ms", self.elapsed_ms())

            next_tick += interval
            now = self._clock()
            if now > next_tick:
                # Drop the ticks we fell behind on rather than bursting to catch up
                skipped = int((now - next_tick) / interval) + 1
                self.ticks_missed += skipped
                next_tick += skipped * interval
            time.sleep(max(0.0, next_tick - now))
