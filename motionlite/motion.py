"""Frame-differencing motion detection and clip recording."""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime
from typing import Optional

import numpy as np

from .avi import MjpegAviWriter
from .config import Settings
from .state import CameraUnavailableError, MotionArtifact, SharedState

log = logging.getLogger(__name__)

_LIVE_PAUSE_SECONDS = 0.2
_CAMERA_RETRY_SECONDS = 1.0
_EMPTY_FRAME_RETRY_SECONDS = 0.1
_MAX_SANE_FPS = 60


def _gaussian_kernel(size: int) -> np.ndarray:
    sigma = 0.3 * ((size - 1) * 0.5 - 1) + 0.8
    x = np.arange(size) - (size - 1) / 2
    weights = np.exp(-(x ** 2) / (2 * sigma ** 2))
    return weights / weights.sum()


def _convolve_rows(image: np.ndarray, weights: np.ndarray) -> np.ndarray:
    radius = len(weights) // 2
    padded = np.pad(image, ((radius, radius), (0, 0)), mode="reflect")
    rows = image.shape[0]
    return sum(w * padded[offset:offset + rows] for offset, w in enumerate(weights))


def to_blurred_gray(frame: np.ndarray, blur_size: int) -> np.ndarray:
    """Convert a BGR frame to grayscale and apply a Gaussian blur."""
    if blur_size < 1 or blur_size % 2 == 0:
        raise ValueError("blur_size must be a positive odd number")
    array = np.asarray(frame, dtype=np.float64)
    if array.ndim == 2:
        gray = array
    elif array.ndim == 3 and array.shape[2] in (3, 4):
        gray = 0.114 * array[:, :, 0] + 0.587 * array[:, :, 1] + 0.299 * array[:, :, 2]
    else:
        raise ValueError(f"unsupported frame shape {array.shape}")
    gray = np.clip(np.rint(gray), 0, 255)
    if blur_size > 1:
        weights = _gaussian_kernel(blur_size)
        gray = _convolve_rows(_convolve_rows(gray, weights).T, weights).T
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def count_changed_pixels(previous: np.ndarray, current: np.ndarray, threshold: float) -> int:
    """Count pixels whose absolute difference exceeds the threshold."""
    if previous.shape != current.shape:
        raise ValueError("frames differ in shape")
    diff = np.abs(previous.astype(np.int16) - current.astype(np.int16))
    return int(np.count_nonzero(diff > threshold))


def detection_names(now: datetime) -> MotionArtifact:
    """Build the file name and timestamps for a clip recorded at ``now``."""
    return MotionArtifact(
        video_filename=now.strftime("motion_%Y%m%d_%H%M%S.avi"),
        timestamp=now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        pretty_timestamp=now.strftime("%Y-%m-%d %H:%M:%S"),
    )


class MotionDetector:
    """Watches the camera and records a clip whenever motion is seen."""

    def __init__(self, state: SharedState, settings: Settings) -> None:
        self.state = state
        self.settings = settings
        self._previous: Optional[np.ndarray] = None
        self._active = False

    def step(self) -> float:
        """Process one frame and return how long to wait before the next."""
        if self.state.is_live_streaming():
            if self._active:
                log.info("Pausing motion detection for live stream.")
                self._previous = None
                self._active = False
            return _LIVE_PAUSE_SECONDS

        if not self._active:
            log.info("Resuming motion detection.")
            self._active = True

        try:
            frame = self.state.read_frame()
        except CameraUnavailableError:
            log.error("Camera not accessible in loop.")
            return _CAMERA_RETRY_SECONDS

        if frame is None or frame.size == 0:
            log.warning("Empty frame captured.")
            return _EMPTY_FRAME_RETRY_SECONDS

        gray = to_blurred_gray(frame, self.settings.gaussian_blur_size)
        if self._previous is not None:
            changed = count_changed_pixels(self._previous, gray, self.settings.threshold_value)
            if changed > self.settings.min_non_zero_count:
                self.record_clip(datetime.now())
        self._previous = gray
        return 1.0 / self.settings.cap_fps

    def record_clip(self, now: datetime) -> Optional[MotionArtifact]:
        """Record a clip; return its artifact, or None if nothing was saved."""
        artifact = detection_names(now)
        path = self.settings.recording_path(artifact.video_filename)
        log.info("Motion detected! Recording %s", path)

        camera = self.state.camera
        fps = camera.fps()
        if fps <= 0 or fps > _MAX_SANE_FPS:
            fps = self.settings.cap_fps

        try:
            writer = MjpegAviWriter(path, fps, camera.width(), camera.height())
        except (OSError, ValueError) as err:
            log.error("Could not open video writer for %s: %s", path, err)
            return None

        with writer:
            start = time.monotonic()
            while time.monotonic() - start < self.settings.video_record_duration_seconds:
                if self.state.is_live_streaming():
                    log.info("Live stream started during recording, aborting video save.")
                    break
                try:
                    frame = self.state.read_frame()
                except CameraUnavailableError:
                    log.info("Camera closed during recording, aborting video save.")
                    break
                if frame is None or frame.size == 0:
                    break
                writer.write(frame.copy())
                time.sleep(1.0 / fps / 2.0)
        frames = writer.frames_written
        log.info("Finished recording %s, %d frames.", path, frames)

        if frames == 0:
            path.unlink(missing_ok=True)
            log.info("Recording aborted, deleted empty file: %s", path)
            return None
        self.state.add_detection(artifact)
        return artifact

    def run(self, stop_event: Optional[threading.Event] = None) -> None:
        """Loop until ``stop_event`` is set (forever if none is given)."""
        stop = stop_event if stop_event is not None else threading.Event()
        self.settings.recording_path("").mkdir(mode=0o755, parents=True, exist_ok=True)
        log.info("Starting motion detection loop.")
        while not stop.is_set():
            stop.wait(self.step())
        log.info("Exiting motion detection loop.")