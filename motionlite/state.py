"""State shared between the motion detector and the HTTP server."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

import numpy as np


@dataclass(frozen=True)
class MotionArtifact:
    """A recorded motion clip."""

    video_filename: str
    timestamp: str
    pretty_timestamp: str


@runtime_checkable
class FrameSource(Protocol):
    """A camera that yields BGR frames."""

    def read(self) -> Optional[np.ndarray]: ...

    def is_opened(self) -> bool: ...

    def width(self) -> int: ...

    def height(self) -> int: ...

    def fps(self) -> float: ...

    def release(self) -> None: ...


class CameraUnavailableError(RuntimeError):
    """Raised when the camera is not open."""


class SharedState:
    """Camera access, recent detections and live-stream bookkeeping."""

    def __init__(self, camera: FrameSource, max_detections: int = 20) -> None:
        if max_detections < 1:
            raise ValueError("max_detections must be at least 1")
        self.camera = camera
        self._camera_lock = threading.Lock()
        self._detections: deque[MotionArtifact] = deque(maxlen=max_detections)
        self._detection_lock = threading.Lock()
        self._live_lock = threading.Lock()
        self._live_clients = 0
        self._live_active = False

    def read_frame(self) -> Optional[np.ndarray]:
        """Grab one frame; None means the camera gave an empty frame."""
        with self._camera_lock:
            if not self.camera.is_opened():
                raise CameraUnavailableError("camera is not open")
            return self.camera.read()

    def add_detection(self, artifact: MotionArtifact) -> None:
        """Record a detection as the newest, dropping the oldest beyond the limit."""
        with self._detection_lock:
            self._detections.appendleft(artifact)

    def recent_detections(self) -> list[MotionArtifact]:
        """Return the detections, newest first."""
        with self._detection_lock:
            return list(self._detections)

    def has_video(self, filename: str) -> bool:
        """Tell whether a detection refers to this video file name."""
        with self._detection_lock:
            return any(d.video_filename == filename for d in self._detections)

    def begin_live_stream(self) -> int:
        """Register a live-stream client and return the client count."""
        with self._live_lock:
            self._live_clients += 1
            self._live_active = True
            return self._live_clients

    def end_live_stream(self) -> int:
        """Unregister a live-stream client and return the remaining count."""
        with self._live_lock:
            previous = self._live_clients
            self._live_clients -= 1
            if previous == 1:
                self._live_active = False
            return self._live_clients

    def is_live_streaming(self) -> bool:
        """Tell whether a live stream is active."""
        with self._live_lock:
            return self._live_active