"""Runtime configuration for the motion server."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    """Camera, HTTP and motion-detection parameters."""

    camera_index: int = 0
    cap_width: int = 1280
    cap_height: int = 720
    cap_fps: float = 30.0
    http_port: int = 8080
    recordings_dir: str = "recordings"
    gaussian_blur_size: int = 15
    threshold_value: float = 25
    min_non_zero_count: int = 1000
    video_record_duration_seconds: float = 5
    max_recent_detections: int = 20

    def __post_init__(self) -> None:
        if self.gaussian_blur_size < 1 or self.gaussian_blur_size % 2 == 0:
            raise ValueError("gaussian_blur_size must be a positive odd number")
        if self.cap_fps <= 0:
            raise ValueError("cap_fps must be positive")
        if self.max_recent_detections < 1:
            raise ValueError("max_recent_detections must be at least 1")
        if self.video_record_duration_seconds < 0:
            raise ValueError("video_record_duration_seconds must not be negative")

    def recording_path(self, filename: str) -> Path:
        """Return the path of a recording inside the recordings directory."""
        return Path(self.recordings_dir) / filename