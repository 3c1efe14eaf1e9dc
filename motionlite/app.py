"""Program entry point: opens the camera and runs detector and server."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import threading
from pathlib import Path
from typing import Optional, Sequence, Union

import numpy as np
import pygame
import pygame.camera
import pygame.surfarray

from .config import Settings
from .motion import MotionDetector
from .server import serve
from .state import CameraUnavailableError, SharedState

log = logging.getLogger(__name__)

_CAMERA_ERRORS = (pygame.error, OSError, SystemError, ValueError)


class PygameCamera:
    """A frame source backed by pygame's camera module."""

    def __init__(self, device: Union[int, str] = 0, width: int = 1280, height: int = 720) -> None:
        try:
            pygame.camera.init()
            self.device = self._resolve(device)
            camera = pygame.camera.Camera(self.device, (int(width), int(height)))
            camera.start()
        except _CAMERA_ERRORS as err:
            raise CameraUnavailableError(f"could not open camera {device!r}: {err}") from err
        self._camera = camera
        self._opened = True
        try:
            self._size = tuple(int(v) for v in camera.get_size())
        except _CAMERA_ERRORS:
            self._size = (int(width), int(height))

    @staticmethod
    def _resolve(device: Union[int, str]) -> str:
        if isinstance(device, str):
            return device
        cameras = list(pygame.camera.list_cameras())
        if 0 <= device < len(cameras):
            return cameras[device]
        return f"/dev/video{device}"

    def read(self) -> Optional[np.ndarray]:
        """Return the next frame as a BGR array, or None if none is available."""
        if not self._opened:
            return None
        try:
            surface = self._camera.get_image()
        except _CAMERA_ERRORS:
            return None
        rgb = pygame.surfarray.array3d(surface)
        return np.ascontiguousarray(rgb.transpose(1, 0, 2)[:, :, ::-1])

    def is_opened(self) -> bool:
        """Tell whether the camera is running."""
        return self._opened

    def width(self) -> int:
        """Frame width in pixels."""
        return self._size[0]

    def height(self) -> int:
        """Frame height in pixels."""
        return self._size[1]

    def fps(self) -> float:
        """Frame rate; 0.0 because the backend does not report it."""
        return 0.0

    def release(self) -> None:
        """Stop the camera."""
        if self._opened:
            self._opened = False
            try:
                self._camera.stop()
            except _CAMERA_ERRORS as err:
                log.warning("Error stopping camera: %s", err)


def open_camera(settings: Settings) -> PygameCamera:
    """Open the configured camera, falling back to its device path."""
    index = settings.camera_index
    try:
        return PygameCamera(index, settings.cap_width, settings.cap_height)
    except CameraUnavailableError as first:
        device_path = f"/dev/video{index}"
        log.info("Camera index %d failed (%s). Trying %s", index, first, device_path)
    try:
        return PygameCamera(device_path, settings.cap_width, settings.cap_height)
    except CameraUnavailableError as err:
        raise CameraUnavailableError(
            f"could not open camera using index {index} or {device_path}"
        ) from err


def _parse_args(argv: Optional[Sequence[str]]) -> Settings:
    defaults = Settings()
    parser = argparse.ArgumentParser(
        prog="motionlite", description="Motion-triggered camera recorder with a web panel."
    )
    parser.add_argument("--camera", type=int, default=defaults.camera_index)
    parser.add_argument("--port", type=int, default=defaults.http_port)
    parser.add_argument("--recordings-dir", default=defaults.recordings_dir)
    args = parser.parse_args(argv)
    return dataclasses.replace(
        defaults,
        camera_index=args.camera,
        http_port=args.port,
        recordings_dir=args.recordings_dir,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the motion detector and the HTTP server until interrupted."""
    settings = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s: %(message)s")

    log.info("Application starting...")
    log.info("Attempting to open camera index: %d", settings.camera_index)
    log.info(
        "Requested Resolution: %dx%d @ %sFPS",
        settings.cap_width, settings.cap_height, settings.cap_fps,
    )
    try:
        camera = open_camera(settings)
    except CameraUnavailableError as err:
        log.error("Error: %s. Exiting.", err)
        return 1

    log.info("Camera opened successfully.")
    log.info("Actual Resolution: %dx%d", camera.width(), camera.height())
    log.info("Actual FPS: %s", camera.fps())

    recordings = Path(settings.recordings_dir)
    try:
        recordings.mkdir(mode=0o755, parents=True, exist_ok=True)
    except OSError as err:
        log.error("Failed to create recordings directory: %s", err)
    else:
        log.info("Recordings will be saved to ./%s", settings.recordings_dir)

    state = SharedState(camera, settings.max_recent_detections)
    stop = threading.Event()
    detector = MotionDetector(state, settings)
    threads = [
        threading.Thread(target=detector.run, args=(stop,), name="motion", daemon=True),
        threading.Thread(target=serve, args=(state, settings, stop), name="http", daemon=True),
    ]
    for thread in threads:
        thread.start()
    log.info("Motion detection and HTTP server threads started.")

    try:
        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(0.5)
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down.")
        stop.set()
        for thread in threads:
            thread.join()
    finally:
        stop.set()
        camera.release()
    log.info("Application terminated.")
    return 0