"""Handling of a single HTTP client connection."""

from __future__ import annotations

import json
import logging
import time
from typing import Iterable

from .avi import encode_jpeg
from .config import Settings
from .sanitize import sanitize_filename
from .state import CameraUnavailableError, MotionArtifact, SharedState

log = logging.getLogger(__name__)

_BUFFER_SIZE = 2048
_BOUNDARY = "--FRAME_BOUNDARY"
_JPEG_QUALITY = 90
_EMPTY_FRAME_WAIT = 0.03
_VIDEO_PREFIX = "/videos/"

_INDEX_HTML = (
    "<!DOCTYPE html><html><head><title>RPi Camera</title>"
    "<style>"
    "body { font-family: Arial, sans-serif; margin: 20px; "
    "background-color: #f4f4f4; color: #333; }"
    "h1 { color: #0056b3; }"
    "a { color: #007bff; text-decoration: none; }"
    "a:hover { text-decoration: underline; }"
    ".container { background-color: #fff; padding: 20px; "
    "border-radius: 8px; box-shadow: 0 0 10px rgba(0,0,0,0.1); }"
    "#detectionsList { list-style-type: none; padding: 0; }"
    "#detectionsList li { background-color: #e9ecef; margin-bottom: "
    "8px; padding: 10px; border-radius: 4px; }"
    "</style>"
    "</head><body><div class='container'>"
    "<h1>Camera Control Panel</h1>"
    "<p><a href='/live'>View Live Stream</a> (stops motion detection)</p>"
    "<h2>Recent Motion Detections (Videos)</h2>"
    "<ul id='detectionsList'></ul>"
    "<script>"
    "function fetchDetections() {"
    "  fetch('/detections')"
    "    .then(response => response.json())"
    "    .then(data => {"
    "      const list = document.getElementById('detectionsList');"
    "      list.innerHTML = '';"
    "      if (data.length === 0) { list.innerHTML = '<li>No detections yet.</li>'; }"
    "      data.forEach(det => {"
    "        const item = document.createElement('li');"
    "        item.innerHTML = `${det.prettyTimestamp} - <a "
    "href='/videos/${det.videoFilename}' "
    "target='_blank'>${det.videoFilename}</a>`;"
    "        list.appendChild(item);"
    "      });"
    "    }).catch(err => { console.error('Error fetching detections:', err); "
    "const list = document.getElementById('detectionsList'); "
    "list.innerHTML = '<li>Error loading detections.</li>'; });"
    "}"
    "fetchDetections(); setInterval(fetchDetections, 15000);"
    "</script>"
    "</div></body></html>"
)


def parse_request_line(data: bytes) -> tuple[str, str, str]:
    """Return method, path and version; missing parts are empty strings."""
    parts = data.decode("latin-1").split(maxsplit=3)[:3]
    parts += [""] * (3 - len(parts))
    return parts[0], parts[1], parts[2]


def plain_response(status: str, body: str) -> bytes:
    """Build a complete text/plain response."""
    return (
        f"HTTP/1.1 {status}\r\n"
        "Content-Type: text/plain\r\n"
        "Connection: close\r\n\r\n"
        f"{body}"
    ).encode("utf-8")


def index_page() -> bytes:
    """Build the complete response for the control panel page."""
    head = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        "Connection: close\r\n\r\n"
    )
    return (head + _INDEX_HTML).encode("utf-8")


def detections_json(detections: Iterable[MotionArtifact]) -> str:
    """Serialise detections as the JSON array served at /detections."""
    items = [
        {
            "timestamp": det.timestamp,
            "prettyTimestamp": det.pretty_timestamp,
            "videoFilename": det.video_filename,
        }
        for det in detections
    ]
    return json.dumps(items, separators=(",", ":"), ensure_ascii=False)


def _send(conn, data: bytes) -> bool:
    try:
        conn.sendall(data)
    except OSError as err:
        log.warning("Send failed: %s", err)
        return False
    return True


def _stream_live(conn, state: SharedState, settings: Settings) -> None:
    count = state.begin_live_stream()
    log.info("Live stream client connected. Active clients: %d", count)
    headers = (
        "HTTP/1.1 200 OK\r\n"
        f"Content-Type: multipart/x-mixed-replace; boundary={_BOUNDARY}\r\n"
        "Connection: close\r\n"
        "Cache-Control: no-cache, no-store, must-revalidate\r\n"
        "Pragma: no-cache\r\n"
        "Expires: 0\r\n\r\n"
    ).encode("ascii")
    try:
        if not _send(conn, headers):
            log.error("Error sending live stream headers")
            return
        while state.is_live_streaming():
            try:
                frame = state.read_frame()
            except CameraUnavailableError:
                log.error("Live stream: Camera not available.")
                break
            if frame is None or frame.size == 0:
                time.sleep(_EMPTY_FRAME_WAIT)
                continue
            jpeg = encode_jpeg(frame, _JPEG_QUALITY)
            frame_header = (
                f"{_BOUNDARY}\r\n"
                "Content-Type: image/jpeg\r\n"
                f"Content-Length: {len(jpeg)}\r\n\r\n"
            ).encode("ascii")
            if not _send(conn, frame_header):
                log.info("Live stream client disconnected (header send).")
                break
            if not _send(conn, jpeg):
                log.info("Live stream client disconnected (data send).")
                break
            time.sleep(1.0 / settings.cap_fps)
    finally:
        remaining = state.end_live_stream()
        if remaining == 0:
            log.info("Last live stream client disconnected. Resuming motion detection.")
        else:
            log.info("Live stream client disconnected. Active clients: %d", remaining)


def _send_video(conn, path: str, state: SharedState, settings: Settings) -> None:
    requested = path[len(_VIDEO_PREFIX):]
    safe_name = sanitize_filename(requested)
    if not state.has_video(safe_name):
        log.error("Video file not in recent detections or unsafe: %s", requested)
        _send(conn, plain_response("404 Not Found", "Video not found or access denied."))
        return
    full_path = settings.recording_path(safe_name)
    try:
        handle = open(full_path, "rb")
    except OSError:
        log.error("Video file not found on disk: %s", full_path)
        _send(conn, plain_response("404 Not Found", "Video file not found on disk."))
        return
    with handle:
        try:
            data = handle.read()
        except OSError:
            log.error("Error reading video file: %s", full_path)
            _send(conn, plain_response("500 Internal Server Error", "Error reading video file."))
            return
    head = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: video/avi\r\n"
        f"Content-Length: {len(data)}\r\n"
        "Connection: close\r\n\r\n"
    ).encode("ascii")
    if _send(conn, head):
        _send(conn, data)


def handle_client(conn, state: SharedState, settings: Settings) -> None:
    """Serve one request on ``conn`` and close it."""
    try:
        try:
            data = conn.recv(_BUFFER_SIZE - 1)
        except OSError as err:
            log.error("Read error: %s", err)
            return
        if not data:
            log.error("Client disconnected prematurely")
            return

        method, path, _version = parse_request_line(data)
        log.info("Request: %s %s", method, path)

        if method != "GET":
            _send(conn, plain_response("405 Method Not Allowed", "Method not allowed."))
        elif path == "/":
            _send(conn, index_page())
        elif path == "/live":
            _stream_live(conn, state, settings)
        elif path == "/detections":
            body = detections_json(state.recent_detections()).encode("utf-8")
            head = (
                "HTTP/1.1 200 OK\r\n"
                "Content-Type: application/json; charset=utf-8\r\n"
                f"Content-Length: {len(body)}\r\n"
                "Connection: close\r\n\r\n"
            ).encode("ascii")
            _send(conn, head + body)
        elif path.startswith(_VIDEO_PREFIX):
            _send_video(conn, path, state, settings)
        else:
            _send(conn, plain_response("404 Not Found", "Endpoint not found."))
    finally:
        conn.close()