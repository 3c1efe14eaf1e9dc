import json
import socket

import numpy as np
import pytest

from motionlite.config import Settings
from motionlite.http_handler import (
    detections_json,
    handle_client,
    index_page,
    parse_request_line,
    plain_response,
)
from motionlite.state import MotionArtifact, SharedState


class FakeCamera:
    def __init__(self, opened=True):
        self.opened = opened

    def read(self):
        return np.full((8, 8, 3), 120, dtype=np.uint8)

    def is_opened(self):
        return self.opened

    def width(self):
        return 8

    def height(self):
        return 8

    def fps(self):
        return 30.0

    def release(self):
        self.opened = False


class FakeConn:
    def __init__(self, request, fail_after):
        self.request = request
        self.fail_after = fail_after
        self.sent = []
        self.closed = False

    def recv(self, size):
        return self.request[:size]

    def sendall(self, data):
        if len(self.sent) >= self.fail_after:
            raise BrokenPipeError("client gone")
        self.sent.append(bytes(data))

    def close(self):
        self.closed = True


def exchange(request, state, settings):
    client, server = socket.socketpair()
    with client:
        if request:
            client.sendall(request)
        else:
            client.shutdown(socket.SHUT_WR)
        handle_client(server, state, settings)
        chunks = []
        while True:
            chunk = client.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def split(response):
    head, _, body = response.partition(b"\r\n\r\n")
    return head.decode("latin-1").split("\r\n"), body


def make_artifact(name):
    return MotionArtifact(name, "2024-05-01T10:20:30Z", "2024-05-01 10:20:30")


@pytest.fixture
def state():
    return SharedState(FakeCamera(), 20)


def test_parse_request_line_full():
    assert parse_request_line(b"GET /x HTTP/1.1\r\nHost: a\r\n\r\n") == ("GET", "/x", "HTTP/1.1")


def test_parse_request_line_partial_and_empty():
    assert parse_request_line(b"GET") == ("GET", "", "")
    assert parse_request_line(b"") == ("", "", "")


def test_plain_response_bytes():
    assert plain_response("404 Not Found", "Endpoint not found.") == (
        b"HTTP/1.1 404 Not Found\r\nContent-Type: text/plain\r\n"
        b"Connection: close\r\n\r\nEndpoint not found."
    )


def test_index_page_contents():
    lines, body = split(index_page())
    assert lines[0] == "HTTP/1.1 200 OK"
    assert "Content-Type: text/html; charset=utf-8" in lines
    assert b"<h1>Camera Control Panel</h1>" in body
    assert b"fetch('/detections')" in body


def test_detections_json_empty():
    assert detections_json([]) == "[]"


def test_detections_json_layout():
    art = make_artifact("motion_20240501_102030.avi")
    assert detections_json([art]) == (
        '[{"timestamp":"2024-05-01T10:20:30Z",'
        '"prettyTimestamp":"2024-05-01 10:20:30",'
        '"videoFilename":"motion_20240501_102030.avi"}]'
    )


def test_detections_json_key_order_roundtrip():
    items = json.loads(detections_json([make_artifact("a.avi"), make_artifact("b.avi")]))
    assert [list(i) for i in items] == [["timestamp", "prettyTimestamp", "videoFilename"]] * 2
    assert [i["videoFilename"] for i in items] == ["a.avi", "b.avi"]


def test_index_request(state):
    response = exchange(b"GET / HTTP/1.1\r\n\r\n", state, Settings())
    assert response == index_page()


def test_method_not_allowed(state):
    response = exchange(b"POST / HTTP/1.1\r\n\r\n", state, Settings())
    assert response == plain_response("405 Method Not Allowed", "Method not allowed.")


def test_unknown_endpoint(state):
    response = exchange(b"GET /nothing HTTP/1.1\r\n\r\n", state, Settings())
    assert response == plain_response("404 Not Found", "Endpoint not found.")


def test_empty_request_gets_no_response(state):
    assert exchange(b"", state, Settings()) == b""


def test_detections_endpoint(state):
    state.add_detection(make_artifact("first.avi"))
    state.add_detection(make_artifact("second.avi"))
    lines, body = split(exchange(b"GET /detections HTTP/1.1\r\n\r\n", state, Settings()))
    assert lines[0] == "HTTP/1.1 200 OK"
    assert f"Content-Length: {len(body)}" in lines
    names = [d["videoFilename"] for d in json.loads(body)]
    assert names == ["second.avi", "first.avi"]


def test_video_served(state, tmp_path):
    payload = b"RIFF-video-bytes"
    (tmp_path / "clip.avi").write_bytes(payload)
    state.add_detection(make_artifact("clip.avi"))
    settings = Settings(recordings_dir=str(tmp_path))
    lines, body = split(exchange(b"GET /videos/clip.avi HTTP/1.1\r\n\r\n", state, settings))
    assert lines[0] == "HTTP/1.1 200 OK"
    assert "Content-Type: video/avi" in lines
    assert f"Content-Length: {len(payload)}" in lines
    assert body == payload


def test_video_path_traversal_is_stripped(state, tmp_path):
    payload = b"data"
    (tmp_path / "clip.avi").write_bytes(payload)
    state.add_detection(make_artifact("clip.avi"))
    settings = Settings(recordings_dir=str(tmp_path))
    _, body = split(exchange(b"GET /videos/../../clip.avi HTTP/1.1\r\n\r\n", state, settings))
    assert body == payload


def test_video_not_registered(state, tmp_path):
    (tmp_path / "other.avi").write_bytes(b"x")
    settings = Settings(recordings_dir=str(tmp_path))
    response = exchange(b"GET /videos/other.avi HTTP/1.1\r\n\r\n", state, settings)
    assert response == plain_response("404 Not Found", "Video not found or access denied.")


def test_video_missing_on_disk(state, tmp_path):
    state.add_detection(make_artifact("gone.avi"))
    settings = Settings(recordings_dir=str(tmp_path))
    response = exchange(b"GET /videos/gone.avi HTTP/1.1\r\n\r\n", state, settings)
    assert response == plain_response("404 Not Found", "Video file not found on disk.")


def test_live_stream_sends_jpeg_frames_until_disconnect(state):
    conn = FakeConn(b"GET /live HTTP/1.1\r\n\r\n", fail_after=3)
    handle_client(conn, state, Settings(cap_fps=1000))
    assert conn.closed
    assert len(conn.sent) == 3
    assert conn.sent[0].startswith(b"HTTP/1.1 200 OK\r\n")
    assert b"multipart/x-mixed-replace; boundary=--FRAME_BOUNDARY" in conn.sent[0]
    assert conn.sent[1].startswith(b"--FRAME_BOUNDARY\r\nContent-Type: image/jpeg\r\n")
    assert f"Content-Length: {len(conn.sent[2])}".encode() in conn.sent[1]
    assert conn.sent[2][:2] == b"\xff\xd8"
    assert state.is_live_streaming() is False


def test_live_stream_stops_when_camera_closed():
    state = SharedState(FakeCamera(opened=False), 20)
    conn = FakeConn(b"GET /live HTTP/1.1\r\n\r\n", fail_after=100)
    handle_client(conn, state, Settings(cap_fps=1000))
    assert len(conn.sent) == 1
    assert state.is_live_streaming() is False
    assert conn.closed