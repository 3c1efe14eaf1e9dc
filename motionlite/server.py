"""The HTTP server accept loop."""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from .config import Settings
from .http_handler import handle_client
from .state import SharedState

log = logging.getLogger(__name__)

_LISTEN_HOST = "0.0.0.0"
_BACKLOG = 10
_ACCEPT_TIMEOUT = 0.5


def create_server_socket(host: str = _LISTEN_HOST, port: int = 8080) -> socket.socket:
    """Create a listening TCP socket with address reuse enabled."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(_BACKLOG)
    except OSError:
        sock.close()
        raise
    return sock


def serve(
    state: SharedState,
    settings: Settings,
    stop_event: Optional[threading.Event] = None,
) -> None:
    """Accept clients one at a time until ``stop_event`` is set."""
    stop = stop_event if stop_event is not None else threading.Event()
    try:
        server = create_server_socket(_LISTEN_HOST, settings.http_port)
    except OSError as err:
        log.error("Could not listen on port %d: %s", settings.http_port, err)
        return

    with server:
        server.settimeout(_ACCEPT_TIMEOUT)
        log.info("Serving on http://%s:%d", _LISTEN_HOST, settings.http_port)
        while not stop.is_set():
            try:
                conn, _addr = server.accept()
            except socket.timeout:
                continue
            except OSError as err:
                log.error("accept failed: %s", err)
                continue
            conn.settimeout(None)
            handle_client(conn, state, settings)
    log.info("HTTP server stopped.")