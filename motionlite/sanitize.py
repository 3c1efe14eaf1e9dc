"""Reduction of requested file names to a safe base name."""

from __future__ import annotations

import string

_ALLOWED = frozenset(string.ascii_letters + string.digits + "_-.")


def sanitize_filename(filename: str) -> str:
    """Strip directory components and drop every character outside [A-Za-z0-9_.-]."""
    base = filename.replace("\\", "/").rpartition("/")[2]
    return "".join(c for c in base if c in _ALLOWED)