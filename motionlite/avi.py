"""JPEG encoding of frames and a Motion-JPEG AVI writer."""

from __future__ import annotations

import io
import struct
from pathlib import Path
from typing import BinaryIO, Optional, Union

import numpy as np
from PIL import Image

_AVIF_HASINDEX = 0x10
_AVIIF_KEYFRAME = 0x10


def encode_jpeg(frame: np.ndarray, quality: int = 90) -> bytes:
    """Encode a BGR (or grayscale) uint8 frame as JPEG."""
    if not 0 <= quality <= 100:
        raise ValueError("quality must be between 0 and 100")
    array = np.asarray(frame)
    if array.dtype != np.uint8:
        raise ValueError("frame must be uint8")
    if array.ndim == 2:
        image = Image.fromarray(np.ascontiguousarray(array), mode="L")
    elif array.ndim == 3 and array.shape[2] in (3, 4):
        rgb = np.ascontiguousarray(array[:, :, 2::-1])
        image = Image.fromarray(rgb, mode="RGB")
    else:
        raise ValueError(f"unsupported frame shape {array.shape}")
    out = io.BytesIO()
    image.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def _chunk(fourcc: bytes, data: bytes) -> bytes:
    pad = b"\0" if len(data) % 2 else b""
    return fourcc + struct.pack("<I", len(data)) + data + pad


def _list(kind: bytes, body: bytes) -> bytes:
    return b"LIST" + struct.pack("<I", len(body) + 4) + kind + body


class MjpegAviWriter:
    """Writes frames as a Motion-JPEG stream in an AVI container."""

    def __init__(
        self,
        path: Union[str, Path],
        fps: float,
        width: int,
        height: int,
        quality: int = 95,
    ) -> None:
        if fps <= 0:
            raise ValueError("fps must be positive")
        if width <= 0 or height <= 0:
            raise ValueError("frame size must be positive")
        self.path = Path(path)
        self.fps = float(fps)
        self.width = int(width)
        self.height = int(height)
        self.quality = quality
        self._index: list[tuple[int, int]] = []
        self._max_frame = 0
        self._file: Optional[BinaryIO] = open(self.path, "wb")
        self._file.write(self._header(0, 4))
        self._movi_start = self._file.tell() - 4

    @property
    def frames_written(self) -> int:
        """Number of frames written so far."""
        return len(self._index)

    @property
    def closed(self) -> bool:
        """Whether the file has been finalised."""
        return self._file is None

    def _header(self, riff_size: int, movi_size: int) -> bytes:
        frames = len(self._index)
        width, height = self.width, self.height
        avih = struct.pack(
            "<14I",
            round(1_000_000 / self.fps),
            round(self._max_frame * self.fps),
            0,
            _AVIF_HASINDEX,
            frames,
            0,
            1,
            self._max_frame,
            width,
            height,
            0, 0, 0, 0,
        )
        strh = struct.pack(
            "<4s4sIHHIIIIIIIIhhhh",
            b"vids",
            b"MJPG",
            0, 0, 0, 0,
            1000,
            round(self.fps * 1000),
            0,
            frames,
            self._max_frame,
            0xFFFFFFFF,
            0,
            0, 0,
            min(width, 0x7FFF),
            min(height, 0x7FFF),
        )
        strf = struct.pack(
            "<IiiHH4sIiiII", 40, width, height, 1, 24, b"MJPG", width * height * 3, 0, 0, 0, 0
        )
        strl = _list(b"strl", _chunk(b"strh", strh) + _chunk(b"strf", strf))
        hdrl = _list(b"hdrl", _chunk(b"avih", avih) + strl)
        return (
            b"RIFF" + struct.pack("<I", riff_size) + b"AVI " + hdrl
            + b"LIST" + struct.pack("<I", movi_size) + b"movi"
        )

    def write(self, frame: np.ndarray) -> None:
        """Append one frame; its size must match the writer's."""
        if self._file is None:
            raise ValueError("write to a closed writer")
        if tuple(np.shape(frame)[:2]) != (self.height, self.width):
            raise ValueError(
                f"frame size {np.shape(frame)[:2]} does not match {(self.height, self.width)}"
            )
        data = encode_jpeg(frame, self.quality)
        offset = self._file.tell() - self._movi_start
        self._file.write(_chunk(b"00dc", data))
        self._index.append((offset, len(data)))
        self._max_frame = max(self._max_frame, len(data))

    def close(self) -> None:
        """Write the index, fix up the headers and close the file."""
        if self._file is None:
            return
        handle, self._file = self._file, None
        try:
            movi_size = handle.tell() - self._movi_start
            index = b"".join(
                struct.pack("<4sIII", b"00dc", _AVIIF_KEYFRAME, offset, size)
                for offset, size in self._index
            )
            handle.write(_chunk(b"idx1", index))
            riff_size = handle.tell() - 8
            handle.seek(0)
            handle.write(self._header(riff_size, movi_size))
        finally:
            handle.close()

    def __enter__(self) -> "MjpegAviWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()