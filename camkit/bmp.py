"""Save a packed 24-bit RGB image as an uncompressed BMP file."""

from __future__ import annotations

import logging
import struct
import sys
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Sequence

from .formats import PixelFormat, StillOptions, StreamInfo

log = logging.getLogger(__name__)

# type, file size, two reserved words, offset of the pixel data
_FILE_HEADER = struct.Struct("<2sIHHI")
# header size, width, height, planes, bit count, compression, image size,
# x and y pixels per metre, colours used, colours important
_IMAGE_HEADER = struct.Struct("<IIiHHIIIIII")


@contextmanager
def _open_output(filename: str) -> Iterator[BinaryIO]:
    if filename == "-":
        yield sys.stdout.buffer
        sys.stdout.buffer.flush()
        return
    try:
        fp = open(filename, "wb")
    except OSError as err:
        raise RuntimeError(f"failed to open file {filename}") from err
    with fp:
        yield fp


def bmp_save(mem: Sequence, info: StreamInfo, filename: str, options: StillOptions | None) -> None:
    """Write the first plane of ``mem`` as a top-down 24-bit BMP."""
    if info.pixel_format is not PixelFormat.RGB888:
        raise RuntimeError("pixel format for bmp should be RGB")

    line = info.width * 3
    pitch = (line + 3) & ~3  # rows are padded to multiples of 4 bytes
    padding = bytes(pitch - line)
    offset = _FILE_HEADER.size + _IMAGE_HEADER.size
    filesize = offset + info.height * pitch
    data = memoryview(mem[0]).cast("B")

    with _open_output(filename) as fp:
        try:
            fp.write(_FILE_HEADER.pack(b"BM", filesize, 0, 0, offset))
            # A negative height makes the image come out the right way up.
            fp.write(_IMAGE_HEADER.pack(_IMAGE_HEADER.size, info.width, -info.height,
                                        1, 24, 0, 0, 100000, 100000, 0, 0))
        except OSError as err:
            raise RuntimeError("failed to write BMP file") from err

        for row in range(info.height):
            start = row * info.stride
            chunk = data[start:start + line]
            if len(chunk) < line:
                raise RuntimeError(f"failed to write BMP file, row {row}")
            try:
                fp.write(chunk.tobytes())
                if padding:
                    fp.write(padding)
            except OSError as err:
                raise RuntimeError(f"failed to write BMP file, row {row}") from err

    log.debug("Wrote %d bytes to BMP file", filesize)