"""Keep recent frames in a ring buffer and write them out on close."""

from __future__ import annotations

import logging
import struct
import sys

from .circular_buffer import CircularBuffer
from .formats import VideoOptions
from .output import Flag, Output

log = logging.getLogger(__name__)

_ALIGN = 16
# length (u32), keyframe (bool), padding, timestamp (i64)
_HEADER = struct.Struct("<I?3xq")


def _aligned(length: int) -> int:
    return (length + _ALIGN - 1) & ~(_ALIGN - 1)


class CircularOutput(Output):
    """Holds ``options.circular`` megabytes of frames, saved from the first keyframe on close."""

    def __init__(self, options: VideoOptions) -> None:
        super().__init__(options)
        self._cb = CircularBuffer(options.circular << 20)
        self._owns_fp = False
        try:
            if options.output == "-":
                self._fp = sys.stdout.buffer
            elif options.output:
                self._fp = open(options.output, "wb")
                self._owns_fp = True
            else:
                raise RuntimeError("could not open output file")
        except OSError as err:
            super().close()
            raise RuntimeError("could not open output file") from err
        except RuntimeError:
            super().close()
            raise

    def output_buffer(self, mem, timestamp_us: int, flags: Flag) -> None:
        size = len(mem)
        pad = (_ALIGN - size) & (_ALIGN - 1)
        while size + pad + _HEADER.size > self._cb.available():
            if self._cb.empty():
                raise RuntimeError("circular buffer too small")
            length, _, _ = _HEADER.unpack(self._cb.read(_HEADER.size))
            self._cb.skip(_aligned(length))
        self._cb.write(_HEADER.pack(size, bool(flags & Flag.KEYFRAME), timestamp_us))
        self._cb.write(mem)
        self._cb.pad(pad)

    def timestamp_ready(self, timestamp: int) -> None:
        """Timestamps are written only when the buffer is saved."""

    def close(self) -> None:
        if self._fp is not None:
            self._dump()
            if self._owns_fp:
                self._fp.close()
            else:
                self._fp.flush()
            self._fp = None
        super().close()

    def _dump(self) -> None:
        # Frames before the first keyframe cannot be decoded, so skip them.
        total = frames = 0
        seen_keyframe = False
        while not self._cb.empty():
            length, keyframe, timestamp = _HEADER.unpack(self._cb.read(_HEADER.size))
            seen_keyframe |= keyframe
            if seen_keyframe:
                self._fp.write(self._cb.read(length))
                self._cb.skip((_ALIGN - length) & (_ALIGN - 1))
                total += length
                if self._timestamps_file is not None:
                    Output.timestamp_ready(self, timestamp)
                frames += 1
            else:
                self._cb.skip(_aligned(length))
        log.info("Wrote %d bytes (%d frames)", total, frames)