"""Write encoded output to a file, optionally split into segments."""

from __future__ import annotations

import logging
import sys

from .formats import VideoOptions
from .output import Flag, Output

log = logging.getLogger(__name__)

_MAX_FILENAME = 255


def _to_ms(timestamp_us: int) -> int:
    ms = abs(timestamp_us) // 1000
    return -ms if timestamp_us < 0 else ms


def _format_name(pattern: str, count: int) -> str:
    try:
        name = pattern % count
    except TypeError:
        try:
            name = pattern % ()
        except (TypeError, ValueError) as err:
            raise RuntimeError("failed to generate filename") from err
    except ValueError as err:
        raise RuntimeError("failed to generate filename") from err
    return name[:_MAX_FILENAME]


class FileOutput(Output):
    """Writes buffers to a file named by ``options.output`` ("-" is stdout)."""

    def __init__(self, options: VideoOptions) -> None:
        super().__init__(options)
        self._fp = None
        self._owns_fp = False
        self._count = 0
        self._file_start_time_ms = 0

    def output_buffer(self, mem, timestamp_us: int, flags: Flag) -> None:
        opts = self.options
        # A new file starts when a full segment reaches a keyframe, or on a
        # restart in split mode.
        if (
            self._fp is None
            or (opts.segment and flags & Flag.KEYFRAME
                and _to_ms(timestamp_us) - self._file_start_time_ms > opts.segment)
            or (opts.split and flags & Flag.RESTART)
        ):
            self._close_file()
            self._open_file(timestamp_us)

        log.debug("FileOutput: output buffer size %d", len(mem))
        if self._fp is not None and len(mem):
            try:
                self._fp.write(mem)
                if opts.flush:
                    self._fp.flush()
            except OSError as err:
                raise RuntimeError("failed to write output bytes") from err

    def _open_file(self, timestamp_us: int) -> None:
        output = self.options.output
        if output == "-":
            self._fp = sys.stdout.buffer
            self._owns_fp = False
        elif output:
            filename = _format_name(output, self._count)
            self._count += 1
            if self.options.wrap:
                self._count %= self.options.wrap
            try:
                self._fp = open(filename, "wb")
            except OSError as err:
                raise RuntimeError(f"failed to open output file {filename}") from err
            self._owns_fp = True
            log.debug("FileOutput: opened output file %s", filename)
            self._file_start_time_ms = _to_ms(timestamp_us)

    def _close_file(self) -> None:
        if self._fp is None:
            return
        if self.options.flush or not self._owns_fp:
            self._fp.flush()
        if self._owns_fp:
            self._fp.close()
        self._fp = None

    def close(self) -> None:
        self._close_file()
        super().close()