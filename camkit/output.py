"""Base class for video stream outputs, with timestamp and metadata files."""

from __future__ import annotations

import logging
import sys
from collections import deque
from enum import Enum, IntFlag
from typing import Any, Mapping, TextIO

from .formats import VideoOptions

log = logging.getLogger(__name__)


class Flag(IntFlag):
    """Properties of a buffer handed to an output."""

    NONE = 0
    KEYFRAME = 1
    RESTART = 2


class _State(Enum):
    DISABLED = 0
    WAITING_KEYFRAME = 1
    RUNNING = 2


def _trunc_divmod(value: int, divisor: int) -> tuple[int, int]:
    quotient = abs(value) // divisor
    if value < 0:
        quotient = -quotient
    return quotient, value - quotient * divisor


def _value_to_string(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:f}"
    if isinstance(value, (list, tuple)):
        return "[ " + ", ".join(_value_to_string(v) for v in value) + " ]"
    return str(value)


def start_metadata_output(stream: TextIO, fmt: str) -> None:
    if fmt == "json":
        stream.write("[\n")


def write_metadata(stream: TextIO, fmt: str, metadata: Mapping[str, Any], first_write: bool) -> None:
    """Write one frame's metadata in "txt" or JSON form."""
    if fmt == "txt":
        for name, value in metadata.items():
            stream.write(f"{name}={_value_to_string(value)}\n")
        stream.write("\n")
        return
    if not first_write:
        stream.write(",\n")
    stream.write("{")
    for position, (name, value) in enumerate(metadata.items()):
        text = _value_to_string(value)
        quote = '"' if "/" in text else ""
        separator = "," if position else ""
        stream.write(f'{separator}\n    "{name}": {quote}{text}{quote}')
    stream.write("\n}")


def stop_metadata_output(stream: TextIO, fmt: str) -> None:
    if fmt == "json":
        stream.write("\n]\n")


class Output:
    """Receives encoded buffers; the plain version discards them."""

    def __init__(self, options: VideoOptions) -> None:
        self.options = options
        self._timestamps_file = None
        self._state = _State.WAITING_KEYFRAME
        self._enabled = not options.pause
        self._time_offset = 0
        self._last_timestamp = 0
        self._metadata_stream: TextIO = sys.stdout
        self._metadata_file = None
        self._metadata_started = False
        self._metadata_queue: deque = deque()
        self._closed = False

        if options.save_pts:
            try:
                self._timestamps_file = open(options.save_pts, "w")
            except OSError as err:
                raise RuntimeError(f"Failed to open timestamp file {options.save_pts}") from err
            self._timestamps_file.write("# timecode format v2\n")
        if options.metadata and options.metadata != "-":
            self._metadata_file = open(options.metadata, "w")
            self._metadata_stream = self._metadata_file
            start_metadata_output(self._metadata_stream, options.metadata_format)

    def signal(self) -> None:
        """Toggle between paused and running."""
        self._enabled = not self._enabled

    def output_ready(self, mem, timestamp_us: int, keyframe: bool) -> None:
        """Accept an encoded buffer, waiting for a keyframe after any pause."""
        flags = Flag.KEYFRAME if keyframe else Flag.NONE
        if not self._enabled:
            self._state = _State.DISABLED
        elif self._state is _State.DISABLED:
            self._state = _State.WAITING_KEYFRAME
        if self._state is _State.WAITING_KEYFRAME and keyframe:
            self._state = _State.RUNNING
            flags |= Flag.RESTART
        if self._state is not _State.RUNNING:
            return

        # Keep timestamps continuous across a pause.
        if flags & Flag.RESTART:
            self._time_offset = timestamp_us - self._last_timestamp
        self._last_timestamp = timestamp_us - self._time_offset

        self.output_buffer(mem, self._last_timestamp, flags)

        if self._timestamps_file is not None:
            self.timestamp_ready(self._last_timestamp)

        if self.options.metadata:
            if not self._metadata_queue:
                raise RuntimeError("no metadata available for output frame")
            metadata = self._metadata_queue.popleft()
            write_metadata(self._metadata_stream, self.options.metadata_format, metadata,
                           not self._metadata_started)
            self._metadata_started = True

    def metadata_ready(self, metadata: Mapping[str, Any]) -> None:
        if not self.options.metadata:
            return
        self._metadata_queue.append(metadata)

    def output_buffer(self, mem, timestamp_us: int, flags: Flag) -> None:
        """Deliver a buffer; the base output writes nothing."""

    def timestamp_ready(self, timestamp: int) -> None:
        seconds, millis = _trunc_divmod(timestamp, 1000)
        self._timestamps_file.write(f"{seconds}.{millis:03d}\n")
        if self.options.flush:
            self._timestamps_file.flush()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._timestamps_file is not None:
            self._timestamps_file.close()
        if self.options.metadata:
            stop_metadata_output(self._metadata_stream, self.options.metadata_format)
            if self._metadata_file is not None:
                self._metadata_file.close()
            else:
                self._metadata_stream.flush()

    def __enter__(self) -> "Output":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()