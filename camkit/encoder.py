"""Base class for video encoders that hand finished buffers back through callbacks."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from .formats import StreamInfo, VideoOptions


class Encoder(ABC):
    """Encodes frames and reports progress through two callbacks.

    ``input_done_callback()`` is called when the encoder has finished with an
    input buffer, so the application may reuse it.  ``output_ready_callback(mem,
    timestamp_us, keyframe)`` is called with each encoded buffer; the data must
    not be kept once the callback returns.  Either may be left as ``None``.
    """

    def __init__(self, options: VideoOptions) -> None:
        self.options = options
        self.input_done_callback: Optional[Callable[[], None]] = None
        self.output_ready_callback: Optional[Callable[[Any, int, bool], None]] = None
        self._errors: list[BaseException] = []

    def _input_done(self) -> None:
        if self.input_done_callback is not None:
            self.input_done_callback()

    def _output_ready(self, mem, timestamp_us: int, keyframe: bool) -> None:
        if self.output_ready_callback is not None:
            self.output_ready_callback(mem, timestamp_us, keyframe)

    @abstractmethod
    def encode_buffer(self, mem, info: StreamInfo, timestamp_us: int) -> None:
        """Queue the frame in ``mem``, described by ``info``, for encoding."""

    def close(self) -> None:
        """Re-raise the first error that a worker thread met, if any."""
        if self._errors:
            error = self._errors[0]
            self._errors.clear()
            raise error

    def __enter__(self) -> "Encoder":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()