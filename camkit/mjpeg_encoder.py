"""Motion-JPEG encoder spreading frames over several worker threads."""

from __future__ import annotations

import itertools
import logging
import queue
import threading
import time

from .encoder import Encoder
from .formats import StreamInfo, VideoOptions
from .jpeg import yuv_to_jpeg

log = logging.getLogger(__name__)

_POLL_SECONDS = 0.2
NUM_ENC_THREADS = 4


class MjpegEncoder(Encoder):
    """Encodes each frame as a JPEG; outputs are delivered in input order."""

    def __init__(self, options: VideoOptions) -> None:
        super().__init__(options)
        self._encode_queue: queue.Queue = queue.Queue()
        self._index = itertools.count()
        self._index_lock = threading.Lock()
        self._results: dict[int, tuple[bytes | None, int]] = {}
        self._output_cond = threading.Condition()
        self._abort_encode = threading.Event()
        self._abort_output = threading.Event()
        self._closed = False

        self._output_thread = threading.Thread(target=self._output_loop, name="mjpeg-output", daemon=True)
        self._output_thread.start()
        self._encode_threads = [
            threading.Thread(target=self._encode_loop, args=(num,), name=f"mjpeg-encode-{num}", daemon=True)
            for num in range(NUM_ENC_THREADS)
        ]
        for thread in self._encode_threads:
            thread.start()
        log.debug("Opened MjpegEncoder")

    def encode_buffer(self, mem, info: StreamInfo, timestamp_us: int) -> None:
        if self._closed:
            raise RuntimeError("encoder is closed")
        with self._index_lock:
            self._encode_queue.put((next(self._index), mem, info, timestamp_us))

    def _encode_loop(self, num: int) -> None:
        frames = 0
        encode_time = 0.0
        while True:
            try:
                index, mem, info, timestamp_us = self._encode_queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if self._abort_encode.is_set():
                    if frames:
                        log.debug("Encode %d frames, average time %gms", frames, encode_time * 1000 / frames)
                    return
                continue

            start = time.perf_counter()
            try:
                encoded = yuv_to_jpeg(mem, info, info.width, info.height, self.options.quality, 0)
            except Exception as err:
                self._errors.append(err)
                encoded = None
            encode_time += time.perf_counter() - start
            frames += 1

            with self._output_cond:
                self._results[index] = (encoded, timestamp_us)
                self._output_cond.notify_all()

    def _output_loop(self) -> None:
        index = 0
        try:
            while True:
                with self._output_cond:
                    while index not in self._results:
                        # Only stop once every finished frame has been handed on.
                        if self._abort_output.is_set() and not self._results:
                            return
                        self._output_cond.wait(_POLL_SECONDS)
                    encoded, timestamp_us = self._results.pop(index)
                index += 1
                if encoded is None:
                    continue
                self._input_done()
                self._output_ready(encoded, timestamp_us, True)
        except Exception as err:
            self._errors.append(err)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._abort_encode.set()
            for thread in self._encode_threads:
                thread.join()
            self._abort_output.set()
            with self._output_cond:
                self._output_cond.notify_all()
            self._output_thread.join()
            log.debug("MjpegEncoder closed")
        super().close()