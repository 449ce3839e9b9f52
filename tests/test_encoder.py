import pytest

from camkit.encoder import Encoder
from camkit.formats import PixelFormat, StreamInfo, VideoOptions


class _Recording(Encoder):
    def encode_buffer(self, mem, info, timestamp_us):
        self.input_done_callback()
        self.output_ready_callback(mem, timestamp_us, False)


def _info():
    return StreamInfo(4, 2, 4, PixelFormat.YUV420)


def test_encoder_is_abstract():
    with pytest.raises(TypeError):
        Encoder(VideoOptions())


def test_options_are_kept():
    options = VideoOptions(codec="mjpeg")
    encoder = _Recording(options)
    assert encoder.options is options


def test_default_callbacks_accept_calls():
    encoder = _Recording(VideoOptions())
    assert encoder.input_done_callback() is None
    assert encoder.output_ready_callback(b"x", 1, True) is None


def test_installed_callbacks_receive_buffers():
    events = []
    encoder = _Recording(VideoOptions())
    encoder.input_done_callback = lambda: events.append("done")
    encoder.output_ready_callback = lambda mem, ts, key: events.append((mem, ts, key))
    encoder.encode_buffer(b"abc", _info(), 42)
    assert events == ["done", (b"abc", 42, False)]


def test_close_reraises_worker_error():
    encoder = _Recording(VideoOptions())
    encoder._errors.append(ValueError("boom"))
    with pytest.raises(ValueError, match="boom"):
        encoder.close()
    assert encoder._errors == []


def test_context_manager_returns_encoder_and_closes():
    encoder = _Recording(VideoOptions())
    encoder._errors.append(RuntimeError("late"))
    with pytest.raises(RuntimeError, match="late"):
        with encoder as entered:
            assert entered is encoder