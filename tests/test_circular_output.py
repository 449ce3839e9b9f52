import pytest

from camkit.circular_output import CircularOutput
from camkit.formats import VideoOptions
from camkit.output import Flag


def test_dump_skips_frames_before_keyframe(tmp_path):
    path = tmp_path / "out.bin"
    out = CircularOutput(VideoOptions(output=str(path), circular=1))
    out.output_buffer(b"early", 0, Flag.NONE)
    out.output_buffer(b"key", 1, Flag.KEYFRAME)
    out.output_buffer(b"later", 2, Flag.NONE)
    out.close()
    assert path.read_bytes() == b"keylater"


def test_nothing_written_before_close(tmp_path):
    path = tmp_path / "out.bin"
    out = CircularOutput(VideoOptions(output=str(path), circular=1))
    out.output_ready(b"frame", 0, True)
    assert path.read_bytes() == b""
    out.close()
    assert path.read_bytes() == b"frame"


def test_oldest_frames_evicted(tmp_path):
    path = tmp_path / "out.bin"
    frames = [bytes([i]) * 400_000 for i in range(4)]
    with CircularOutput(VideoOptions(output=str(path), circular=1)) as out:
        for i, frame in enumerate(frames):
            out.output_ready(frame, i * 1000, True)
    assert path.read_bytes() == frames[2] + frames[3]


def test_wrapping_with_padding(tmp_path):
    path = tmp_path / "out.bin"
    frames = [bytes([i]) * 300_001 for i in range(10)]
    with CircularOutput(VideoOptions(output=str(path), circular=1)) as out:
        for i, frame in enumerate(frames):
            out.output_ready(frame, i * 1000, True)
    assert path.read_bytes() == b"".join(frames[-3:])


def test_frame_too_big(tmp_path):
    out = CircularOutput(VideoOptions(output=str(tmp_path / "o.bin"), circular=1))
    with pytest.raises(RuntimeError, match="too small"):
        out.output_ready(bytes(2 << 20), 0, True)
    out.close()


def test_requires_output():
    with pytest.raises(RuntimeError):
        CircularOutput(VideoOptions(circular=1))


def test_timestamps_written_on_close(tmp_path):
    pts = tmp_path / "pts.txt"
    out = CircularOutput(VideoOptions(output=str(tmp_path / "o.bin"), circular=1, save_pts=str(pts)))
    out.output_ready(b"a", 1000, True)
    out.output_ready(b"b", 6000, False)
    out.close()
    assert pts.read_text().splitlines()[1:] == ["0.000", "5.000"]