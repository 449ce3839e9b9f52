import io
import json

import pytest

from camkit.formats import VideoOptions
from camkit.output import (
    Flag,
    Output,
    start_metadata_output,
    stop_metadata_output,
    write_metadata,
)


class Recorder(Output):
    def __init__(self, options):
        super().__init__(options)
        self.calls = []

    def output_buffer(self, mem, timestamp_us, flags):
        self.calls.append((bytes(mem), timestamp_us, flags))


def test_waits_for_keyframe_and_rebases_timestamps():
    out = Recorder(VideoOptions())
    out.output_ready(b"a", 100, False)
    out.output_ready(b"b", 1000, True)
    out.output_ready(b"c", 1500, False)
    assert out.calls == [
        (b"b", 0, Flag.KEYFRAME | Flag.RESTART),
        (b"c", 1500 - 1000, Flag.NONE),
    ]


def test_pause_and_resume_keeps_timestamps_continuous():
    out = Recorder(VideoOptions())
    out.output_ready(b"b", 1000, True)
    out.output_ready(b"c", 1500, False)
    out.signal()
    out.output_ready(b"d", 2000, True)
    out.signal()
    out.output_ready(b"e", 3000, False)
    out.output_ready(b"f", 4000, True)
    assert [c[0] for c in out.calls] == [b"b", b"c", b"f"]
    assert out.calls[-1][1] == out.calls[1][1]
    assert out.calls[-1][2] & Flag.RESTART


def test_starts_paused_when_requested():
    out = Recorder(VideoOptions(pause=True))
    out.output_ready(b"x", 10, True)
    assert out.calls == []
    out.signal()
    out.output_ready(b"y", 20, True)
    assert [c[0] for c in out.calls] == [b"y"]


def test_timestamp_file(tmp_path):
    pts = tmp_path / "pts.txt"
    with Output(VideoOptions(save_pts=str(pts))) as out:
        out.output_ready(b"x", 1000, True)
        out.output_ready(b"y", 1000 + 1234567, False)
    assert pts.read_text().splitlines() == ["# timecode format v2", "0.000", "1234.567"]


def test_timestamp_file_open_failure(tmp_path):
    with pytest.raises(RuntimeError):
        Output(VideoOptions(save_pts=str(tmp_path / "missing" / "pts.txt")))


def test_json_metadata_round_trip(tmp_path):
    path = tmp_path / "meta.json"
    first = {"ExposureTime": 100, "ColourGains": [1.5, 2.0], "Ratio": "1/30"}
    second = {"ExposureTime": 200, "AeLocked": True}
    with Output(VideoOptions(metadata=str(path))) as out:
        out.metadata_ready(first)
        out.output_ready(b"a", 0, True)
        out.metadata_ready(second)
        out.output_ready(b"b", 10, False)
    assert json.loads(path.read_text()) == [first, second]


def test_txt_metadata(tmp_path):
    path = tmp_path / "meta.txt"
    with Output(VideoOptions(metadata=str(path), metadata_format="txt")) as out:
        out.metadata_ready({"ExposureTime": 100, "AeLocked": True})
        out.output_ready(b"a", 0, True)
    lines = path.read_text().splitlines()
    assert "ExposureTime=100" in lines
    assert "AeLocked=true" in lines


def test_missing_metadata_raises(tmp_path):
    out = Output(VideoOptions(metadata=str(tmp_path / "m.json")))
    with pytest.raises(RuntimeError):
        out.output_ready(b"a", 0, True)
    out.close()


def test_metadata_ignored_when_disabled():
    out = Recorder(VideoOptions())
    out.metadata_ready({"ExposureTime": 1})
    out.output_ready(b"a", 0, True)
    assert len(out.calls) == 1


def test_metadata_helpers_produce_json_array():
    stream = io.StringIO()
    start_metadata_output(stream, "json")
    write_metadata(stream, "json", {"A": 1}, True)
    write_metadata(stream, "json", {"B": 2}, False)
    stop_metadata_output(stream, "json")
    assert json.loads(stream.getvalue()) == [{"A": 1}, {"B": 2}]


def test_non_first_write_starts_with_separator():
    stream = io.StringIO()
    write_metadata(stream, "json", {"A": 1}, False)
    assert stream.getvalue().startswith(",\n{")