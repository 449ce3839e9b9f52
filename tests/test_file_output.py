from pathlib import Path

import pytest

from camkit.file_output import FileOutput
from camkit.formats import VideoOptions


def _numbered(pattern, count):
    return Path(str(pattern) % count)


def test_writes_from_first_keyframe(tmp_path):
    path = tmp_path / "out.bin"
    with FileOutput(VideoOptions(output=str(path))) as out:
        out.output_ready(b"skip", 0, False)
        out.output_ready(b"ab", 10, True)
        out.output_ready(b"cd", 20, False)
    assert path.read_bytes() == b"abcd"


def test_segments_start_new_files(tmp_path):
    pattern = tmp_path / "seg%d.bin"
    with FileOutput(VideoOptions(output=str(pattern), segment=1000)) as out:
        out.output_ready(b"A", 0, True)
        out.output_ready(b"B", 500_000, True)
        out.output_ready(b"C", 2_500_000, True)
    assert _numbered(pattern, 0).read_bytes() == b"AB"
    assert _numbered(pattern, 1).read_bytes() == b"C"


def test_wrap_reuses_file_names(tmp_path):
    pattern = tmp_path / "seg%d.bin"
    with FileOutput(VideoOptions(output=str(pattern), segment=1, wrap=2)) as out:
        out.output_ready(b"first", 0, True)
        out.output_ready(b"second", 10_000, True)
        out.output_ready(b"third", 20_000, True)
    assert _numbered(pattern, 0).read_bytes() == b"third"
    assert _numbered(pattern, 1).read_bytes() == b"second"
    assert not _numbered(pattern, 2).exists()


def test_split_on_restart(tmp_path):
    pattern = tmp_path / "part%d.bin"
    with FileOutput(VideoOptions(output=str(pattern), split=True)) as out:
        out.output_ready(b"A", 0, True)
        out.signal()
        out.output_ready(b"-", 1000, True)
        out.signal()
        out.output_ready(b"B", 2000, True)
    assert _numbered(pattern, 0).read_bytes() == b"A"
    assert _numbered(pattern, 1).read_bytes() == b"B"


def test_name_without_placeholder_is_reused(tmp_path):
    path = tmp_path / "plain.bin"
    with FileOutput(VideoOptions(output=str(path), segment=1000)) as out:
        out.output_ready(b"A", 0, True)
        out.output_ready(b"B", 2_000_000, True)
    assert path.read_bytes() == b"B"


def test_stdout(capsysbinary):
    with FileOutput(VideoOptions(output="-")) as out:
        out.output_ready(b"xy", 0, True)
    assert capsysbinary.readouterr().out == b"xy"


def test_open_failure(tmp_path):
    out = FileOutput(VideoOptions(output=str(tmp_path / "missing" / "x.bin")))
    with pytest.raises(RuntimeError):
        out.output_ready(b"data", 0, True)
    out.close()