import struct

import pytest
from PIL import Image

from camkit.exif import ExifData, ExifFormat, ExifIfd, read_tag, tag_from_name


def test_tag_from_name_known_and_unknown():
    assert tag_from_name("Make") == 0x010F
    assert tag_from_name("NoSuchTag") == 0


def test_read_rational_tag():
    exif = ExifData()
    read_tag(exif, "EXIF.ExposureTime=1/100")
    entry = exif.entry(ExifIfd.EXIF, tag_from_name("ExposureTime"))
    assert bytes(entry.data) == struct.pack("<II", 1, 100)
    assert entry.format is ExifFormat.RATIONAL


def test_read_ascii_tag():
    exif = ExifData()
    read_tag(exif, "IFD0.Artist=Someone")
    entry = exif.entry(ExifIfd.IFD0, tag_from_name("Artist"))
    assert bytes(entry.data) == b"Someone"
    assert entry.components == 7


def test_variable_components_counted_from_commas():
    exif = ExifData()
    read_tag(exif, "EXIF.SubjectArea=1,2,3")
    entry = exif.entry(ExifIfd.EXIF, tag_from_name("SubjectArea"))
    assert entry.components == 3
    assert bytes(entry.data) == struct.pack("<3H", 1, 2, 3)


def test_exception_format_needs_all_components():
    exif = ExifData()
    with pytest.raises(RuntimeError, match="too few parameters"):
        read_tag(exif, "EXIF.YCbCrCoefficients=1/2,3/4")


def test_bad_ifd_name():
    with pytest.raises(RuntimeError, match="bad IFD name"):
        read_tag(ExifData(), "ABC.Make=x")


def test_malformed_header():
    with pytest.raises(RuntimeError, match="failed to read EXIF IFD and tag"):
        read_tag(ExifData(), "no equals here")


def test_unknown_tag_is_ignored():
    exif = ExifData()
    read_tag(exif, "EXIF.Bogus=1")
    assert (ExifIfd.EXIF, 0) not in exif


def test_bad_number_raises():
    with pytest.raises(RuntimeError, match="unsigned rational"):
        read_tag(ExifData(), "EXIF.FNumber=abc")


def test_save_round_trips_through_pillow():
    exif = ExifData()
    read_tag(exif, "IFD0.Artist=Someone")
    read_tag(exif, "EXIF.ExposureTime=1/100")
    data = exif.save()
    assert data.startswith(b"Exif\0\0II*\0")
    parsed = Image.Exif()
    parsed.load(data)
    assert parsed[tag_from_name("Artist")] == "Someone"
    sub = parsed.get_ifd(0x8769)
    assert float(sub[tag_from_name("ExposureTime")]) == pytest.approx(0.01)