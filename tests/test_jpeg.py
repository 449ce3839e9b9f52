import io

import pytest
from PIL import Image

from camkit.formats import PixelFormat, StillOptions, StreamInfo
from camkit.jpeg import create_exif_data, jpeg_save, yuv_to_jpeg


def _yuv420(width, height, stride=None):
    stride = stride or width
    info = StreamInfo(width, height, stride, PixelFormat.YUV420)
    size = stride * height + 2 * (stride // 2) * (height // 2)
    data = bytes((i * 7) & 0xFF for i in range(stride * height)) + bytes([128]) * (size - stride * height)
    return data, info


def test_full_size_yuv420_encodes():
    data, info = _yuv420(32, 16)
    jpeg = yuv_to_jpeg(data, info, 32, 16, 90, 0)
    assert jpeg[:2] == b"\xff\xd8"
    assert Image.open(io.BytesIO(jpeg)).size == (32, 16)


def test_scaled_yuv420_encodes():
    data, info = _yuv420(32, 16, 48)
    jpeg = yuv_to_jpeg(data, info, 16, 8, 80, 0)
    assert Image.open(io.BytesIO(jpeg)).size == (16, 8)


def test_yuyv_encodes():
    info = StreamInfo(8, 4, 16, PixelFormat.YUYV)
    data = bytes([100, 128] * 32)
    jpeg = yuv_to_jpeg(data, info, 8, 4, 90, 0)
    image = Image.open(io.BytesIO(jpeg)).convert("L")
    assert image.size == (8, 4)
    assert abs(image.getpixel((3, 2)) - 100) < 8


def test_unsupported_format():
    info = StreamInfo(8, 4, 24, PixelFormat.RGB888)
    with pytest.raises(RuntimeError, match="unsupported YUV format"):
        yuv_to_jpeg(bytes(96), info, 8, 4, 90, 0)


def test_no_thumbnail_when_quality_zero():
    data, info = _yuv420(32, 16)
    exif, thumb = create_exif_data([data], info, {}, "cam", StillOptions(thumb_quality=0))
    assert thumb == b""
    assert exif.startswith(b"Exif\0\0")


def test_jpeg_save_with_exif_and_thumbnail(tmp_path):
    data, info = _yuv420(64, 32)
    path = tmp_path / "out.jpg"
    options = StillOptions(thumb_width=16, thumb_height=8, exif=["IFD0.Artist=Someone"])
    jpeg_save([data], info, {"ExposureTime": 20000, "AnalogueGain": 2.0}, str(path), "cam", options)
    raw = path.read_bytes()
    assert raw[:4] == b"\xff\xd8\xff\xe1"
    image = Image.open(path)
    assert image.size == (64, 32)
    exif = image.getexif()
    assert exif[0x013B] == "Someone"
    sub = exif.get_ifd(0x8769)
    assert sub[0x010F] == "Raspberry Pi"
    assert sub[0x8827] == 200
    # The thumbnail is a JPEG of its own inside the APP1 segment.
    assert raw.find(b"\xff\xd8", 4) < raw.find(b"\xff\xdb")


def test_jpeg_save_rejects_odd_size(tmp_path):
    data, info = _yuv420(31, 16)
    with pytest.raises(RuntimeError, match="even"):
        jpeg_save([data], info, {}, str(tmp_path / "x.jpg"), "cam", StillOptions())


def test_jpeg_save_rejects_multiple_planes(tmp_path):
    data, info = _yuv420(32, 16)
    with pytest.raises(RuntimeError, match="single plane"):
        jpeg_save([data, data], info, {}, str(tmp_path / "x.jpg"), "cam", StillOptions())