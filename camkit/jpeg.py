"""Encode YUV images as JPEG files carrying EXIF data and a thumbnail."""

from __future__ import annotations

import io
import logging
import struct
import sys
import time
from typing import Any, Mapping, Sequence

from PIL import Image

from .exif import BYTE_ORDER, ExifData, ExifIfd, read_tag, tag_from_name
from .formats import PixelFormat, StillOptions, StreamInfo

log = logging.getLogger(__name__)

MAKE_STRING = "Raspberry Pi"
_EXIF_HEADER = b"\xff\xd8\xff\xe1"


def _encode(planes: tuple[bytes, bytes, bytes], size: tuple[int, int], chroma_size: tuple[int, int],
            quality: int, restart: int) -> bytes:
    y = Image.frombytes("L", size, planes[0])
    u = Image.frombytes("L", chroma_size, planes[1])
    v = Image.frombytes("L", chroma_size, planes[2])
    if chroma_size != size:
        u = u.resize(size, Image.NEAREST)
        v = v.resize(size, Image.NEAREST)
    image = Image.merge("YCbCr", (y, u, v))
    params: dict[str, Any] = {"quality": int(quality)}
    if restart:
        params["restart_marker_blocks"] = restart
    out = io.BytesIO()
    image.save(out, format="JPEG", **params)
    return out.getvalue()


def _yuyv_planes(data: bytes, info: StreamInfo, ow: int, oh: int):
    offsets = [(i * info.width) // ow * 2 for i in range(ow)]
    ys, us, vs = bytearray(), bytearray(), bytearray()
    for row in range(oh):
        base = ((row * info.height) // oh) * info.stride
        for off in offsets:
            aligned = off & ~3
            ys.append(data[base + off])
            us.append(data[base + aligned + 1])
            vs.append(data[base + aligned + 3])
    return bytes(ys), bytes(us), bytes(vs)


def _yuv420_planes_fast(data: bytes, info: StreamInfo):
    w, h, stride = info.width, info.height, info.stride
    s2 = stride // 2
    u_base = stride * h
    v_base = u_base + s2 * (h // 2)
    y = b"".join(data[j * stride:j * stride + w] for j in range(h))
    u = b"".join(data[u_base + j * s2:u_base + j * s2 + w // 2] for j in range(h // 2))
    v = b"".join(data[v_base + j * s2:v_base + j * s2 + w // 2] for j in range(h // 2))
    return y, u, v


def _yuv420_planes_scaled(data: bytes, info: StreamInfo, ow: int, oh: int):
    s2 = info.stride // 2
    u_base = info.stride * info.height
    v_base = u_base + s2 * (info.height // 2)
    offsets = [(i * info.width) // ow for i in range(ow)]
    ys, us, vs = bytearray(), bytearray(), bytearray()
    for row in range(oh):
        base = ((row * info.height) // oh) * info.stride
        base_uv = (((row // 2) * info.height) // oh) * s2
        for off in offsets:
            ys.append(data[base + off])
            us.append(data[u_base + base_uv + off // 2])
            vs.append(data[v_base + base_uv + off // 2])
    return bytes(ys), bytes(us), bytes(vs)


def yuv_to_jpeg(data, info: StreamInfo, output_width: int, output_height: int, quality: int,
                restart: int) -> bytes:
    """Encode a YUYV or YUV420 image, resampled to the output size, as a JPEG."""
    raw = bytes(memoryview(data).cast("B"))
    size = (output_width, output_height)
    if info.pixel_format is PixelFormat.YUYV:
        return _encode(_yuyv_planes(raw, info, *size), size, size, quality, restart)
    if info.pixel_format is PixelFormat.YUV420:
        if (info.width, info.height) == size:
            return _encode(_yuv420_planes_fast(raw, info), size,
                           (info.width // 2, info.height // 2), quality, restart)
        return _encode(_yuv420_planes_scaled(raw, info, *size), size, size, quality, restart)
    raise RuntimeError("unsupported YUV format in JPEG encode")


def _set_string(exif: ExifData, tag_name: str, text: str) -> None:
    entry = exif.entry(ExifIfd.EXIF, tag_from_name(tag_name))
    entry.data = bytearray(text.encode("utf-8"))
    entry.components = len(entry.data)


def _set(exif: ExifData, ifd: ExifIfd, tag_name: str, code: str, *values: int):
    entry = exif.entry(ifd, tag_from_name(tag_name))
    raw = struct.pack(BYTE_ORDER + code, *values)
    entry.data[:len(raw)] = raw
    return entry


def create_exif_data(mem: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None, cam_model: str,
                     options: StillOptions) -> tuple[bytes, bytes]:
    """Build the EXIF payload and, if requested, the thumbnail JPEG that follows it."""
    metadata = metadata or {}
    exif = ExifData()
    _set_string(exif, "Make", MAKE_STRING)
    _set_string(exif, "Model", cam_model)
    _set_string(exif, "Software", "libcamera-apps")
    now = time.strftime("%Y:%m:%d %H:%M:%S", time.localtime())
    for name in ("DateTime", "DateTimeOriginal", "DateTimeDigitized"):
        _set_string(exif, name, now)

    exposure = metadata.get("ExposureTime")
    if exposure is not None:
        log.debug("Exposure time: %s", exposure)
        _set(exif, ExifIfd.EXIF, "ExposureTime", "II", int(exposure) & 0xFFFFFFFF, 1000000)
    analogue = metadata.get("AnalogueGain")
    if analogue is not None:
        digital = metadata.get("DigitalGain")
        gain = analogue * (digital if digital is not None else 1.0)
        log.debug("Ag %s Dg %s Total %s", analogue, digital, gain)
        _set(exif, ExifIfd.EXIF, "ISOSpeedRatings", "H", int(100 * gain) & 0xFFFF)
    lens = metadata.get("LensPosition")
    if lens is not None:
        _set(exif, ExifIfd.EXIF, "SubjectDistance", "II", 1000, int(1000.0 * lens) & 0xFFFFFFFF)

    for item in options.exif:
        log.debug("Processing EXIF item: %s", item)
        read_tag(exif, item)

    thumb = b""
    if options.thumb_quality:
        log.debug("Thumbnail dimensions are %d x %d", options.thumb_width, options.thumb_height)
        _set(exif, ExifIfd.IFD1, "ImageWidth", "I", options.thumb_width)
        _set(exif, ExifIfd.IFD1, "ImageLength", "I", options.thumb_height)
        _set(exif, ExifIfd.IFD1, "Compression", "H", 6)
        _set(exif, ExifIfd.IFD1, "JPEGInterchangeFormat", "I", 0)
        _set(exif, ExifIfd.IFD1, "JPEGInterchangeFormatLength", "I", 0)
        exif_len = len(exif.save())

        quality = options.thumb_quality
        while quality > 0:
            thumb = yuv_to_jpeg(mem[0], info, options.thumb_width, options.thumb_height, quality, 0)
            if len(thumb) < 60000:  # the whole EXIF block must stay under 64K
                break
            quality -= 5
        log.debug("Thumbnail size %d", len(thumb))
        if quality <= 0:
            raise RuntimeError("failed to make acceptable thumbnail")

        # The thumbnail offset is relative to the TIFF header after "Exif\0\0".
        _set(exif, ExifIfd.IFD1, "JPEGInterchangeFormat", "I", exif_len - 6)
        _set(exif, ExifIfd.IFD1, "JPEGInterchangeFormatLength", "I", len(thumb))

    return exif.save(), thumb


def _image_body(jpeg: bytes) -> bytes:
    """Drop the SOI marker and any JFIF APP0 segment."""
    position = 2
    if jpeg[2:4] == b"\xff\xe0":
        position = 4 + struct.unpack(">H", jpeg[4:6])[0]
    return jpeg[position:]


def jpeg_save(mem: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None, filename: str,
              cam_model: str, options: StillOptions) -> None:
    """Write ``mem[0]`` as a JPEG file with EXIF data and an optional thumbnail."""
    if info.width & 1 or info.height & 1:
        raise RuntimeError("both width and height must be even")
    if len(mem) != 1:
        raise RuntimeError("only single plane YUV supported")

    exif, thumb = create_exif_data(mem, info, metadata, cam_model, options)
    jpeg = yuv_to_jpeg(mem[0], info, info.width, info.height, options.quality, options.restart)
    log.debug("JPEG size is %d", len(jpeg))
    log.debug("EXIF data len %d", len(exif))

    length = len(exif) + len(thumb) + 2
    payload = (_EXIF_HEADER + bytes(((length >> 8) & 0xFF, length & 0xFF))
               + exif + thumb + _image_body(jpeg))

    if filename == "-":
        sys.stdout.buffer.write(payload)
        sys.stdout.buffer.flush()
        return
    try:
        fp = open(filename, "wb")
    except OSError as err:
        raise RuntimeError(f"failed to open file {options.output}") from err
    with fp:
        try:
            fp.write(payload)
        except OSError as err:
            raise RuntimeError("failed to write file - output probably corrupt") from err