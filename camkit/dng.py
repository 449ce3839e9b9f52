"""Save raw Bayer images as DNG files."""

from __future__ import annotations

import logging
import math
import struct
import sys
import time
from array import array
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Mapping, Sequence

from .formats import PixelFormat, StillOptions, StreamInfo

log = logging.getLogger(__name__)

MAKE_STRING = "Raspberry Pi"

_TIFF_RGGB = bytes((0, 1, 1, 2))
_TIFF_GRBG = bytes((1, 0, 2, 1))
_TIFF_BGGR = bytes((2, 1, 1, 0))
_TIFF_GBRG = bytes((1, 2, 0, 1))


@dataclass(frozen=True)
class _BayerFormat:
    name: str
    bits: int
    order: bytes


_BAYER_FORMATS = {
    PixelFormat.SRGGB10_CSI2P: _BayerFormat("RGGB-10", 10, _TIFF_RGGB),
    PixelFormat.SGRBG10_CSI2P: _BayerFormat("GRBG-10", 10, _TIFF_GRBG),
    PixelFormat.SBGGR10_CSI2P: _BayerFormat("BGGR-10", 10, _TIFF_BGGR),
    PixelFormat.R10_CSI2P: _BayerFormat("BGGR-10", 10, _TIFF_BGGR),
    PixelFormat.SGBRG10_CSI2P: _BayerFormat("GBRG-10", 10, _TIFF_GBRG),
    PixelFormat.SRGGB12_CSI2P: _BayerFormat("RGGB-12", 12, _TIFF_RGGB),
    PixelFormat.SGRBG12_CSI2P: _BayerFormat("GRBG-12", 12, _TIFF_GRBG),
    PixelFormat.SBGGR12_CSI2P: _BayerFormat("BGGR-12", 12, _TIFF_BGGR),
    PixelFormat.SGBRG12_CSI2P: _BayerFormat("GBRG-12", 12, _TIFF_GBRG),
    PixelFormat.SRGGB16: _BayerFormat("RGGB-16", 16, _TIFF_RGGB),
    PixelFormat.SGRBG16: _BayerFormat("GRBG-16", 16, _TIFF_GRBG),
    PixelFormat.SBGGR16: _BayerFormat("BGGR-16", 16, _TIFF_BGGR),
    PixelFormat.SGBRG16: _BayerFormat("GBRG-16", 16, _TIFF_GBRG),
}


def _rows(data, info: StreamInfo, row_bytes: int):
    view = memoryview(data).cast("B")
    if info.height and len(view) < (info.height - 1) * info.stride + row_bytes:
        raise ValueError("image data too short for its stream geometry")
    for y in range(info.height):
        start = y * info.stride
        yield view[start:start + row_bytes]


def unpack_10bit(data, info: StreamInfo) -> array:
    """Unpack CSI-2 packed 10-bit samples (4 pixels in 5 bytes) to 16-bit values."""
    groups, rem = divmod(info.width, 4)
    row_bytes = 5 * groups + (5 if rem else 0)
    out = array("H")
    for row in _rows(data, info, row_bytes):
        packed = row[:5 * groups]
        for a, b, c, d, low in zip(packed[0::5], packed[1::5], packed[2::5], packed[3::5], packed[4::5]):
            out.extend(((a << 2) | (low & 3), (b << 2) | ((low >> 2) & 3),
                        (c << 2) | ((low >> 4) & 3), (d << 2) | ((low >> 6) & 3)))
        if rem:
            tail = row[5 * groups:5 * groups + 5]
            low = tail[4]
            out.extend((tail[i] << 2) | ((low >> (2 * i)) & 3) for i in range(rem))
    return out


def unpack_12bit(data, info: StreamInfo) -> array:
    """Unpack CSI-2 packed 12-bit samples (2 pixels in 3 bytes) to 16-bit values."""
    groups, rem = divmod(info.width, 2)
    row_bytes = 3 * groups + (3 if rem else 0)
    out = array("H")
    for row in _rows(data, info, row_bytes):
        packed = row[:3 * groups]
        for a, b, low in zip(packed[0::3], packed[1::3], packed[2::3]):
            out.extend(((a << 4) | (low & 15), (b << 4) | ((low >> 4) & 15)))
        if rem:
            tail = row[3 * groups:3 * groups + 3]
            out.append((tail[0] << 4) | (tail[2] & 15))
    return out


def unpack_16bit(data, info: StreamInfo) -> array:
    """Copy 16-bit samples in native byte order, dropping the stride padding."""
    out = array("H")
    for row in _rows(data, info, 2 * info.width):
        out.frombytes(row.tobytes())
    return out


class Matrix:
    """A 3x3 matrix stored row by row."""

    def __init__(self, *args: float) -> None:
        if not args:
            values = (0.0,) * 9
        elif len(args) == 3:
            d0, d1, d2 = args
            values = (d0, 0.0, 0.0, 0.0, d1, 0.0, 0.0, 0.0, d2)
        elif len(args) == 9:
            values = args
        else:
            raise TypeError("Matrix takes 0, 3 or 9 values")
        self.m = tuple(float(v) for v in values)

    def __repr__(self) -> str:
        return f"Matrix{self.m!r}"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Matrix) and self.m == other.m

    def transpose(self) -> "Matrix":
        m = self.m
        return Matrix(m[0], m[3], m[6], m[1], m[4], m[7], m[2], m[5], m[8])

    def cofactors(self) -> "Matrix":
        m = self.m
        return Matrix(m[4] * m[8] - m[5] * m[7], -(m[3] * m[8] - m[5] * m[6]), m[3] * m[7] - m[4] * m[6],
                      -(m[1] * m[8] - m[2] * m[7]), m[0] * m[8] - m[2] * m[6], -(m[0] * m[7] - m[1] * m[6]),
                      m[1] * m[5] - m[2] * m[4], -(m[0] * m[5] - m[2] * m[3]), m[0] * m[4] - m[1] * m[3])

    def adjugate(self) -> "Matrix":
        return self.cofactors().transpose()

    def determinant(self) -> float:
        m = self.m
        return (m[0] * (m[4] * m[8] - m[5] * m[7])
                - m[1] * (m[3] * m[8] - m[5] * m[6])
                + m[2] * (m[3] * m[7] - m[4] * m[6]))

    def inverse(self) -> "Matrix":
        det = self.determinant()
        if det == 0:
            raise ZeroDivisionError("matrix is singular")
        return self.adjugate() * (1.0 / det)

    def __mul__(self, other):
        if isinstance(other, Matrix):
            a, b = self.m, other.m
            return Matrix(*(a[3 * i] * b[j] + a[3 * i + 1] * b[3 + j] + a[3 * i + 2] * b[6 + j]
                            for i in range(3) for j in range(3)))
        if isinstance(other, (int, float)):
            return Matrix(*(v * other for v in self.m))
        return NotImplemented


# TIFF field types and their sizes in bytes.
_BYTE, _ASCII, _SHORT, _LONG, _RATIONAL, _SRATIONAL = 1, 2, 3, 4, 5, 10
_TYPE_FORMAT = {_SHORT: "H", _LONG: "I", _RATIONAL: "I", _SRATIONAL: "i"}


def _rational(value: float, signed: bool = False) -> tuple[int, int]:
    limit = 2**31 - 1 if signed else 2**32 - 1
    if math.isnan(value):
        return (0, 1)
    if not signed and value < 0:
        return (0, 1)
    if math.isinf(value):
        return (limit if value > 0 else -limit, 1)
    exact = Fraction(value)
    den_limit = 1_000_000
    while den_limit:
        frac = exact.limit_denominator(den_limit)
        if abs(frac.numerator) <= limit and frac.denominator <= limit:
            return (frac.numerator, frac.denominator)
        den_limit //= 10
    return (max(-limit, min(limit, round(value))), 1)


def _encode(kind: int, values) -> tuple[int, bytes]:
    if kind == _ASCII:
        raw = values.encode("ascii", "replace") + b"\0"
        return len(raw), raw
    if kind == _BYTE:
        raw = bytes(values)
        return len(raw), raw
    if kind in (_RATIONAL, _SRATIONAL):
        flat = [part for pair in values for part in pair]
        return len(values), struct.pack(f"<{len(flat)}{_TYPE_FORMAT[kind]}", *flat)
    return len(values), struct.pack(f"<{len(values)}{_TYPE_FORMAT[kind]}", *values)


def _append_ifd(buf: bytearray, entries: Sequence[tuple[int, int, Any]]) -> int:
    """Append an IFD with its out-of-line values and return its offset."""
    if len(buf) & 1:
        buf.append(0)
    offset = len(buf)
    ordered = sorted(entries, key=lambda entry: entry[0])
    extra = bytearray()
    extra_base = offset + 2 + 12 * len(ordered) + 4
    table = bytearray(struct.pack("<H", len(ordered)))
    for tag, kind, values in ordered:
        count, raw = _encode(kind, values)
        if len(raw) <= 4:
            field = raw.ljust(4, b"\0")
        else:
            if len(extra) & 1:
                extra.append(0)
            field = struct.pack("<I", extra_base + len(extra))
            extra += raw
        table += struct.pack("<HHI", tag, kind, count) + field
    table += struct.pack("<I", 0)
    buf += table + extra
    return offset


def _get(metadata: Mapping[str, Any], name: str):
    value = metadata.get(name)
    return value


def dng_save(mem: Sequence, info: StreamInfo, metadata: Mapping[str, Any] | None, filename: str,
             cam_model: str, options: StillOptions | None) -> None:
    """Write the raw Bayer data in ``mem[0]`` as a DNG with a small greyscale thumbnail."""
    bayer = _BAYER_FORMATS.get(info.pixel_format)
    if bayer is None:
        raise RuntimeError("unsupported Bayer format")
    log.info("Bayer format is %s", bayer.name)
    metadata = metadata or {}

    if bayer.bits == 10:
        buf = unpack_10bit(mem[0], info)
    elif bayer.bits == 12:
        buf = unpack_12bit(mem[0], info)
    else:
        buf = unpack_16bit(mem[0], info)

    scale = (1 << bayer.bits) / 65536.0
    black = 4096 * scale
    black_levels = [black] * 4
    levels = _get(metadata, "SensorBlackLevels")
    if levels is not None:
        # Levels come as R, Gr, Gb, B; put them in the sensor's Bayer order.
        for i in range(4):
            j = bayer.order[i]
            j = 0 if j == 0 else (3 if j == 2 else 1 + bool(bayer.order[i ^ 1]))
            black_levels[j] = levels[i] * scale
    else:
        log.warning("WARNING: no black level found, using default")

    exposure = _get(metadata, "ExposureTime")
    exp_time = 10000.0
    if exposure is not None:
        exp_time = float(exposure)
    else:
        log.warning("WARNING: default to exposure time of %gus", exp_time)
    exp_time /= 1e6

    gain = _get(metadata, "AnalogueGain")
    iso = 100
    if gain is not None:
        iso = int(gain * 100.0) & 0xFFFF
    else:
        log.warning("WARNING: default to ISO value of %d", iso)

    neutral = [1.0, 1.0, 1.0]
    wb_gains = Matrix(1, 1, 1)
    colour_gains = _get(metadata, "ColourGains")
    if colour_gains is not None:
        neutral[0] = 1.0 / colour_gains[0]
        neutral[2] = 1.0 / colour_gains[1]
        wb_gains = Matrix(colour_gains[0], 1, colour_gains[1])

    # A plausible default in case the metadata has no colour correction matrix.
    ccm = Matrix(1.90255, -0.77478, -0.12777,
                 -0.31338, 1.88197, -0.56858,
                 -0.06001, -0.61785, 1.67786)
    ccm_values = _get(metadata, "ColourCorrectionMatrix")
    if ccm_values is not None:
        ccm = Matrix(*ccm_values[:9])
    else:
        log.warning("WARNING: no CCM metadata found")

    rgb2xyz = Matrix(0.4124564, 0.3575761, 0.1804375,
                     0.2126729, 0.7151522, 0.0721750,
                     0.0193339, 0.1191920, 0.9503041)
    cam_xyz = (rgb2xyz * ccm * wb_gains).inverse()

    log.debug("Black levels %s, exposure time %gus, ISO %d", black_levels, exp_time * 1e6, iso)
    log.debug("Neutral %s", neutral)
    log.debug("Cam_XYZ: %s", cam_xyz.m)

    width, height = info.width, info.height
    thumb_w, thumb_h = width >> 4, height >> 4

    thumbnail = bytearray()
    for y in range(thumb_h):
        for x in range(thumb_w):
            off = (y * width + x) << 4
            grey = buf[off] + buf[off + 1] + buf[off + width] + buf[off + width + 1]
            grey = (grey << 14) >> bayer.bits
            value = int(math.sqrt(grey)) & 0xFF  # simple "gamma correction"
            thumbnail += bytes((value, value, value))

    raw = array("H", buf)
    if sys.byteorder == "big":
        raw.byteswap()
    raw_bytes = raw.tobytes()

    out = bytearray(b"II*\0\0\0\0\0")
    thumb_offset = len(out)
    out += thumbnail
    if len(out) & 1:
        out.append(0)
    raw_offset = len(out)
    out += raw_bytes

    raw_ifd = _append_ifd(out, [
        (254, _LONG, [0]),
        (256, _LONG, [width]),
        (257, _LONG, [height]),
        (258, _SHORT, [16]),
        (259, _SHORT, [1]),
        (262, _SHORT, [32803]),
        (273, _LONG, [raw_offset]),
        (277, _SHORT, [1]),
        (278, _LONG, [height]),
        (279, _LONG, [len(raw_bytes)]),
        (284, _SHORT, [1]),
        (33421, _SHORT, [2, 2]),
        (33422, _BYTE, bayer.order),
        (50713, _SHORT, [2, 2]),
        (50714, _RATIONAL, [_rational(level) for level in black_levels]),
        (50717, _LONG, [(1 << bayer.bits) - 1]),
    ])

    exif_entries = [
        (33434, _RATIONAL, [_rational(exp_time)]),
        (34855, _SHORT, [iso]),
        (36867, _ASCII, time.strftime("%Y:%m:%d %H:%M:%S", time.localtime())),
    ]
    lens_position = _get(metadata, "LensPosition")
    if lens_position is not None:
        dist = 1.0 / lens_position if lens_position > 0.0 else math.inf
        exif_entries.append((37382, _RATIONAL, [_rational(dist)]))
    exif_ifd = _append_ifd(out, exif_entries)

    main_ifd = _append_ifd(out, [
        (254, _LONG, [1]),
        (256, _LONG, [thumb_w]),
        (257, _LONG, [thumb_h]),
        (258, _SHORT, [8, 8, 8]),
        (259, _SHORT, [1]),
        (262, _SHORT, [2]),
        (271, _ASCII, MAKE_STRING),
        (272, _ASCII, cam_model),
        (273, _LONG, [thumb_offset]),
        (274, _SHORT, [1]),
        (277, _SHORT, [3]),
        (278, _LONG, [thumb_h]),
        (279, _LONG, [len(thumbnail)]),
        (284, _SHORT, [1]),
        (305, _ASCII, "libcamera-still"),
        (330, _LONG, [raw_ifd]),
        (34665, _LONG, [exif_ifd]),
        (50706, _BYTE, (1, 1, 0, 0)),
        (50707, _BYTE, (1, 0, 0, 0)),
        (50708, _ASCII, f"{MAKE_STRING} {cam_model}"),
        (50721, _SRATIONAL, [_rational(v, signed=True) for v in cam_xyz.m]),
        (50728, _RATIONAL, [_rational(v) for v in neutral]),
        (50778, _SHORT, [21]),
    ])
    struct.pack_into("<I", out, 4, main_ifd)

    try:
        fp = open(filename, "wb")
    except OSError as err:
        raise RuntimeError(f"could not open file {filename}") from err
    with fp:
        try:
            fp.write(out)
        except OSError as err:
            raise RuntimeError("error writing DNG image data") from err