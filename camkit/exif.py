"""A small EXIF block builder: tags, IFDs and the "TAG=value" parser."""

from __future__ import annotations

import logging
import re
import struct
from dataclasses import dataclass, field
from enum import IntEnum

log = logging.getLogger(__name__)

BYTE_ORDER = "<"


class ExifFormat(IntEnum):
    """EXIF value types, numbered as in the TIFF specification."""

    UNKNOWN = 0
    BYTE = 1
    ASCII = 2
    SHORT = 3
    LONG = 4
    RATIONAL = 5
    SBYTE = 6
    UNDEFINED = 7
    SSHORT = 8
    SLONG = 9
    SRATIONAL = 10

    @property
    def size(self) -> int:
        return _FORMAT_SIZES[self]


_FORMAT_SIZES = {
    ExifFormat.UNKNOWN: 0, ExifFormat.BYTE: 1, ExifFormat.ASCII: 1, ExifFormat.SHORT: 2,
    ExifFormat.LONG: 4, ExifFormat.RATIONAL: 8, ExifFormat.SBYTE: 1, ExifFormat.UNDEFINED: 1,
    ExifFormat.SSHORT: 2, ExifFormat.SLONG: 4, ExifFormat.SRATIONAL: 8,
}


class ExifIfd(IntEnum):
    """The image file directories an EXIF block can hold."""

    IFD0 = 0
    IFD1 = 1
    EXIF = 2
    GPS = 3
    INTEROPERABILITY = 4


_IFD_NAMES = {
    "EXIF": ExifIfd.EXIF,
    "IFD0": ExifIfd.IFD0,
    "IFD1": ExifIfd.IFD1,
    "EINT": ExifIfd.INTEROPERABILITY,
    "GPS": ExifIfd.GPS,
}

# name: (tag, format, components); 0 components means variable.
_TAGS = {
    "InteroperabilityIndex": (0x0001, ExifFormat.ASCII, 0),
    "ImageWidth": (0x0100, ExifFormat.LONG, 1),
    "ImageLength": (0x0101, ExifFormat.LONG, 1),
    "Compression": (0x0103, ExifFormat.SHORT, 1),
    "ImageDescription": (0x010E, ExifFormat.ASCII, 0),
    "Make": (0x010F, ExifFormat.ASCII, 0),
    "Model": (0x0110, ExifFormat.ASCII, 0),
    "Orientation": (0x0112, ExifFormat.SHORT, 1),
    "XResolution": (0x011A, ExifFormat.RATIONAL, 1),
    "YResolution": (0x011B, ExifFormat.RATIONAL, 1),
    "ResolutionUnit": (0x0128, ExifFormat.SHORT, 1),
    "Software": (0x0131, ExifFormat.ASCII, 0),
    "DateTime": (0x0132, ExifFormat.ASCII, 0),
    "Artist": (0x013B, ExifFormat.ASCII, 0),
    "JPEGInterchangeFormat": (0x0201, ExifFormat.LONG, 1),
    "JPEGInterchangeFormatLength": (0x0202, ExifFormat.LONG, 1),
    "YCbCrCoefficients": (0x0211, ExifFormat.UNDEFINED, 0),
    "Copyright": (0x8298, ExifFormat.ASCII, 0),
    "ExposureTime": (0x829A, ExifFormat.RATIONAL, 1),
    "FNumber": (0x829D, ExifFormat.RATIONAL, 1),
    "ExposureProgram": (0x8822, ExifFormat.SHORT, 1),
    "ISOSpeedRatings": (0x8827, ExifFormat.SHORT, 1),
    "DateTimeOriginal": (0x9003, ExifFormat.ASCII, 0),
    "DateTimeDigitized": (0x9004, ExifFormat.ASCII, 0),
    "BrightnessValue": (0x9203, ExifFormat.SRATIONAL, 1),
    "ExposureBiasValue": (0x9204, ExifFormat.SRATIONAL, 1),
    "SubjectDistance": (0x9206, ExifFormat.RATIONAL, 1),
    "Flash": (0x9209, ExifFormat.SHORT, 1),
    "FocalLength": (0x920A, ExifFormat.RATIONAL, 1),
    "SubjectArea": (0x9214, ExifFormat.SHORT, 0),
    "MakerNote": (0x927C, ExifFormat.UNDEFINED, 0),
    "UserComment": (0x9286, ExifFormat.UNDEFINED, 0),
    "WhiteBalance": (0xA403, ExifFormat.SHORT, 1),
}

_GPS_TAGS = {
    "GPSVersionID": (0x0000, ExifFormat.BYTE, 4),
    "GPSLatitudeRef": (0x0001, ExifFormat.ASCII, 2),
    "GPSLatitude": (0x0002, ExifFormat.RATIONAL, 3),
    "GPSLongitudeRef": (0x0003, ExifFormat.ASCII, 2),
    "GPSLongitude": (0x0004, ExifFormat.RATIONAL, 3),
    "GPSAltitudeRef": (0x0005, ExifFormat.BYTE, 1),
    "GPSAltitude": (0x0006, ExifFormat.RATIONAL, 1),
}

_BY_TAG = {tag: (fmt, n) for tag, fmt, n in _TAGS.values()}
_GPS_BY_TAG = {tag: (fmt, n) for tag, fmt, n in _GPS_TAGS.values()}

# Tags whose format is not known from the table.
_EXCEPTIONS = {0x0211: (ExifFormat.RATIONAL, 3)}

_EXIF_POINTER = 0x8769
_GPS_POINTER = 0x8825
_INTEROP_POINTER = 0xA005


def tag_from_name(name: str) -> int:
    """Tag number for a tag name, or 0 if the name is unknown."""
    for table in (_TAGS, _GPS_TAGS):
        if name in table:
            return table[name][0]
    return 0


@dataclass
class ExifEntry:
    """One tag with its format, component count and raw little-endian data."""

    tag: int
    format: ExifFormat = ExifFormat.UNKNOWN
    components: int = 0
    data: bytearray = field(default_factory=bytearray)

    @property
    def size(self) -> int:
        return len(self.data)


class ExifData:
    """The entries of every IFD, serialised as an APP1 "Exif" payload."""

    def __init__(self) -> None:
        self._ifds: dict[ExifIfd, dict[int, ExifEntry]] = {ifd: {} for ifd in ExifIfd}

    def __contains__(self, key: tuple[ExifIfd, int]) -> bool:
        ifd, tag = key
        return tag in self._ifds[ifd]

    def entry(self, ifd: ExifIfd, tag: int) -> ExifEntry:
        """Return the entry for ``tag`` in ``ifd``, creating it with default format if absent."""
        entries = self._ifds[ifd]
        if tag in entries:
            return entries[tag]
        table = _GPS_BY_TAG if ifd is ExifIfd.GPS else _BY_TAG
        fmt, components = table.get(tag, (ExifFormat.UNKNOWN, 0))
        entry = ExifEntry(tag, fmt, components, bytearray(components * fmt.size))
        entries[tag] = entry
        return entry

    def save(self) -> bytes:
        """Serialise to "Exif\\0\\0" followed by a little-endian TIFF structure."""
        ifds = {ifd: dict(entries) for ifd, entries in self._ifds.items()}
        if ifds[ExifIfd.INTEROPERABILITY]:
            ifds[ExifIfd.EXIF][_INTEROP_POINTER] = None
        if ifds[ExifIfd.EXIF]:
            ifds[ExifIfd.IFD0][_EXIF_POINTER] = None
        if ifds[ExifIfd.GPS]:
            ifds[ExifIfd.IFD0][_GPS_POINTER] = None

        order = [ExifIfd.IFD0, ExifIfd.EXIF, ExifIfd.GPS, ExifIfd.INTEROPERABILITY, ExifIfd.IFD1]
        present = [ifd for ifd in order if ifd is ExifIfd.IFD0 or ifds[ifd]]
        offsets = {}
        position = 8
        for ifd in present:
            offsets[ifd] = position
            position += self._ifd_size(ifds[ifd])

        pointers = {
            _EXIF_POINTER: offsets.get(ExifIfd.EXIF, 0),
            _GPS_POINTER: offsets.get(ExifIfd.GPS, 0),
            _INTEROP_POINTER: offsets.get(ExifIfd.INTEROPERABILITY, 0),
        }
        tiff = bytearray(b"II*\0" + struct.pack("<I", 8))
        for ifd in present:
            next_offset = offsets[ExifIfd.IFD1] if ifd is ExifIfd.IFD0 and ExifIfd.IFD1 in offsets else 0
            tiff += self._serialise(ifds[ifd], offsets[ifd], next_offset, pointers)
        return b"Exif\0\0" + bytes(tiff)

    @staticmethod
    def _ifd_size(entries: dict) -> int:
        size = 2 + 12 * len(entries) + 4
        for entry in entries.values():
            if entry is not None and len(entry.data) > 4:
                size += len(entry.data) + (len(entry.data) & 1)
        return size

    @staticmethod
    def _serialise(entries: dict, offset: int, next_offset: int, pointers: dict) -> bytes:
        table = bytearray(struct.pack("<H", len(entries)))
        extra = bytearray()
        extra_base = offset + 2 + 12 * len(entries) + 4
        for tag in sorted(entries):
            entry = entries[tag]
            if entry is None:
                table += struct.pack("<HHII", tag, ExifFormat.LONG, 1, pointers[tag])
                continue
            data = bytes(entry.data)
            count = len(data) if entry.format is ExifFormat.ASCII else entry.components
            if len(data) <= 4:
                value = data.ljust(4, b"\0")
            else:
                value = struct.pack("<I", extra_base + len(extra))
                extra += data
                if len(data) & 1:
                    extra.append(0)
            table += struct.pack("<HHI", tag, int(entry.format), count) + value
        table += struct.pack("<I", next_offset)
        return bytes(table + extra)


_HEADER = re.compile(r"([^.]{1,4})\.([^=]{1,127})=")
_INT = re.compile(r"\s*([+-]?\d+)")
_RATIO = re.compile(r"\s*([+-]?\d+)/\s*([+-]?\d+)")

_READERS = {
    ExifFormat.SHORT: (_INT, "H", 0xFFFF, "failed to read EXIF unsigned short"),
    ExifFormat.SSHORT: (_INT, "h", 0xFFFF, "failed to read EXIF signed short"),
    ExifFormat.LONG: (_INT, "I", 0xFFFFFFFF, "failed to read EXIF unsigned short"),
    ExifFormat.SLONG: (_INT, "i", 0xFFFFFFFF, "failed to read EXIF signed short"),
    ExifFormat.RATIONAL: (_RATIO, "I", 0xFFFFFFFF, "failed to read EXIF unsigned rational"),
    ExifFormat.SRATIONAL: (_RATIO, "i", 0xFFFFFFFF, "failed to read EXIF signed rational"),
}


def _wrap(value: int, mask: int, signed: bool) -> int:
    value &= mask
    if signed and value > mask >> 1:
        value -= mask + 1
    return value


def _read_value(fmt: ExifFormat, text: str) -> tuple[bytes, int]:
    reader = _READERS.get(fmt)
    if reader is None:
        raise RuntimeError(f"cannot read EXIF values of format {fmt.name}")
    pattern, code, mask, message = reader
    match = pattern.match(text)
    if match is None:
        raise RuntimeError(message)
    signed = code.islower()
    values = [_wrap(int(group), mask, signed) for group in match.groups()]
    return struct.pack(BYTE_ORDER + code * len(values), *values), match.end()


def read_tag(exif: ExifData, text: str) -> None:
    """Add a tag given as "IFD.TagName=value[,value...]" to ``exif``."""
    header = _HEADER.match(text)
    if header is None:
        raise RuntimeError("failed to read EXIF IFD and tag")
    ifd_name, tag_name = header.groups()
    if ifd_name not in _IFD_NAMES:
        raise RuntimeError(f"bad IFD name {ifd_name}")
    ifd = _IFD_NAMES[ifd_name]
    tag = tag_from_name(tag_name)
    if tag == 0 and tag_name not in _GPS_TAGS:
        log.warning("WARNING: no EXIF tag %s found - ignoring", tag_name)
        return

    entry = exif.entry(ifd, tag)
    if entry.format is ExifFormat.UNKNOWN:
        log.warning("WARNING: format for EXIF tag %s unknown - ignoring", tag_name)
        return
    if entry.format is ExifFormat.UNDEFINED:
        if tag in _EXCEPTIONS:
            entry.format, entry.components = _EXCEPTIONS[tag]
        else:
            log.warning("WARNING: libexif format for tag %s undefined - treating as ASCII", tag_name)
            entry.format = ExifFormat.ASCII

    consumed = header.end()
    if entry.format is ExifFormat.ASCII:
        value = text[consumed:].encode("utf-8")
        entry.data = bytearray(value)
        entry.components = len(value)
        return

    item_size = entry.format.size
    if entry.size == 0 or entry.components == 0:
        if entry.components == 0:
            entry.components = text[consumed:].count(",") + 1
        entry.data = bytearray(entry.components * item_size)
    for i in range(entry.components):
        if consumed >= len(text):
            raise RuntimeError(f"too few parameters for EXIF tag {tag_name}")
        raw, used = _read_value(entry.format, text[consumed:])
        entry.data[i * item_size:(i + 1) * item_size] = raw
        consumed += used + 1  # allow a comma