"""Pixel formats, stream descriptions and the option sets used by outputs and encoders."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class PixelFormat(Enum):
    """Pixel layouts a camera stream can deliver."""

    YUV420 = "YUV420"
    YUYV = "YUYV"
    RGB888 = "RGB888"
    BGR888 = "BGR888"
    SRGGB10_CSI2P = "SRGGB10_CSI2P"
    SGRBG10_CSI2P = "SGRBG10_CSI2P"
    SBGGR10_CSI2P = "SBGGR10_CSI2P"
    SGBRG10_CSI2P = "SGBRG10_CSI2P"
    R10_CSI2P = "R10_CSI2P"
    SRGGB12_CSI2P = "SRGGB12_CSI2P"
    SGRBG12_CSI2P = "SGRBG12_CSI2P"
    SBGGR12_CSI2P = "SBGGR12_CSI2P"
    SGBRG12_CSI2P = "SGBRG12_CSI2P"
    SRGGB16 = "SRGGB16"
    SGRBG16 = "SGRBG16"
    SBGGR16 = "SBGGR16"
    SGBRG16 = "SGBRG16"


@dataclass(frozen=True)
class StreamInfo:
    """Geometry and format of one image in a stream."""

    width: int
    height: int
    stride: int
    pixel_format: PixelFormat
    colour_space: str | None = None

    def plane_sizes(self) -> tuple[int, ...]:
        """Byte sizes of the planes making up one image."""
        luma = self.stride * self.height
        if self.pixel_format is PixelFormat.YUV420:
            chroma = (self.stride // 2) * (self.height // 2)
            return (luma, chroma, chroma)
        return (luma,)


@dataclass
class VideoOptions:
    """Settings that control video encoding and where its output goes."""

    output: str = ""
    codec: str = "h264"
    width: int = 0
    height: int = 0
    framerate: float | None = None
    bitrate: int = 0
    profile: str = ""
    level: str = ""
    intra: int = 0
    inline_headers: bool = False
    quality: int = 50
    circular: int = 0
    segment: int = 0
    split: bool = False
    wrap: int = 0
    flush: bool = False
    listen: bool = False
    pause: bool = False
    save_pts: str = ""
    metadata: str = ""
    metadata_format: str = "json"
    verbose: int = 1


@dataclass
class StillOptions:
    """Settings that control how still images are saved."""

    output: str = ""
    encoding: str = "jpg"
    quality: int = 93
    restart: int = 0
    thumb_width: int = 320
    thumb_height: int = 240
    thumb_quality: int = 70
    exif: list[str] = field(default_factory=list)
    verbose: int = 1