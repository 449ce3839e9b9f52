# camkit

Building blocks for a camera capture pipeline: writers for still images,
destinations for encoded video, and a Motion-JPEG encoder that runs on worker
threads.

## Installation

```
pip install camkit
```

Pillow is the only runtime dependency; it is used for JPEG compression.

## Describing frames

`camkit.formats` holds the shared types:

- `PixelFormat` – YUV420, YUYV, RGB888, BGR888 and the packed 10/12-bit and
  16-bit Bayer layouts.
- `StreamInfo(width, height, stride, pixel_format, colour_space=None)` – the
  geometry of one frame; `plane_sizes()` gives the byte size of each plane
  (three for YUV420, one otherwise).
- `StillOptions` – `quality`, `restart`, `thumb_width`, `thumb_height`,
  `thumb_quality`, `exif` (extra tags) and `output`.
- `VideoOptions` – `output`, `quality`, `circular`, `segment`, `split`,
  `wrap`, `flush`, `pause`, `save_pts`, `metadata`, `metadata_format` and
  further encoding settings.

## Still images

Each writer takes a list of memory planes (bytes-like objects), a
`StreamInfo`, a file name and options.

- `camkit.bmp.bmp_save(mem, info, filename, options)` writes a top-down 24-bit
  BMP from an RGB888 frame, padding rows to four bytes. A file name of `-`
  writes to standard output.
- `camkit.jpeg.jpeg_save(mem, info, metadata, filename, cam_model, options)`
  writes a JPEG from a single-plane YUV420 or YUYV frame with even width and
  height. The file starts with an EXIF block holding make, model, software and
  date tags, plus exposure time, ISO and subject distance when `metadata` has
  `ExposureTime`, `AnalogueGain` (and `DigitalGain`) or `LensPosition`. If
  `thumb_quality` is non-zero a thumbnail is embedded, its quality lowered in
  steps of 5 until it is under 60000 bytes. A file name of `-` writes to
  standard output.
- `camkit.jpeg.yuv_to_jpeg(data, info, output_width, output_height, quality,
  restart)` returns JPEG bytes for a YUV420 or YUYV frame, resampled to the
  given size.
- `camkit.dng.dng_save(mem, info, metadata, filename, cam_model, options)`
  unpacks 10, 12 or 16-bit Bayer data and writes a DNG with a small greyscale
  thumbnail, colour matrix, as-shot neutral, black levels, white level and EXIF
  exposure data. It reads `SensorBlackLevels`, `ExposureTime`, `AnalogueGain`,
  `ColourGains`, `ColourCorrectionMatrix` and `LensPosition` from `metadata`
  and falls back to defaults when they are missing. The unpacking functions
  `unpack_10bit`, `unpack_12bit` and `unpack_16bit`, and the 3x3 `Matrix`
  class, are available on their own.

```python
from camkit.formats import PixelFormat, StreamInfo, StillOptions
from camkit.bmp import bmp_save

info = StreamInfo(width=4, height=2, stride=12, pixel_format=PixelFormat.RGB888)
bmp_save([bytes(24)], info, "frame.bmp", StillOptions())
```

### Extra EXIF tags

Entries in `StillOptions.exif` have the form `IFD.TagName=value[,value...]`,
where the IFD is one of `EXIF`, `IFD0`, `IFD1`, `EINT` or `GPS`:

```python
options = StillOptions(exif=["IFD0.Artist=Someone", "EXIF.FocalLength=35/10"])
```

`camkit.exif.read_tag(exif, text)` parses one such entry into an `ExifData`;
`ExifData.save()` serialises it as an `Exif\0\0` payload. Unknown tag names are
logged and ignored; a bad IFD name or too few values raises `RuntimeError`.

## Video outputs

Outputs are context managers fed with `output_ready(mem, timestamp_us,
keyframe)`. After starting, and after being resumed with `signal()` (which
toggles pausing; `VideoOptions.pause` starts paused), they wait for a keyframe,
and they keep timestamps continuous across pauses.

- `camkit.output.Output` drops the frames but still handles timestamps and
  metadata.
- `camkit.file_output.FileOutput` writes to `options.output` (`-` is standard
  output). The name may contain a `%d`-style field filled with a file counter,
  which wraps at `wrap` if set. A new file starts at the first keyframe after
  `segment` milliseconds, or on each restart when `split` is set.
- `camkit.circular_output.CircularOutput` keeps the last `circular` megabytes
  of frames in a `camkit.circular_buffer.CircularBuffer` and writes them to
  `options.output` on `close()`, starting at the first keyframe.

With `save_pts` set, a timecode file (`# timecode format v2`) gets one
millisecond timestamp per frame. With `metadata` set to a file name (or `-` for
standard output), each frame's metadata, passed earlier to
`metadata_ready(mapping)`, is written in `json` or `txt` form according to
`metadata_format`.

```python
from camkit.file_output import FileOutput
from camkit.formats import VideoOptions

with FileOutput(VideoOptions(output="clip-%03d.mjpeg", segment=5000)) as output:
    output.output_ready(encoded_bytes, timestamp_us, True)
```

## Encoding

`camkit.mjpeg_encoder.MjpegEncoder(options)` compresses each frame to JPEG at
`options.quality` on four worker threads and delivers results in input order.
Set `input_done_callback` (called with no arguments) and
`output_ready_callback(mem, timestamp_us, keyframe)` before queuing frames with
`encode_buffer(mem, info, timestamp_us)`. `close()` waits for queued frames to
be delivered and re-raises the first error a worker met.

```python
from camkit.file_output import FileOutput
from camkit.mjpeg_encoder import MjpegEncoder

with FileOutput(options) as output, MjpegEncoder(options) as encoder:
    encoder.input_done_callback = lambda: None
    encoder.output_ready_callback = output.output_ready
    encoder.encode_buffer(frame_bytes, info, timestamp_us)
```

## What this package does not do

- No PNG or raw YUV/RGB still writers; still images can be saved as BMP, JPEG
  or DNG only.
- No network output; video goes to files, standard output or memory.
- No helper that picks an output or an encoder from the options: construct
  `Output`, `FileOutput`, `CircularOutput` or `MjpegEncoder` yourself.
- No H.264 or pass-through encoder; Motion-JPEG is the only codec.
- No camera access and no command-line program.