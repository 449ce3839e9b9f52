from camkit.formats import PixelFormat, StillOptions, StreamInfo, VideoOptions


def test_yuv420_has_three_planes_with_quarter_chroma():
    info = StreamInfo(width=64, height=48, stride=64, pixel_format=PixelFormat.YUV420)
    sizes = info.plane_sizes()
    assert len(sizes) == 3
    assert sizes[0] == info.stride * info.height
    assert sizes[1] == sizes[2]
    assert 4 * sizes[1] == sizes[0]


def test_packed_format_has_single_plane():
    info = StreamInfo(width=10, height=6, stride=32, pixel_format=PixelFormat.RGB888)
    assert info.plane_sizes() == (info.stride * info.height,)


def test_pixel_format_round_trips_through_value():
    for fmt in PixelFormat:
        assert PixelFormat(fmt.value) is fmt


def test_still_options_exif_lists_are_independent():
    first = StillOptions()
    second = StillOptions()
    first.exif.append("IFD0.Artist=someone")
    assert second.exif == []


def test_video_options_are_mutable_per_instance():
    opts = VideoOptions(output="out.h264", circular=4)
    other = VideoOptions()
    assert opts.circular == 4
    assert other.output == ""