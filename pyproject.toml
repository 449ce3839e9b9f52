[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "camkit"
version = "0.1.0"
description = "Still image writers, video outputs and a Motion-JPEG encoder for camera capture pipelines"
requires-python = ">=3.10"
dependencies = [
    "pillow",
]
keywords = ["camera", "capture", "jpeg", "exif", "dng", "bmp", "mjpeg", "video"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Capture :: Digital Camera",
    "Topic :: Multimedia :: Video",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["camkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
