"""Still image writers (BMP, JPEG, DNG), video outputs and a Motion-JPEG encoder for camera capture."""

__version__ = "0.1.0"