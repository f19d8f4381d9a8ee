# image_processing.py
"""
Functions for loading and preprocessing images for OMR.

Images travel through the pipeline as a ``PixelBuffer``: an RGBA ``uint8``
array with the origin at the top-left corner.
"""
import logging
from dataclasses import dataclass

import cv2
import numpy as np

from . import config
from .errors import DecodeError, RenderError

logger = logging.getLogger(__name__)

_MAGIC_NUMBERS = (
    (b'\x89PNG\r\n\x1a\n', 'image/png'),
    (b'\xff\xd8\xff', 'image/jpeg'),
    (b'GIF87a', 'image/gif'),
    (b'GIF89a', 'image/gif'),
    (b'BM', 'image/bmp'),
    (b'II*\x00', 'image/tiff'),
    (b'MM\x00*', 'image/tiff'),
)


@dataclass
class PixelBuffer:
    """Decoded image: ``data`` has shape (height, width, 4), RGBA order."""

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        if self.data.shape != (self.height, self.width, 4) or self.data.dtype != np.uint8:
            raise ValueError(
                f"Pixel data must be uint8 with shape {(self.height, self.width, 4)}, "
                f"got {self.data.dtype} {self.data.shape}")

    @classmethod
    def from_array(cls, data):
        """Wraps an existing (height, width, 4) uint8 array without copying it."""
        height, width = data.shape[:2]
        return cls(width=width, height=height, data=data)

    def copy(self):
        return PixelBuffer(self.width, self.height, self.data.copy())


def sniff_mime_type(data):
    """Guesses the image MIME type from the leading bytes, or returns None."""
    head = bytes(data[:16])
    if head[:4] == b'RIFF' and head[8:12] == b'WEBP':
        return 'image/webp'
    for magic, mime_type in _MAGIC_NUMBERS:
        if head.startswith(magic):
            return mime_type
    return None


def _to_rgba(image):
    """Normalises whatever ``cv2.imdecode`` produced to 8-bit RGBA."""
    if image.dtype == np.uint16:
        image = (image // 257).astype(np.uint8)
    elif image.dtype != np.uint8:
        raise DecodeError(f"Unsupported sample type {image.dtype}")

    if image.ndim == 3 and image.shape[2] == 1:
        image = image[:, :, 0]

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
    if image.shape[2] == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    raise DecodeError(f"Unsupported channel count {image.shape[2]}")


def load_image_bytes(data, mime_type=None):
    """
    Decodes raw image bytes into a PixelBuffer.

    Raises DecodeError when the payload is empty, declared as a non-image
    type, or not something OpenCV can decode.
    """
    if not data:
        raise DecodeError("Image payload is empty")
    if mime_type and not mime_type.lower().startswith('image/'):
        raise DecodeError(f"Declared type {mime_type!r} is not an image")

    raw = np.frombuffer(bytes(data), dtype=np.uint8)
    try:
        image = cv2.imdecode(raw, cv2.IMREAD_UNCHANGED)
    except cv2.error as e:
        raise DecodeError(f"Could not decode image: {e}") from e
    if image is None or image.size == 0:
        raise DecodeError("Bytes are not a decodable raster image")

    rgba = np.ascontiguousarray(_to_rgba(image))
    buffer = PixelBuffer.from_array(rgba)
    logger.debug("Decoded %s image (%dx%d)", mime_type or sniff_mime_type(data) or 'unknown',
                 buffer.width, buffer.height)
    return buffer


def load_image(image_path):
    """Loads an image from the specified path."""
    try:
        with open(image_path, 'rb') as f:
            data = f.read()
    except FileNotFoundError:
        raise FileNotFoundError(f"Could not read image at {image_path}")
    buffer = load_image_bytes(data)
    logger.info("Loaded image: %s (%dx%d)", image_path, buffer.width, buffer.height)
    return buffer


def to_grayscale(buffer):
    """
    Replaces R, G and B with their truncated mean, in place. Alpha is kept.

    Applying it twice gives the same buffer as applying it once.
    """
    rgb = buffer.data[:, :, :3].astype(np.uint16)
    gray = (rgb.sum(axis=2) // 3).astype(np.uint8)
    buffer.data[:, :, :3] = gray[:, :, np.newaxis]
    return buffer


def apply_threshold(buffer, threshold=config.BINARIZE_THRESHOLD):
    """
    Binarizes a grayscale buffer in place: luminance below ``threshold``
    becomes 0, everything else 255. Alpha is set opaque so every channel of
    the result is either 0 or 255.
    """
    value = np.where(buffer.data[:, :, 0] < threshold, 0, 255).astype(np.uint8)
    buffer.data[:, :, :3] = value[:, :, np.newaxis]
    buffer.data[:, :, 3] = 255
    return buffer


def encode_png(buffer):
    """Re-encodes a buffer as PNG bytes."""
    try:
        ok, encoded = cv2.imencode('.png', cv2.cvtColor(buffer.data, cv2.COLOR_RGBA2BGRA))
    except cv2.error as e:
        raise RenderError(f"Could not encode processed image: {e}") from e
    if not ok:
        raise RenderError("PNG encoder returned no data")
    return encoded.tobytes()


def to_bgr(buffer):
    """Returns a new BGR array for drawing and writing with OpenCV."""
    return cv2.cvtColor(buffer.data, cv2.COLOR_RGBA2BGR)


def preprocess_for_omr(buffer, threshold=config.BINARIZE_THRESHOLD):
    """
    Converts a copy of the image to grayscale and then binarizes it.

    The input buffer is left untouched. Returns the binarized buffer and its
    PNG encoding for display.
    """
    binarized = to_grayscale(buffer.copy())
    logger.debug("Converted to grayscale (%dx%d)", binarized.width, binarized.height)

    apply_threshold(binarized, threshold)
    logger.debug("Binarized image with threshold %d", threshold)

    return binarized, encode_png(binarized)
