import cv2
import numpy as np
import pytest

from omr_scorer.image_processing import PixelBuffer


def make_buffer(width, height, value=255):
    """Opaque buffer with every R, G and B sample set to ``value``."""
    data = np.full((height, width, 4), value, dtype=np.uint8)
    data[:, :, 3] = 255
    return PixelBuffer.from_array(data)


def fill_rect(buffer, x, y, width, height, value=0):
    buffer.data[y:y + height, x:x + width, :3] = value
    return buffer


def encode(bgr, ext='.png'):
    ok, encoded = cv2.imencode(ext, bgr)
    assert ok
    return encoded.tobytes()


@pytest.fixture
def white_sheet():
    """White 400x1000 BGR sheet, big enough for the default 15x4 grid."""
    return np.full((1000, 400, 3), 255, dtype=np.uint8)
