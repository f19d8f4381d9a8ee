# bubble_detector.py
"""
Functions to decide which bubbles of a binarized image are filled.
"""
import logging
from dataclasses import replace

import numpy as np

from . import config
from .grid_mapper import clip_to_image

logger = logging.getLogger(__name__)


def dark_ratio(buffer, bubble, pixel_threshold=config.DARK_PIXEL_THRESHOLD):
    """
    Share of in-bounds pixels inside the bubble whose red channel is below
    ``pixel_threshold``. A bubble entirely outside the image scores 0.
    """
    region = clip_to_image(bubble, buffer.width, buffer.height)
    if region is None:
        return 0.0
    x0, y0, x1, y1 = region
    red = buffer.data[y0:y1, x0:x1, 0]
    return float(np.count_nonzero(red < pixel_threshold)) / red.size


def detect_filled_bubbles(buffer, bubbles, pixel_threshold=config.DARK_PIXEL_THRESHOLD,
                          fill_ratio=config.FILL_RATIO_THRESHOLD):
    """
    Returns new bubbles with ``fill_ratio`` and ``is_filled`` set.

    A bubble is filled when its dark ratio is strictly greater than
    ``fill_ratio``.
    """
    detected = []
    for b in bubbles:
        ratio = dark_ratio(buffer, b, pixel_threshold)
        detected.append(replace(b, fill_ratio=ratio, is_filled=ratio > fill_ratio))

    filled = sum(1 for b in detected if b.is_filled)
    logger.debug("%d of %d bubbles filled (fill ratio > %.2f)", filled, len(detected), fill_ratio)
    return detected
