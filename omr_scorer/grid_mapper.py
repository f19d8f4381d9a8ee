# grid_mapper.py
"""
Functions to lay out the logical question and answer grid as bubble
rectangles. Pure geometry: nothing here reads pixels.
"""
import logging
import math
from dataclasses import dataclass

from . import config
from .config import GridConfig
from .errors import GeometryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bubble:
    """Sampling rectangle for one (question, option) choice."""

    question_number: int
    option: str
    x: int
    y: int
    width: int
    height: int
    is_filled: bool = False
    fill_ratio: float = 0.0

    @property
    def key(self):
        return self.question_number, self.option


def grid_for_image(width, height, rows=config.TOTAL_QUESTIONS, cols=config.CHOICES_PER_QUESTION,
                   option_labels=config.OPTION_LABELS):
    """
    Builds a grid scaled to the image size: margins, spacings and bubble size
    are fixed fractions of the width and height, floored to whole pixels.
    """
    return GridConfig(
        rows=rows,
        cols=cols,
        top_margin=math.floor(height * config.GRID_TOP_MARGIN_RATIO),
        left_margin=math.floor(width * config.GRID_LEFT_MARGIN_RATIO),
        row_spacing=math.floor(height * config.GRID_ROW_SPACING_RATIO),
        col_spacing=math.floor(width * config.GRID_COL_SPACING_RATIO),
        bubble_width=math.floor(width * config.BUBBLE_SIZE_RATIO),
        bubble_height=math.floor(height * config.BUBBLE_SIZE_RATIO),
        option_labels=option_labels,
    )


def map_grid(grid):
    """
    Produces rows x cols bubbles, row-major then column-major.

    Question numbers start at 1; options follow the grid's labels.
    """
    if grid.bubble_width == 0 or grid.bubble_height == 0:
        raise GeometryError(
            f"Bubble size {grid.bubble_width}x{grid.bubble_height} has zero area")

    labels = grid.labels
    bubbles = []
    for row in range(grid.rows):
        y = grid.top_margin + row * grid.row_spacing
        for col in range(grid.cols):
            bubbles.append(Bubble(
                question_number=row + 1,
                option=labels[col],
                x=grid.left_margin + col * grid.col_spacing,
                y=y,
                width=grid.bubble_width,
                height=grid.bubble_height,
            ))

    logger.debug("Mapped %d bubbles (%d questions x %d options)", len(bubbles), grid.rows, grid.cols)
    return bubbles


def clip_to_image(bubble, width, height):
    """
    Returns the in-bounds part of a bubble as (x0, y0, x1, y1), exclusive
    upper bounds, or None when the bubble lies entirely outside the image.
    """
    x0, y0 = max(bubble.x, 0), max(bubble.y, 0)
    x1, y1 = min(bubble.x + bubble.width, width), min(bubble.y + bubble.height, height)
    if x1 <= x0 or y1 <= y0:
        return None
    return x0, y0, x1, y1


def check_bounds(bubbles, width, height):
    """Raises GeometryError when no bubble overlaps a width x height image."""
    inside = sum(1 for b in bubbles if clip_to_image(b, width, height) is not None)
    if inside == 0:
        raise GeometryError(f"No bubble of the grid falls inside the {width}x{height} image")
    if inside < len(bubbles):
        logger.warning("%d of %d bubbles lie entirely outside the %dx%d image",
                       len(bubbles) - inside, len(bubbles), width, height)
    return inside
