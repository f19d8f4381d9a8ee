# template.py
"""
Renders blank answer sheets whose bubbles sit exactly on the grid the
scorer samples, so a printed and scanned sheet can be read back with
``template_grid(config)`` as its GridConfig.
"""
import logging
from dataclasses import dataclass

import cv2
import numpy as np

from . import config
from .config import GridConfig
from .errors import GeometryError, RenderError
from .grid_mapper import map_grid

logger = logging.getLogger(__name__)

PAGE_SIZES_MM = {
    'a4': (210, 297),
    'letter': (216, 279),
}
DEFAULT_DPI = 100

# Sheet layout in millimetres
GRID_START_X = 40
GRID_START_Y = 80
OPTION_SPACING = 15
QUESTION_SPACING = 12
BUBBLE_RADIUS = 3
MARKER_SIZE = 10
MARKER_MARGIN = 10
FOOTER_Y = 270

OUTLINE_COLOR = (170, 170, 170)  # Light enough to binarize to white
INK_COLOR = (0, 0, 0)


@dataclass(frozen=True)
class TemplateConfig:
    question_count: int = config.TOTAL_QUESTIONS
    option_labels: tuple = config.OPTION_LABELS
    title: str = 'Answer Sheet'
    subtitle: str = 'Completely fill the bubble of the correct answer'
    page_size: str = 'a4'
    show_question_numbers: bool = True


def _scale(dpi):
    return dpi / 25.4


def page_size_px(template, dpi=DEFAULT_DPI):
    try:
        width_mm, height_mm = PAGE_SIZES_MM[template.page_size.lower()]
    except KeyError:
        raise ValueError(f"Unknown page size {template.page_size!r}; expected one of {sorted(PAGE_SIZES_MM)}")
    s = _scale(dpi)
    return round(width_mm * s), round(height_mm * s)


def template_grid(template, dpi=DEFAULT_DPI):
    """GridConfig covering the bubbles drawn by ``render_template`` at ``dpi``."""
    s = _scale(dpi)
    first_center_y = GRID_START_Y + QUESTION_SPACING - BUBBLE_RADIUS
    first_center_x = GRID_START_X + 5
    return GridConfig(
        rows=template.question_count,
        cols=len(template.option_labels),
        top_margin=round((first_center_y - BUBBLE_RADIUS) * s),
        left_margin=round((first_center_x - BUBBLE_RADIUS) * s),
        row_spacing=round(QUESTION_SPACING * s),
        col_spacing=round(OPTION_SPACING * s),
        bubble_width=round(2 * BUBBLE_RADIUS * s),
        bubble_height=round(2 * BUBBLE_RADIUS * s),
        option_labels=template.option_labels,
    )


def _put_centered(image, text, center_x, y, scale, thickness=1):
    (w, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
    cv2.putText(image, text, (int(center_x - w / 2), int(y)), cv2.FONT_HERSHEY_SIMPLEX,
                scale, INK_COLOR, thickness, cv2.LINE_AA)


def _draw_alignment_markers(image, s):
    height, width = image.shape[:2]
    size, margin = round(MARKER_SIZE * s), round(MARKER_MARGIN * s)
    for x in (margin, width - margin - size):
        for y in (margin, height - margin - size):
            cv2.rectangle(image, (x, y), (x + size - 1, y + size - 1), INK_COLOR, -1)


def render_template(template, dpi=DEFAULT_DPI):
    """
    Draws a blank sheet as a BGR image: alignment markers, title, subtitle,
    option header, question numbers and one light outline per bubble.
    """
    width, height = page_size_px(template, dpi)
    s = _scale(dpi)
    grid = template_grid(template, dpi)
    bubbles = map_grid(grid)

    last = bubbles[-1]
    if last.y + last.height > round((FOOTER_Y - 5) * s) or last.x + last.width > width:
        raise GeometryError(
            f"{template.question_count} questions x {len(template.option_labels)} options "
            f"do not fit on a {template.page_size} page")

    image = np.full((height, width, 3), 255, dtype=np.uint8)
    _draw_alignment_markers(image, s)

    text_scale = s / 8
    _put_centered(image, template.title, width / 2, 20 * s, text_scale * 1.6, 2)
    _put_centered(image, template.subtitle, width / 2, 30 * s, text_scale)

    cv2.putText(image, 'Name:', (round(20 * s), round(50 * s)), cv2.FONT_HERSHEY_SIMPLEX,
                text_scale, INK_COLOR, 1, cv2.LINE_AA)
    cv2.line(image, (round(40 * s), round(50 * s)), (round(190 * s), round(50 * s)), INK_COLOR, 1)

    header_y = GRID_START_Y * s
    if template.show_question_numbers:
        cv2.putText(image, 'Q', (round((GRID_START_X - 15) * s), round(header_y)),
                    cv2.FONT_HERSHEY_SIMPLEX, text_scale, INK_COLOR, 1, cv2.LINE_AA)

    for b in bubbles:
        cx, cy = b.x + b.width // 2, b.y + b.height // 2
        radius = max(min(b.width, b.height) // 2 - 1, 1)
        cv2.circle(image, (cx, cy), radius, OUTLINE_COLOR, 1)
        if b.question_number == 1:
            _put_centered(image, b.option, cx, header_y, text_scale)
        if template.show_question_numbers and b.option == grid.labels[0]:
            cv2.putText(image, str(b.question_number), (round((GRID_START_X - 15) * s), b.y + b.height),
                        cv2.FONT_HERSHEY_SIMPLEX, text_scale, INK_COLOR, 1, cv2.LINE_AA)

    footer = 'Fill the bubble completely. Do not fold or mark this sheet elsewhere.'
    _put_centered(image, footer, width / 2, FOOTER_Y * s, text_scale * 0.9)

    logger.debug("Rendered %s template with %d bubbles (%dx%d)", template.page_size, len(bubbles), width, height)
    return image


def save_template(template, path, dpi=DEFAULT_DPI):
    """Renders the template and writes it to ``path`` (format from the extension)."""
    image = render_template(template, dpi)
    if not cv2.imwrite(str(path), image):
        raise RenderError(f"Could not write template to {path}")
    logger.info("Saved template to %s", path)
    return path
