# /omr_scorer/config.py
"""
Configuration constants and settings objects for the OMR scorer.

The module-level constants are the documented defaults. Pipeline code never
reads them directly: it receives a ``PipelineSettings`` (which carries a
``GridConfig``) built from these values or from CLI flags.
"""
import os
from dataclasses import dataclass, field

import cv2

from .errors import GeometryError

# --- Core Paths ---
# Relative to the working directory unless OMR_SCORER_HOME is set
BASE_DIR = os.path.abspath(os.environ.get('OMR_SCORER_HOME', os.getcwd()))

INPUT_DIR = os.path.join(BASE_DIR, 'omr_input')
OUTPUT_VISUAL_DIR = os.path.join(BASE_DIR, 'graded_output')
CSV_DIR = os.path.join(BASE_DIR, 'csv_data')

MASTER_ANSWERS_PATH = os.path.join(CSV_DIR, 'master_answers.csv')
STUDENT_RESULTS_DIR = os.path.join(CSV_DIR, 'student_results')
SUMMARY_REPORT_NAME = 'student_answers.csv'

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.bmp')


# --- Grid Layout Parameters ---
OPTION_LABELS = ('A', 'B', 'C', 'D')
TOTAL_QUESTIONS = 15
CHOICES_PER_QUESTION = 4
GRID_TOP_MARGIN = 200
GRID_LEFT_MARGIN = 100
GRID_ROW_SPACING = 50
GRID_COL_SPACING = 50
BUBBLE_WIDTH = 30
BUBBLE_HEIGHT = 30

# Fractions of the image size used when no explicit grid is given
GRID_TOP_MARGIN_RATIO = 0.2
GRID_LEFT_MARGIN_RATIO = 0.1
GRID_ROW_SPACING_RATIO = 0.05
GRID_COL_SPACING_RATIO = 0.05
BUBBLE_SIZE_RATIO = 0.03


# --- Preprocessing / Detection Parameters ---
# Luminance below this becomes black when binarizing (0-255)
BINARIZE_THRESHOLD = 150
# Red channel below this counts as a dark pixel inside a bubble
DARK_PIXEL_THRESHOLD = 128
# Share of dark pixels above which a bubble counts as filled
FILL_RATIO_THRESHOLD = 0.30


# --- Batch Limits ---
MAX_FILES = 50
MAX_TOTAL_BYTES = 20 * 1024 * 1024


# --- Visualization Parameters (BGR) ---
VIS_CORRECT_ANSWER_COLOR = (0, 255, 0)   # Green
VIS_WRONG_ANSWER_COLOR = (0, 0, 255)     # Red
VIS_DEFAULT_BUBBLE_COLOR = (255, 0, 0)   # Blue for every sampled bubble
VIS_AMBIGUOUS_COLOR = (0, 165, 255)      # Orange
VIS_TEXT_COLOR = (0, 0, 0)               # Black
VIS_THICKNESS_BUBBLE = 1
VIS_THICKNESS_ANSWER = 3

VIS_INFO_FONT = cv2.FONT_HERSHEY_SIMPLEX
VIS_INFO_FONT_SCALE = 0.6
VIS_INFO_FONT_THICKNESS = 1
VIS_INFO_X = 10
VIS_INFO_Y = 25
VIS_INFO_LINE_HEIGHT = 22


@dataclass(frozen=True)
class GridConfig:
    """Uniform, axis-aligned bubble layout in pixel units."""

    rows: int = TOTAL_QUESTIONS
    cols: int = CHOICES_PER_QUESTION
    top_margin: int = GRID_TOP_MARGIN
    left_margin: int = GRID_LEFT_MARGIN
    row_spacing: int = GRID_ROW_SPACING
    col_spacing: int = GRID_COL_SPACING
    bubble_width: int = BUBBLE_WIDTH
    bubble_height: int = BUBBLE_HEIGHT
    option_labels: tuple = OPTION_LABELS

    def __post_init__(self):
        object.__setattr__(self, 'option_labels', tuple(self.option_labels))
        for name in ('rows', 'cols', 'top_margin', 'left_margin', 'row_spacing',
                     'col_spacing', 'bubble_width', 'bubble_height'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise GeometryError(f"{name} must be a non-negative integer, got {value!r}")
        if self.rows < 1 or self.cols < 1:
            raise GeometryError(f"Grid needs at least one row and one column, got {self.rows}x{self.cols}")
        if self.row_spacing == 0 or self.col_spacing == 0:
            raise GeometryError("Row and column spacing must be greater than zero")
        if len(self.option_labels) < self.cols:
            raise GeometryError(
                f"{self.cols} columns need {self.cols} option labels, got {len(self.option_labels)}")

    @property
    def labels(self):
        """The option labels actually used by the grid's columns."""
        return self.option_labels[:self.cols]


@dataclass(frozen=True)
class PipelineSettings:
    """
    Everything one pipeline run needs besides the image and the answer key.

    ``grid`` left as None means the layout is derived from each image's size
    with ``grid_mapper.grid_for_image``.
    """

    grid: GridConfig = None
    total_questions: int = TOTAL_QUESTIONS
    option_labels: tuple = field(default=OPTION_LABELS)
    binarize_threshold: int = BINARIZE_THRESHOLD
    dark_pixel_threshold: int = DARK_PIXEL_THRESHOLD
    fill_ratio_threshold: float = FILL_RATIO_THRESHOLD
    simulate_on_failure: bool = False
    simulation_seed: int = None

    def __post_init__(self):
        object.__setattr__(self, 'option_labels', tuple(self.option_labels))
        if self.grid is not None:
            # An explicit grid decides the question count and labels
            object.__setattr__(self, 'total_questions', self.grid.rows)
            object.__setattr__(self, 'option_labels', self.grid.labels)
