"""Optical mark recognition for scanned multiple-choice answer sheets."""
from .config import GridConfig, PipelineSettings
from .errors import (
    OMRError,
    DecodeError,
    RenderError,
    GeometryError,
    MissingKeyEntry,
    EmptyBatch,
    PipelineCancelled,
)
from .pipeline import (
    ImageSource,
    Measured,
    Simulated,
    Failed,
    BatchReport,
    Stage,
    process_image,
    process_batch,
    select_batch,
)

__version__ = '0.1.0'
