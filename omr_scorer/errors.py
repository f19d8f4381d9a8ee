# errors.py
"""
Exception types raised by the OMR pipeline.

Every error carries a short ``kind`` string so the orchestrator can report a
failed image without holding on to the exception itself.
"""


class OMRError(Exception):
    """Base class for all pipeline errors."""
    kind = 'OMRError'


class DecodeError(OMRError):
    """Raw bytes are not a decodable raster image."""
    kind = 'DecodeError'


class RenderError(OMRError):
    """The processed buffer could not be re-encoded for display."""
    kind = 'RenderError'


class GeometryError(OMRError):
    """The grid layout is invalid or does not touch the image at all."""
    kind = 'GeometryError'


class MissingKeyEntry(OMRError):
    """The answer key has no entry for a question that must be scored."""
    kind = 'MissingKeyEntry'

    def __init__(self, question_number):
        super().__init__(f"Answer key has no entry for question {question_number}")
        self.question_number = question_number


class EmptyBatch(OMRError):
    """No images were supplied."""
    kind = 'EmptyBatch'


class PipelineCancelled(OMRError):
    """The caller abandoned the pipeline at a stage boundary."""
    kind = 'Cancelled'
