# pipeline.py
"""
Runs the OMR workflow for single images and for batches.

Each image goes through PENDING -> PREPROCESSING -> SAMPLING -> DETECTING
-> SCORING -> DONE, or ends in FAILED. The outcome of every image is one of
``Measured``, ``Simulated`` or ``Failed``; a failed image never yields a
partial result and never stops its siblings.
"""
import enum
import logging
import os
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from . import (
    config,
    image_processing,
    bubble_detector,
    grid_mapper,
    answer_extractor,
    grader,
)
from .answer_extractor import DetectedAnswer
from .errors import EmptyBatch, OMRError, PipelineCancelled

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    PENDING = 'pending'
    PREPROCESSING = 'preprocessing'
    SAMPLING = 'sampling'
    DETECTING = 'detecting'
    SCORING = 'scoring'
    DONE = 'done'
    FAILED = 'failed'


@dataclass(frozen=True)
class ImageSource:
    """One uploaded image: an identifier (usually the file name) and its bytes."""

    identifier: str
    data: bytes
    mime_type: str = None

    @property
    def size(self):
        return len(self.data)

    @classmethod
    def from_path(cls, path, identifier=None):
        with open(path, 'rb') as f:
            data = f.read()
        return cls(identifier or os.path.basename(path), data, image_processing.sniff_mime_type(data))


@dataclass
class ProcessedResult:
    source_image_id: str
    original_image: bytes
    processed_image: bytes
    answers: list
    score: grader.Score
    bubbles: list = field(default_factory=list, repr=False)


@dataclass
class Measured:
    """Result read from the image itself."""

    result: ProcessedResult
    simulated = False

    @property
    def source_image_id(self):
        return self.result.source_image_id


@dataclass
class Simulated:
    """Placeholder result with random marks, returned when detection failed."""

    result: ProcessedResult
    reason: str
    simulated = True

    @property
    def source_image_id(self):
        return self.result.source_image_id


@dataclass
class Failed:
    source_image_id: str
    error_kind: str
    message: str
    stage: Stage = Stage.FAILED

    def describe(self):
        return f"Error processing image {self.source_image_id}: {self.error_kind}: {self.message}"


@dataclass
class BatchReport:
    outcomes: list

    @property
    def succeeded(self):
        return [o for o in self.outcomes if not isinstance(o, Failed)]

    @property
    def measured(self):
        return [o for o in self.outcomes if isinstance(o, Measured)]

    @property
    def simulated(self):
        return [o for o in self.outcomes if isinstance(o, Simulated)]

    @property
    def failures(self):
        return [o for o in self.outcomes if isinstance(o, Failed)]

    def summary_message(self):
        count = len(self.succeeded)
        noun = 'image was' if count == 1 else 'images were'
        message = f"{count} {noun} processed successfully"
        if self.simulated:
            message += f" ({len(self.simulated)} simulated)"
        return message

    def failure_messages(self):
        return [f.describe() for f in self.failures]


def select_batch(sources, max_files=config.MAX_FILES, max_total_bytes=config.MAX_TOTAL_BYTES):
    """
    Applies the upload limits: non-images are dropped, only the first
    ``max_files`` are kept, and files that would push the running total past
    ``max_total_bytes`` are skipped.
    """
    sources = list(sources)
    if not sources:
        raise EmptyBatch("No images were supplied")

    if len(sources) > max_files:
        logger.warning("Only %d images can be processed at once; ignoring %d",
                       max_files, len(sources) - max_files)
        sources = sources[:max_files]

    selected = []
    total = 0
    for source in sources:
        mime_type = source.mime_type or image_processing.sniff_mime_type(source.data)
        if mime_type is not None and not mime_type.lower().startswith('image/'):
            logger.warning("Skipping %s: %s is not an image type", source.identifier, mime_type)
            continue
        if total + source.size > max_total_bytes:
            logger.warning("Skipping %s: total upload size would exceed %d bytes",
                           source.identifier, max_total_bytes)
            continue
        total += source.size
        selected.append(source)

    if not selected:
        raise EmptyBatch("No image passed the batch limits")
    return selected


class _StageTracker:
    """Reports stage transitions and honours cancellation between stages."""

    def __init__(self, image_id, on_stage=None, cancel_event=None):
        self.image_id = image_id
        self.on_stage = on_stage
        self.cancel_event = cancel_event
        self.stage = Stage.PENDING

    def enter(self, stage):
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise PipelineCancelled(f"Cancelled before {stage.value}")
        self.notify(stage)

    def notify(self, stage):
        self.stage = stage
        logger.debug("%s: %s", self.image_id, stage.value)
        if self.on_stage is None:
            return
        try:
            self.on_stage(self.image_id, stage)
        except Exception:
            logger.exception("Stage callback failed for %s at %s", self.image_id, stage.value)


def _resolve_answer_key(answer_key, settings):
    if answer_key is not None:
        return answer_key
    return grader.default_answer_key(settings.total_questions, settings.option_labels)


def _detect(source, settings, tracker):
    """
    Runs loading through answer extraction for one image.

    Returns the detected bubbles, the detected answers and the processed PNG.
    Exceptions propagate to the caller.
    """
    tracker.enter(Stage.PREPROCESSING)
    original = image_processing.load_image_bytes(source.data, source.mime_type)
    binarized, processed_png = image_processing.preprocess_for_omr(original, settings.binarize_threshold)

    tracker.enter(Stage.SAMPLING)
    grid = settings.grid or grid_mapper.grid_for_image(
        original.width, original.height, settings.total_questions,
        len(settings.option_labels), settings.option_labels)
    bubbles = grid_mapper.map_grid(grid)
    grid_mapper.check_bounds(bubbles, binarized.width, binarized.height)

    tracker.enter(Stage.DETECTING)
    bubbles = bubble_detector.detect_filled_bubbles(
        binarized, bubbles, settings.dark_pixel_threshold, settings.fill_ratio_threshold)
    detected = answer_extractor.extract_answers(bubbles, grid.rows)
    return bubbles, detected, processed_png


def simulate_result(source, settings, answer_key, rng=None):
    """
    Builds a well-formed placeholder result with a random mark per question,
    scored against the real key. It carries no processed image.
    """
    rng = rng or random.Random(settings.simulation_seed)
    detected = [DetectedAnswer.single(q, rng.choice(settings.option_labels))
                for q in range(1, settings.total_questions + 1)]
    answers, score = grader.grade_answers(detected, answer_key, settings.total_questions)
    return ProcessedResult(
        source_image_id=source.identifier,
        original_image=source.data,
        processed_image=None,
        answers=answers,
        score=score,
    )


def process_image(source, settings=None, answer_key=None, on_stage=None, cancel_event=None):
    """
    Executes the full OMR workflow for a single image.

    Returns Measured on success, Simulated when detection failed and
    ``settings.simulate_on_failure`` is set, Failed otherwise.
    """
    settings = settings or config.PipelineSettings()
    answer_key = _resolve_answer_key(answer_key, settings)
    tracker = _StageTracker(source.identifier, on_stage, cancel_event)
    tracker.notify(Stage.PENDING)

    try:
        try:
            bubbles, detected, processed_png = _detect(source, settings, tracker)
        except PipelineCancelled:
            raise
        except Exception as e:
            if not settings.simulate_on_failure:
                raise
            kind = getattr(e, 'kind', type(e).__name__)
            logger.warning("Detection failed for %s (%s: %s); returning simulated result",
                           source.identifier, kind, e)
            tracker.enter(Stage.SCORING)
            simulated = simulate_result(source, settings, answer_key)
            tracker.notify(Stage.DONE)
            return Simulated(simulated, reason=f"{kind}: {e}")

        tracker.enter(Stage.SCORING)
        answers, score = grader.grade_answers(detected, answer_key, len(detected))
    except OMRError as e:
        logger.error("Failed to process %s during %s: %s", source.identifier, tracker.stage.value, e)
        failed = Failed(source.identifier, e.kind, str(e), stage=tracker.stage)
        tracker.notify(Stage.FAILED)
        return failed
    except Exception as e:
        logger.exception("An unexpected error occurred while processing %s", source.identifier)
        failed = Failed(source.identifier, 'UnexpectedError', str(e), stage=tracker.stage)
        tracker.notify(Stage.FAILED)
        return failed

    result = ProcessedResult(
        source_image_id=source.identifier,
        original_image=source.data,
        processed_image=processed_png,
        answers=answers,
        score=score,
        bubbles=bubbles,
    )
    tracker.notify(Stage.DONE)
    return Measured(result)


def process_batch(sources, settings=None, answer_key=None, max_workers=1, on_stage=None,
                  cancel_event=None):
    """
    Processes every image independently and returns a BatchReport with one
    outcome per image, in input order. ``max_workers`` above 1 runs images on
    a thread pool.
    """
    sources = list(sources)
    if not sources:
        raise EmptyBatch("No images were supplied")
    settings = settings or config.PipelineSettings()
    answer_key = _resolve_answer_key(answer_key, settings)

    logger.info("Processing %d image(s) with %d worker(s)", len(sources), max_workers)

    def run(source):
        return process_image(source, settings, answer_key, on_stage, cancel_event)

    if max_workers > 1 and len(sources) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            outcomes = list(executor.map(run, sources))
    else:
        outcomes = [run(source) for source in sources]

    report = BatchReport(outcomes)
    logger.info(report.summary_message())
    for message in report.failure_messages():
        logger.error(message)
    return report
