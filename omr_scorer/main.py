# /omr_scorer/main.py
"""
Main script to run the OMR scorer in batch mode.

``grade`` finds all images in the input directory, processes each one, and
saves the graded image and results CSV in the output directories.
``template`` writes a blank answer sheet that the grader can read back.
"""
import argparse
import glob
import logging
import os
import sys

import cv2

from . import (
    config,
    image_processing,
    grader,
    pipeline,
    reporting,
    template,
)
from .errors import DecodeError, EmptyBatch, GeometryError, OMRError

logger = logging.getLogger(__name__)

_GRID_FLAGS = ('top_margin', 'left_margin', 'row_spacing', 'col_spacing', 'bubble_width', 'bubble_height')


def setup_directories(*paths):
    """Create output directories if they don't exist."""
    for path in paths:
        os.makedirs(path, exist_ok=True)
    logger.debug("Output directories verified.")


def find_images(input_dir):
    image_files = []
    for ext in config.IMAGE_EXTENSIONS:
        image_files += glob.glob(os.path.join(input_dir, '*' + ext))
        image_files += glob.glob(os.path.join(input_dir, '*' + ext.upper()))
    return sorted(set(image_files))


def build_settings(args):
    """Maps CLI flags onto PipelineSettings; any geometry flag switches to a fixed grid."""
    if args.options is None:
        labels = tuple(chr(ord('A') + i) for i in range(args.cols))
    else:
        labels = tuple(args.options)
    grid = None
    if any(getattr(args, name) is not None for name in _GRID_FLAGS):
        overrides = {name: getattr(args, name) for name in _GRID_FLAGS if getattr(args, name) is not None}
        grid = config.GridConfig(rows=args.rows, cols=len(labels), option_labels=labels, **overrides)
    return config.PipelineSettings(
        grid=grid,
        total_questions=args.rows,
        option_labels=labels,
        binarize_threshold=args.binarize_threshold,
        dark_pixel_threshold=args.dark_threshold,
        fill_ratio_threshold=args.fill_ratio,
        simulate_on_failure=args.simulate_on_failure,
        simulation_seed=args.seed,
    )


def load_answer_key(path, settings):
    if path is None and os.path.exists(config.MASTER_ANSWERS_PATH):
        path = config.MASTER_ANSWERS_PATH
    if path is None:
        logger.warning("No answer key given; using the built-in demo key.")
        return grader.default_answer_key(settings.total_questions, settings.option_labels)
    return grader.match_option_labels(grader.load_master_answers(path), settings.option_labels)


def save_outcome(outcome, visual_dir, results_dir):
    """Writes the CSV and the annotated image for one successful outcome."""
    result = outcome.result
    name = os.path.splitext(os.path.basename(result.source_image_id))[0]

    csv_output_path = os.path.join(results_dir, f"{name}.csv")
    reporting.save_results_csv(result, csv_output_path, simulated=outcome.simulated)

    try:
        original = image_processing.load_image_bytes(result.original_image)
    except DecodeError:
        logger.warning("Skipping visual feedback for %s: the original image cannot be decoded", name)
        return

    visual_feedback_image = reporting.create_visual_feedback(
        image_processing.to_bgr(original), result, simulated=outcome.simulated)
    visual_output_path = os.path.join(visual_dir, f"{name}_graded.png")
    if cv2.imwrite(visual_output_path, visual_feedback_image):
        logger.info("Saved graded image to %s", visual_output_path)
    else:
        logger.error("Could not write graded image to %s", visual_output_path)


def run_grade(args):
    """Orchestrates the batch processing. Returns the process exit code."""
    try:
        settings = build_settings(args)
    except GeometryError as e:
        print(f"Invalid grid: {e}", file=sys.stderr)
        return 2

    try:
        answer_key = load_answer_key(args.answer_key, settings)
    except FileNotFoundError as e:
        print(f"FATAL ERROR: {e}. Cannot proceed without master answers.", file=sys.stderr)
        return 1

    image_files = find_images(args.input_dir)
    try:
        sources = pipeline.select_batch(
            [pipeline.ImageSource.from_path(p) for p in image_files],
            max_files=args.max_files, max_total_bytes=args.max_bytes)
    except EmptyBatch:
        print(f"No images found in the input directory: {args.input_dir}")
        return 1

    setup_directories(args.visual_dir, args.results_dir)
    print(f"Found {len(sources)} image(s) to process.")

    report = pipeline.process_batch(sources, settings, answer_key, max_workers=args.workers)
    for outcome in report.succeeded:
        save_outcome(outcome, args.visual_dir, args.results_dir)

    setup_directories(os.path.dirname(os.path.abspath(args.summary_path)))
    reporting.create_summary_report(report, args.summary_path)

    for message in report.failure_messages():
        print(message, file=sys.stderr)
    print(report.summary_message())
    return 0 if report.succeeded else 1


def run_template(args):
    sheet = template.TemplateConfig(
        question_count=args.questions,
        option_labels=tuple(args.options or config.OPTION_LABELS),
        title=args.title,
        subtitle=args.subtitle,
        page_size=args.page_size,
        show_question_numbers=not args.hide_numbers,
    )
    try:
        template.save_template(sheet, args.output, dpi=args.dpi)
    except (OMRError, ValueError) as e:
        print(f"Could not create template: {e}", file=sys.stderr)
        return 1
    grid = template.template_grid(sheet, dpi=args.dpi)
    print(f"Saved template to {args.output}")
    print(f"Grid: --rows {grid.rows} --top-margin {grid.top_margin} --left-margin {grid.left_margin} "
          f"--row-spacing {grid.row_spacing} --col-spacing {grid.col_spacing} "
          f"--bubble-width {grid.bubble_width} --bubble-height {grid.bubble_height}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(prog='omr-scorer', description="Score scanned multiple-choice answer sheets")
    parser.add_argument('-v', '--verbose', action='store_true', help="Enable debug logging")
    commands = parser.add_subparsers(dest='command', required=True)

    grade = commands.add_parser('grade', help="Grade every image in a directory")
    grade.add_argument('--input-dir', default=config.INPUT_DIR)
    grade.add_argument('--visual-dir', default=config.OUTPUT_VISUAL_DIR)
    grade.add_argument('--results-dir', default=config.STUDENT_RESULTS_DIR)
    grade.add_argument('--summary-path', default=os.path.join(config.CSV_DIR, config.SUMMARY_REPORT_NAME),
                       help="Batch summary CSV, kept apart from the per-sheet results")
    grade.add_argument('--answer-key', default=None, help="CSV with question,answer columns")
    grade.add_argument('--rows', type=int, default=config.TOTAL_QUESTIONS, help="Number of questions")
    grade.add_argument('--cols', type=int, default=config.CHOICES_PER_QUESTION, help="Options per question")
    grade.add_argument('--options', nargs='+', default=None, help="Option labels, overrides --cols")
    for name in _GRID_FLAGS:
        grade.add_argument('--' + name.replace('_', '-'), dest=name, type=int, default=None,
                           help="Fixed grid geometry in pixels")
    grade.add_argument('--binarize-threshold', type=int, default=config.BINARIZE_THRESHOLD)
    grade.add_argument('--dark-threshold', type=int, default=config.DARK_PIXEL_THRESHOLD)
    grade.add_argument('--fill-ratio', type=float, default=config.FILL_RATIO_THRESHOLD)
    grade.add_argument('--workers', type=int, default=1)
    grade.add_argument('--max-files', type=int, default=config.MAX_FILES)
    grade.add_argument('--max-bytes', type=int, default=config.MAX_TOTAL_BYTES)
    grade.add_argument('--simulate-on-failure', action='store_true',
                       help="Return a flagged random result when detection fails")
    grade.add_argument('--seed', type=int, default=None, help="Seed for simulated results")
    grade.set_defaults(func=run_grade)

    tmpl = commands.add_parser('template', help="Write a blank answer sheet image")
    tmpl.add_argument('output')
    tmpl.add_argument('--questions', type=int, default=config.TOTAL_QUESTIONS)
    tmpl.add_argument('--options', nargs='+', default=None)
    tmpl.add_argument('--title', default=template.TemplateConfig.title)
    tmpl.add_argument('--subtitle', default=template.TemplateConfig.subtitle)
    tmpl.add_argument('--page-size', default='a4', choices=sorted(template.PAGE_SIZES_MM))
    tmpl.add_argument('--dpi', type=int, default=template.DEFAULT_DPI)
    tmpl.add_argument('--hide-numbers', action='store_true')
    tmpl.set_defaults(func=run_template)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    return args.func(args)


if __name__ == '__main__':
    sys.exit(main())
