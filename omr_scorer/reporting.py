# /omr_scorer/reporting.py
"""
Functions for generating final reports (CSV and visual image).
"""
import logging

import cv2
import pandas as pd

from . import config
from .answer_extractor import AMBIGUOUS, SINGLE

logger = logging.getLogger(__name__)


# FUNCTION 1: Saves the individual result for one sheet
def save_results_csv(result, output_path, simulated=False):
    """Saves the detailed grading results and score of one image to a CSV file."""
    df = pd.DataFrame([
        {
            'question_number': a.question_number,
            'correct_answer': a.correct_option,
            'student_answer': a.marked_option,
            'status': a.status,
            'marks': 1 if a.is_correct else 0,
        }
        for a in result.answers
    ], columns=['question_number', 'correct_answer', 'student_answer', 'status', 'marks'])

    score = result.score
    summary_rows = pd.DataFrame([
        {'question_number': 'Total', 'correct_answer': score.total, 'student_answer': 'Obtained',
         'status': 'simulated' if simulated else 'measured', 'marks': score.correct},
        {'question_number': 'Percentage', 'correct_answer': '', 'student_answer': '',
         'status': '', 'marks': f"{score.percentage:.2f}%"},
    ])
    df = pd.concat([df, summary_rows], ignore_index=True)

    df.to_csv(output_path, index=False)
    logger.info("Results successfully saved to %s", output_path)
    return output_path


def _bubble_style(bubble, answer):
    """Colour and thickness for one bubble given the evaluated answer of its question."""
    if answer is None or not bubble.is_filled:
        return config.VIS_DEFAULT_BUBBLE_COLOR, config.VIS_THICKNESS_BUBBLE
    if answer.status == AMBIGUOUS:
        return config.VIS_AMBIGUOUS_COLOR, config.VIS_THICKNESS_ANSWER
    if answer.status == SINGLE and answer.marked_option == bubble.option:
        color = config.VIS_CORRECT_ANSWER_COLOR if answer.is_correct else config.VIS_WRONG_ANSWER_COLOR
        return color, config.VIS_THICKNESS_ANSWER
    return config.VIS_DEFAULT_BUBBLE_COLOR, config.VIS_THICKNESS_BUBBLE


# FUNCTION 2: Creates the graded image with identifier and score
def create_visual_feedback(base_image, result, simulated=False):
    """
    Draws feedback onto a BGR copy of the sheet: a header with the image
    identifier and score, and every sampled bubble outlined by outcome.
    """
    vis_image = base_image.copy()
    answers = {a.question_number: a for a in result.answers}

    for b in result.bubbles:
        color, thickness = _bubble_style(b, answers.get(b.question_number))
        cv2.rectangle(vis_image, (b.x, b.y), (b.x + b.width - 1, b.y + b.height - 1), color, thickness)

    score = result.score
    lines = [
        f"Sheet: {result.source_image_id}",
        f"Score: {score.correct} / {score.total} ({score.percentage:.1f}%)",
    ]
    if simulated:
        lines.append("SIMULATED - not read from the sheet")

    for i, text in enumerate(lines):
        position = (config.VIS_INFO_X, config.VIS_INFO_Y + i * config.VIS_INFO_LINE_HEIGHT)
        color = config.VIS_WRONG_ANSWER_COLOR if i == 2 else config.VIS_TEXT_COLOR
        cv2.putText(vis_image, text, position, config.VIS_INFO_FONT, config.VIS_INFO_FONT_SCALE,
                    color, config.VIS_INFO_FONT_THICKNESS)

    logger.debug("Visual feedback image created for %s.", result.source_image_id)
    return vis_image


# FUNCTION 3: Creates the final summary report of all sheets
def create_summary_report(report, output_path):
    """
    Compiles every outcome of a batch into one CSV: a row per image followed
    by overall statistics over the images that produced a score.
    """
    rows = []
    for outcome in report.outcomes:
        if hasattr(outcome, 'result'):
            score = outcome.result.score
            rows.append({
                'image': outcome.source_image_id,
                'status': 'simulated' if outcome.simulated else 'measured',
                'marks_obtained': score.correct,
                'total_questions': score.total,
                'percentage_score': score.percentage,
                'error': '',
            })
        else:
            rows.append({
                'image': outcome.source_image_id,
                'status': 'failed',
                'marks_obtained': None,
                'total_questions': None,
                'percentage_score': None,
                'error': f"{outcome.error_kind}: {outcome.message}",
            })

    if not rows:
        logger.warning("No outcomes to summarise. Summary report will not be created.")
        return None

    summary_df = pd.DataFrame(rows)
    scored = summary_df[summary_df['status'] == 'measured']['percentage_score'].astype(float)
    if scored.empty:
        stats = ['0', '-', '-', '-', '-']
    else:
        std_dev = scored.std() if len(scored) > 1 else 0.0
        stats = [str(len(scored)), f'{scored.mean():.2f}', f'{scored.max():.2f}',
                 f'{scored.min():.2f}', f'{std_dev:.2f}']
    stats_df = pd.DataFrame({
        'Statistic': ['Number of Measured Sheets', 'Average Score (%)', 'Highest Score (%)',
                      'Lowest Score (%)', 'Std Deviation'],
        'Value': stats,
    })

    with open(output_path, 'w', newline='') as f:
        summary_df.to_csv(f, index=False)
        f.write('\n--- Overall Statistics ---\n')
        stats_df.to_csv(f, index=False)
    logger.info("Successfully created summary report at: %s", output_path)
    return summary_df
