# grader.py
"""
Functions for grading the extracted answers against a master key.
"""
import logging
from dataclasses import dataclass

import pandas as pd

from . import config
from .answer_extractor import AMBIGUOUS, UNANSWERED, DetectedAnswer
from .errors import MissingKeyEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EvaluatedAnswer:
    question_number: int
    marked_option: str
    is_correct: bool
    status: str = UNANSWERED
    correct_option: str = ''


@dataclass(frozen=True)
class Score:
    correct: int
    total: int
    percentage: float


def load_master_answers(path):
    """Loads the master answer key from a two-column CSV file."""
    try:
        df = pd.read_csv(path)
    except FileNotFoundError:
        raise FileNotFoundError(f"Master answer file not found at {path}")
    # Standardize column names for easier access
    df = df.iloc[:, :2]
    df.columns = ['question', 'answer']
    df = df.dropna()
    df['question'] = df['question'].astype(int)
    df['answer'] = df['answer'].astype(str).str.strip().str.upper()
    answers = df.set_index('question')['answer'].to_dict()
    logger.info("Loaded %d answer key entries from %s", len(answers), path)
    return answers


def match_option_labels(answer_key, option_labels):
    """
    Rewrites key entries to the grid's own spelling of each option label,
    comparing with ``.strip().upper()``. Entries matching no label are kept.
    """
    by_upper = {str(label).strip().upper(): label for label in option_labels}
    return {q: by_upper.get(str(answer).strip().upper(), answer) for q, answer in answer_key.items()}


def default_answer_key(total_questions=config.TOTAL_QUESTIONS, option_labels=config.OPTION_LABELS):
    """
    Deterministic placeholder key for demos and tests: question ``i`` gets
    ``option_labels[(i * 1234) % len(option_labels)]``.
    """
    return {i: option_labels[(i * 1234) % len(option_labels)] for i in range(1, total_questions + 1)}


def evaluate_answers(detected_answers, answer_key, total_questions):
    """
    Compares detected answers to the key for every question 1..total_questions.

    Questions with no detection count as unanswered. A question without a key
    entry raises MissingKeyEntry. Ambiguous answers are never correct.
    """
    detected = {a.question_number: a for a in detected_answers}

    results = []
    for q_num in range(1, total_questions + 1):
        if q_num not in answer_key:
            raise MissingKeyEntry(q_num)
        correct_option = answer_key[q_num]
        answer = detected.get(q_num) or DetectedAnswer.unanswered(q_num)
        marked = answer.marked_option

        results.append(EvaluatedAnswer(
            question_number=q_num,
            marked_option=marked,
            is_correct=bool(marked) and marked == correct_option,
            status=answer.status,
            correct_option=correct_option,
        ))
    return results


def calculate_score(evaluated_answers):
    """Counts correct answers; the percentage is 0 when there are no questions."""
    total = len(evaluated_answers)
    correct = sum(1 for a in evaluated_answers if a.is_correct)
    percentage = (100.0 * correct / total) if total else 0.0
    return Score(correct=correct, total=total, percentage=percentage)


def grade_answers(detected_answers, answer_key, total_questions):
    """
    Evaluates the detected answers and calculates the score.

    Returns the evaluated answers and the Score.
    """
    results = evaluate_answers(detected_answers, answer_key, total_questions)
    score = calculate_score(results)

    ambiguous = sum(1 for r in results if r.status == AMBIGUOUS)
    logger.info("Grading complete. Score: %d/%d (%.2f%%)%s", score.correct, score.total,
                score.percentage, f", {ambiguous} ambiguous" if ambiguous else '')
    return results, score
