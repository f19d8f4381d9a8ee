# answer_extractor.py
"""
Functions to extract the student's answers from the detected bubbles.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass

logger = logging.getLogger(__name__)

UNANSWERED = 'unanswered'
SINGLE = 'single'
AMBIGUOUS = 'ambiguous'


@dataclass(frozen=True)
class DetectedAnswer:
    """
    Outcome for one question.

    ``options`` holds the filled options in column order: empty when
    unanswered, one entry for a single mark, several when ambiguous.
    """

    question_number: int
    status: str = UNANSWERED
    options: tuple = ()

    @classmethod
    def unanswered(cls, question_number):
        return cls(question_number, UNANSWERED, ())

    @classmethod
    def single(cls, question_number, option):
        return cls(question_number, SINGLE, (option,))

    @classmethod
    def ambiguous(cls, question_number, options):
        return cls(question_number, AMBIGUOUS, tuple(options))

    @property
    def marked_option(self):
        """The chosen option, or '' when unanswered or ambiguous."""
        return self.options[0] if self.status == SINGLE else ''


def extract_answers(bubbles, total_questions=None):
    """
    For each question, determines which bubble is filled.

    Returns one DetectedAnswer per question from 1 to ``total_questions``
    (default: the highest question number among the bubbles), in ascending
    order. Several filled bubbles make the question ambiguous.
    """
    question_to_bubbles = defaultdict(list)
    for b in bubbles:
        question_to_bubbles[b.question_number].append(b)

    if total_questions is None:
        total_questions = max(question_to_bubbles, default=0)

    answers = []
    ambiguous = 0
    for q_num in range(1, total_questions + 1):
        filled = [b.option for b in question_to_bubbles.get(q_num, []) if b.is_filled]
        if not filled:
            answers.append(DetectedAnswer.unanswered(q_num))
        elif len(filled) == 1:
            answers.append(DetectedAnswer.single(q_num, filled[0]))
        else:
            ambiguous += 1
            answers.append(DetectedAnswer.ambiguous(q_num, filled))

    if ambiguous:
        logger.warning("%d question(s) have more than one filled bubble", ambiguous)
    logger.debug("Extracted answers for %d questions.", len(answers))
    return answers
