from dataclasses import replace

from omr_scorer.answer_extractor import AMBIGUOUS, SINGLE, UNANSWERED, DetectedAnswer, extract_answers
from omr_scorer.config import GridConfig
from omr_scorer.grid_mapper import map_grid


def with_filled(bubbles, keys):
    return [replace(b, is_filled=b.key in keys) for b in bubbles]


def test_one_filled_bubble_per_question():
    marks = {(1, 'B'), (2, 'D'), (3, 'A')}
    answers = extract_answers(with_filled(map_grid(GridConfig(rows=3, cols=4)), marks))
    assert [(a.question_number, a.marked_option) for a in answers] == [(1, 'B'), (2, 'D'), (3, 'A')]
    assert all(a.status == SINGLE for a in answers)


def test_unanswered_questions_are_included():
    answers = extract_answers(with_filled(map_grid(GridConfig(rows=3, cols=4)), {(2, 'C')}))
    assert [a.status for a in answers] == [UNANSWERED, SINGLE, UNANSWERED]
    assert answers[0].marked_option == ''


def test_multiple_marks_are_ambiguous_in_column_order():
    answers = extract_answers(with_filled(map_grid(GridConfig(rows=1, cols=4)), {(1, 'D'), (1, 'A')}))
    assert answers == [DetectedAnswer.ambiguous(1, ('A', 'D'))]
    assert answers[0].status == AMBIGUOUS
    assert answers[0].marked_option == ''


def test_total_questions_pads_missing_questions():
    answers = extract_answers([], total_questions=3)
    assert [a.question_number for a in answers] == [1, 2, 3]
    assert all(a.status == UNANSWERED for a in answers)


def test_empty_input_without_total_gives_no_answers():
    assert extract_answers([]) == []
