import os

import cv2
import numpy as np
import pandas as pd

from omr_scorer import main as cli
from omr_scorer.config import GridConfig
from omr_scorer.grid_mapper import map_grid
from omr_scorer.template import TemplateConfig, template_grid


def grid_flags(grid):
    return [
        '--rows', str(grid.rows),
        '--top-margin', str(grid.top_margin), '--left-margin', str(grid.left_margin),
        '--row-spacing', str(grid.row_spacing), '--col-spacing', str(grid.col_spacing),
        '--bubble-width', str(grid.bubble_width), '--bubble-height', str(grid.bubble_height),
    ]


def test_template_then_grade(tmp_path, capsys):
    input_dir = tmp_path / 'in'
    input_dir.mkdir()
    sheet_path = input_dir / 'alice.png'
    assert cli.main(['template', str(sheet_path), '--questions', '10']) == 0

    grid = template_grid(TemplateConfig(question_count=10))
    sheet = cv2.imread(str(sheet_path))
    b = next(b for b in map_grid(grid) if b.key == (1, 'B'))
    cv2.rectangle(sheet, (b.x, b.y), (b.x + b.width - 1, b.y + b.height - 1), (0, 0, 0), -1)
    cv2.imwrite(str(sheet_path), sheet)
    (input_dir / 'broken.png').write_bytes(b'nothing to see')

    key_path = tmp_path / 'key.csv'
    key_path.write_text("question,answer\n" + "".join(f"{q},B\n" for q in range(1, 11)))
    results_dir, visual_dir = tmp_path / 'results', tmp_path / 'visual'

    code = cli.main([
        'grade', '--input-dir', str(input_dir), '--results-dir', str(results_dir),
        '--visual-dir', str(visual_dir), '--answer-key', str(key_path),
        '--summary-path', str(tmp_path / 'csv' / 'student_answers.csv'),
    ] + grid_flags(grid))

    assert code == 0
    out = capsys.readouterr()
    assert '1 image was processed successfully' in out.out
    assert 'broken.png' in out.err

    df = pd.read_csv(results_dir / 'alice.csv', dtype=str, keep_default_na=False)
    assert df.iloc[0]['student_answer'] == 'B'
    assert df.iloc[10]['marks'] == '1'
    assert os.path.exists(visual_dir / 'alice_graded.png')
    assert os.path.exists(tmp_path / 'csv' / 'student_answers.csv')
    assert not os.path.exists(results_dir / 'student_answers.csv')


def test_grade_with_no_images(tmp_path, capsys):
    key_path = tmp_path / 'key.csv'
    key_path.write_text('question,answer\n1,A\n')
    code = cli.main(['grade', '--input-dir', str(tmp_path), '--answer-key', str(key_path)])
    assert code == 1
    assert 'No images found' in capsys.readouterr().out


def test_missing_answer_key_is_fatal(tmp_path, capsys):
    code = cli.main(['grade', '--input-dir', str(tmp_path), '--answer-key', str(tmp_path / 'nope.csv')])
    assert code == 1
    assert 'FATAL ERROR' in capsys.readouterr().err


def test_invalid_grid_flags(tmp_path, capsys):
    code = cli.main(['grade', '--input-dir', str(tmp_path), '--row-spacing', '0'])
    assert code == 2


SMALL_GRID = GridConfig(rows=3, cols=4, top_margin=10, left_margin=10, row_spacing=40,
                        col_spacing=40, bubble_width=20, bubble_height=20)


def write_marked_sheet(path, option_index):
    sheet = np.full((140, 180, 3), 255, dtype=np.uint8)
    b = map_grid(SMALL_GRID)[option_index]
    cv2.rectangle(sheet, (b.x, b.y), (b.x + b.width - 1, b.y + b.height - 1), (0, 0, 0), -1)
    cv2.imwrite(str(path), sheet)


def small_grid_flags():
    return grid_flags(SMALL_GRID)


def test_summary_does_not_overwrite_sheet_named_like_it(tmp_path):
    input_dir = tmp_path / 'in'
    input_dir.mkdir()
    write_marked_sheet(input_dir / 'student_answers.png', 0)
    key_path = tmp_path / 'key.csv'
    key_path.write_text("question,answer\n1,A\n2,A\n3,A\n")
    results_dir = tmp_path / 'csv' / 'student_results'
    summary_path = tmp_path / 'csv' / 'student_answers.csv'

    code = cli.main([
        'grade', '--input-dir', str(input_dir), '--results-dir', str(results_dir),
        '--visual-dir', str(tmp_path / 'visual'), '--answer-key', str(key_path),
        '--summary-path', str(summary_path),
    ] + small_grid_flags())

    assert code == 0
    sheet_df = pd.read_csv(results_dir / 'student_answers.csv', dtype=str, keep_default_na=False)
    assert list(sheet_df.columns)[0] == 'question_number'
    assert sheet_df.iloc[0]['marks'] == '1'
    assert '--- Overall Statistics ---' in summary_path.read_text()


def test_lowercase_option_labels_match_csv_key(tmp_path):
    input_dir = tmp_path / 'in'
    input_dir.mkdir()
    write_marked_sheet(input_dir / 's.png', 0)
    key_path = tmp_path / 'key.csv'
    key_path.write_text("question,answer\n1,a\n2,a\n3,a\n")
    results_dir = tmp_path / 'results'

    code = cli.main([
        'grade', '--input-dir', str(input_dir), '--results-dir', str(results_dir),
        '--visual-dir', str(tmp_path / 'visual'), '--answer-key', str(key_path),
        '--summary-path', str(tmp_path / 'summary.csv'), '--options', 'a', 'b', 'c', 'd',
    ] + small_grid_flags())

    assert code == 0
    df = pd.read_csv(results_dir / 's.csv', dtype=str, keep_default_na=False)
    assert df.iloc[0]['student_answer'] == 'a'
    assert df.iloc[0]['correct_answer'] == 'a'
    assert df.iloc[0]['marks'] == '1'
