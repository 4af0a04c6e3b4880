import pytest

from app.core.exceptions import InvalidInputError
from app.schemas.shares.course_structure import QuizDefinition, QuizQuestion
from app.services.shares.quiz_grading import grade_quiz, is_answer_correct


def single(correct, options=("A", "B", "C", "D")):
    return QuizQuestion(
        question="Chọn 1", question_type="single", options=list(options), correct_answers=correct
    )


def multiple(correct, options=("A", "B", "C", "D")):
    return QuizQuestion(
        question="Chọn nhiều",
        question_type="multiple",
        options=list(options),
        correct_answers=correct,
    )


@pytest.mark.parametrize(
    "selected, expected",
    [([2], True), ([1], False), ([1, 2], False), ([], False)],
)
def test_single_choice(selected, expected):
    assert is_answer_correct(single([2]), selected) is expected


@pytest.mark.parametrize(
    "selected, expected",
    [([0, 2], True), ([2, 0], True), ([0], False), ([0, 1, 2], False)],
)
def test_multiple_choice(selected, expected):
    assert is_answer_correct(multiple([0, 2]), selected) is expected


def test_multiple_with_no_correct_answers_only_matches_empty_selection():
    question = multiple([])
    assert is_answer_correct(question, []) is True
    assert is_answer_correct(question, [0]) is False


def test_graded_quiz_score_and_pass():
    quiz = QuizDefinition(
        is_graded=True,
        passing_score=70,
        questions=[single([0]), single([1]), multiple([0, 1]), single([3])],
    )
    result = grade_quiz(quiz, [[0], [1], [0, 1], [2]])

    assert result.score == 75
    assert result.correct_answers == 3
    assert result.total_questions == 4
    assert result.passed is True
    assert result.passing_score == 70
    assert [r.is_correct for r in result.results] == [True, True, True, False]


def test_graded_quiz_below_passing_score():
    quiz = QuizDefinition(is_graded=True, passing_score=70, questions=[single([0]), single([0])])
    result = grade_quiz(quiz, [[0], [1]])

    assert result.score == 50
    assert result.passed is False


def test_ungraded_quiz_has_no_pass_flag():
    quiz = QuizDefinition(is_graded=False, questions=[single([0])])
    result = grade_quiz(quiz, [[0]])

    assert result.score == 100
    assert result.passed is None
    assert result.passing_score is None


def test_score_rounds_half_up():
    # 1/8 = 12.5 → 13
    quiz = QuizDefinition(questions=[single([0])] * 8)
    result = grade_quiz(quiz, [[0]] + [[1]] * 7)
    assert result.score == 13


def test_empty_quiz_scores_zero():
    result = grade_quiz(QuizDefinition(is_graded=True, questions=[]), [])
    assert result.score == 0
    assert result.total_questions == 0
    assert result.passed is False


def test_answer_count_mismatch_is_rejected():
    quiz = QuizDefinition(questions=[single([0]), single([1])])
    with pytest.raises(InvalidInputError) as exc:
        grade_quiz(quiz, [[0]])
    assert exc.value.status_code == 400


@pytest.mark.parametrize("answers", [[[4]], [[-1]], [[0, 5]]])
def test_invalid_selection_is_rejected(answers):
    with pytest.raises(InvalidInputError):
        grade_quiz(QuizDefinition(questions=[single([0])]), answers)


def test_repeated_choice_counts_once_for_multiple():
    quiz = QuizDefinition(questions=[multiple([0, 2])])
    result = grade_quiz(quiz, [[0, 0, 2]])

    assert result.score == 100
    assert result.results[0].is_correct is True


def test_repeated_choice_is_not_a_single_answer():
    result = grade_quiz(QuizDefinition(questions=[single([0])]), [[0, 0]])
    assert result.results[0].is_correct is False
