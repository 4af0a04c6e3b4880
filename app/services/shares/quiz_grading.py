from typing import Sequence

from app.core.enum import QuestionType
from app.core.exceptions import InvalidInputError
from app.libs.formats.number import round_half_up
from app.schemas.shares.course_structure import QuizDefinition, QuizQuestion
from app.schemas.user.quiz import QuestionResult, QuizGradeResult


def is_answer_correct(question: QuizQuestion, selected: Sequence[int]) -> bool:
    """
    ✅ single: chọn đúng 1 đáp án và đáp án đó nằm trong tập đúng
    ✅ multiple: tập đã chọn == tập đáp án đúng (không thiếu, không thừa)
    """
    correct = set(question.correct_answers)
    if question.question_type == QuestionType.SINGLE:
        return len(selected) == 1 and selected[0] in correct
    return set(selected) == correct


def _validate_answers(quiz: QuizDefinition, answers: Sequence[Sequence[int]]) -> None:
    if len(answers) != len(quiz.questions):
        raise InvalidInputError(
            f"Số câu trả lời ({len(answers)}) không khớp số câu hỏi ({len(quiz.questions)})"
        )
    for idx, (question, selected) in enumerate(zip(quiz.questions, answers)):
        for choice in selected:
            if choice < 0 or choice >= len(question.options):
                raise InvalidInputError(f"Câu {idx + 1}: đáp án {choice} không tồn tại")


def grade_quiz(quiz: QuizDefinition, answers: Sequence[Sequence[int]]) -> QuizGradeResult:
    """Chấm 1 lượt làm quiz. Hàm thuần, không đụng DB."""
    _validate_answers(quiz, answers)

    results = [
        QuestionResult(
            question_index=idx,
            selected_answers=list(selected),
            is_correct=is_answer_correct(question, selected),
        )
        for idx, (question, selected) in enumerate(zip(quiz.questions, answers))
    ]

    total = len(quiz.questions)
    correct_count = sum(1 for r in results if r.is_correct)
    # quiz rỗng → 0 điểm, không chia cho 0
    score = round_half_up(correct_count / total * 100) if total else 0

    return QuizGradeResult(
        results=results,
        score=score,
        total_questions=total,
        correct_answers=correct_count,
        is_graded=quiz.is_graded,
        passed=(score >= quiz.passing_score) if quiz.is_graded else None,
        passing_score=quiz.passing_score if quiz.is_graded else None,
    )
