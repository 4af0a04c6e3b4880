import uuid

import pytest
from fastapi import HTTPException

from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.settings import settings
from app.schemas.user.quiz import SubmitQuizAttempt
from app.services.user.learning import LearningService
from app.services.user.quiz import QuizService
from tests.factories import answers_with_score, quiz, video


@pytest.fixture
async def course(lecturer, make_course):
    return await make_course(
        lecturer,
        [
            {
                "title": "Chương 1",
                "lectures": [video("Video", 60), quiz("Kiểm tra cuối chương", 5, duration=60)],
            }
        ],
    )


@pytest.fixture
async def quiz_lecture(course):
    return course.lectures[1]


@pytest.fixture
async def enrolled(learner, course, enroll):
    await enroll(learner, course.course_id)
    return learner


def submission(lesson_id, correct, total=5, time_taken=30):
    return SubmitQuizAttempt(
        lesson_id=lesson_id, answers=answers_with_score(total, correct), time_taken=time_taken
    )


async def test_learner_view_hides_correct_answers(db, enrolled, course, quiz_lecture):
    view = await QuizService(db).get_quiz_for_learner_async(course.course_id, quiz_lecture.id, enrolled)

    assert view.lesson_id == quiz_lecture.id
    assert len(view.questions) == 5
    payload = view.model_dump()
    assert "correct_answers" not in payload["questions"][0]


async def test_passing_submission_completes_lecture(db, enrolled, course, quiz_lecture):
    response = await QuizService(db).submit_quiz_async(
        course.course_id, submission(quiz_lecture.id, 4), enrolled
    )

    assert response.attempt.score == 80
    assert response.attempt.passed is True
    assert response.attempt.passing_score == 70
    assert response.lesson_completed is True
    assert response.overall_progress == 50

    progress = await LearningService(db).get_progress_async(course.course_id, enrolled)
    assert [c.lesson_id for c in progress.completed] == [quiz_lecture.id]
    assert progress.total_time_spent == 30


async def test_failing_submission_is_recorded_but_not_completed(db, enrolled, course, quiz_lecture):
    response = await QuizService(db).submit_quiz_async(
        course.course_id, submission(quiz_lecture.id, 2), enrolled
    )

    assert response.attempt.score == 40
    assert response.attempt.passed is False
    assert response.lesson_completed is False
    assert response.overall_progress == 0


async def test_auto_complete_can_be_disabled(db, enrolled, course, quiz_lecture, monkeypatch):
    monkeypatch.setattr(settings, "QUIZ_COMPLETES_LECTURE", False)
    response = await QuizService(db).submit_quiz_async(
        course.course_id, submission(quiz_lecture.id, 5), enrolled
    )
    assert response.attempt.passed is True
    assert response.lesson_completed is False


async def test_attempts_are_listed_newest_first(db, enrolled, course, quiz_lecture):
    service = QuizService(db)
    for correct in (2, 3, 5):
        await service.submit_quiz_async(course.course_id, submission(quiz_lecture.id, correct), enrolled)

    history = await service.list_attempts_async(course.course_id, enrolled, quiz_lecture.id)
    assert history.total_attempts == 3
    assert [a.attempt_number for a in history.attempts] == [3, 2, 1]
    assert [a.score for a in history.attempts] == [100, 60, 40]
    assert history.latest_attempt.score == 100

    everything = await service.list_attempts_async(course.course_id, enrolled)
    assert everything.total_attempts == 3


async def test_quiz_stats_for_owner(db, enrolled, lecturer, make_user, course, quiz_lecture, enroll):
    service = QuizService(db)
    other = await make_user("Học viên 2")
    await enroll(other, course.course_id)

    await service.submit_quiz_async(course.course_id, submission(quiz_lecture.id, 4), enrolled)
    await service.submit_quiz_async(course.course_id, submission(quiz_lecture.id, 5), enrolled)
    await service.submit_quiz_async(course.course_id, submission(quiz_lecture.id, 1), other)

    stats = await service.get_quiz_stats_async(course.course_id, quiz_lecture.id, lecturer)
    assert stats.total_attempts == 3
    assert stats.unique_users == 2
    # (80 + 100 + 20) / 3 = 66.67
    assert stats.average_score == 67
    # 2/3 lượt đạt
    assert stats.pass_rate == 67


async def test_quiz_stats_forbidden_for_others(db, enrolled, course, quiz_lecture):
    with pytest.raises(HTTPException) as exc:
        await QuizService(db).get_quiz_stats_async(course.course_id, quiz_lecture.id, enrolled)
    assert exc.value.status_code == 403


async def test_answer_count_mismatch(db, enrolled, course, quiz_lecture):
    service = QuizService(db)
    with pytest.raises(InvalidInputError):
        await service.submit_quiz_async(
            course.course_id, submission(quiz_lecture.id, 2, total=3), enrolled
        )

    history = await service.list_attempts_async(course.course_id, enrolled)
    assert history.total_attempts == 0


async def test_non_quiz_lecture_is_rejected(db, enrolled, course):
    with pytest.raises(InvalidInputError):
        await QuizService(db).submit_quiz_async(
            course.course_id, submission(course.lectures[0].id, 0, total=0), enrolled
        )


async def test_unknown_quiz_and_not_enrolled(db, learner, course, quiz_lecture):
    service = QuizService(db)
    with pytest.raises(NotFoundError):
        await service.get_quiz_for_learner_async(course.course_id, uuid.uuid4(), learner)
    with pytest.raises(NotFoundError):
        await service.submit_quiz_async(course.course_id, submission(quiz_lecture.id, 5), learner)
