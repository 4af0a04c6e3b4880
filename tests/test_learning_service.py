from datetime import timedelta

import pytest
from fastapi import HTTPException
from loguru import logger

from app.core import scheduler
from app.core.exceptions import InvalidInputError, NotFoundError
from app.db.models.database import CourseEnrollments, Courses, Lessons
from app.libs.formats.datetime import now as get_now
from app.schemas.user.learning import LessonRef
from app.services.user.learning import LearningService
from tests.factories import video


@pytest.fixture
async def course(lecturer, make_course):
    return await make_course(
        lecturer, [{"title": "Chương 1", "lectures": [video("Bài ngắn", 100), video("Bài dài", 300)]}]
    )


@pytest.fixture
async def enrollment_id(learner, course, enroll):
    return (await enroll(learner, course.course_id))["enrollment_id"]


async def test_complete_is_duration_weighted(db, learner, course, enrollment_id):
    service = LearningService(db)
    first, second = course.lectures

    progress = await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=first.id), learner)
    assert progress.overall_progress == 25
    assert progress.completed_lessons == 1
    assert progress.completed_at is None
    assert progress.last_accessed_lesson_id == first.id

    progress = await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=second.id), learner)
    assert progress.overall_progress == 100
    assert progress.completed_at is not None

    enrollment = await db.get(CourseEnrollments, enrollment_id)
    assert enrollment.overall_progress == 100
    assert enrollment.completed_at is not None


async def test_complete_is_idempotent(db, learner, course, enrollment_id):
    service = LearningService(db)
    ref = LessonRef(section_index=0, lecture_index=0, time_spent=30)

    once = await service.complete_lesson_async(course.course_id, ref, learner)
    twice = await service.complete_lesson_async(course.course_id, ref, learner)

    assert once.overall_progress == twice.overall_progress == 25
    assert len(twice.completed) == 1
    assert twice.completed[0].time_spent == 60
    assert twice.total_time_spent == 60


async def test_uncomplete_restores_previous_state(db, learner, course, enrollment_id):
    service = LearningService(db)
    first, second = course.lectures
    await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=first.id), learner)
    before = await service.get_progress_async(course.course_id, learner)

    await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=second.id), learner)
    after = await service.uncomplete_lesson_async(course.course_id, LessonRef(lesson_id=second.id), learner)

    assert after.overall_progress == before.overall_progress == 25
    assert [c.lesson_id for c in after.completed] == [c.lesson_id for c in before.completed]
    # từng đạt 100% → completed_at bị xóa khi tụt xuống
    assert after.completed_at is None


async def test_uncomplete_missing_record_is_noop(db, learner, course, enrollment_id):
    service = LearningService(db)
    progress = await service.uncomplete_lesson_async(
        course.course_id, LessonRef(section_index=0, lecture_index=1, time_spent=500), learner
    )
    assert progress.overall_progress == 0
    assert progress.total_time_spent == 0


async def test_uncomplete_subtracts_time(db, learner, course, enrollment_id):
    service = LearningService(db)
    await service.complete_lesson_async(
        course.course_id, LessonRef(section_index=0, lecture_index=0, time_spent=90), learner
    )
    progress = await service.uncomplete_lesson_async(
        course.course_id, LessonRef(section_index=0, lecture_index=0, time_spent=40), learner
    )
    assert progress.total_time_spent == 50


async def test_progress_breakdown(db, learner, lecturer, make_course, enroll):
    course = await make_course(
        lecturer,
        [
            {"title": "Chương 1", "lectures": [video("1.1", 60), video("1.2", 60)]},
            {"title": "Chương 2", "lectures": [video("2.1", 180)]},
        ],
    )
    await enroll(learner, course.course_id)
    service = LearningService(db)

    await service.complete_lesson_async(course.course_id, LessonRef(section_index=1, lecture_index=0), learner)
    progress = await service.get_progress_async(course.course_id, learner)

    assert progress.overall_progress == 60
    assert progress.total_lessons == 3
    assert [(c.section_index, c.lecture_index) for c in progress.completed] == [(1, 0)]
    assert [s.progress for s in progress.sections] == [0, 100]


async def test_record_access_does_not_complete(db, learner, course, enrollment_id):
    service = LearningService(db)
    second = course.lectures[1]

    progress = await service.record_access_async(
        course.course_id, LessonRef(lesson_id=second.id, time_spent=45), learner
    )
    assert progress.completed_lessons == 0
    assert progress.last_accessed_lesson_id == second.id
    assert progress.total_time_spent == 45


async def test_reset_progress(db, learner, course, enrollment_id):
    service = LearningService(db)
    for lecture in course.lectures:
        await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=lecture.id, time_spent=10), learner)

    progress = await service.reset_progress_async(course.course_id, learner)
    assert progress.overall_progress == 0
    assert progress.completed == []
    assert progress.total_time_spent == 0
    assert progress.completed_at is None

    enrollment = await db.get(CourseEnrollments, enrollment_id)
    assert enrollment.last_progress_at is None


async def test_overview(db, learner, lecturer, course, enrollment_id, make_course, enroll):
    other = await make_course(lecturer, [{"title": "A", "lectures": [video("A1", 50)]}], title="Khóa học khác")
    await enroll(learner, other.course_id)
    service = LearningService(db)

    await service.complete_lesson_async(other.course_id, LessonRef(section_index=0, lecture_index=0, time_spent=20), learner)
    await service.complete_lesson_async(course.course_id, LessonRef(section_index=0, lecture_index=0), learner)

    overview = await service.get_overview_async(learner)
    assert overview.total_enrolled == 2
    assert overview.total_completed == 1
    assert overview.total_watch_time == 20
    # (100 + 25) / 2 = 62.5 → 63
    assert overview.overall_progress == 63


async def test_resync_recomputes_but_keeps_completed_at(db, learner, course, enrollment_id):
    service = LearningService(db)
    for lecture in course.lectures:
        await service.complete_lesson_async(course.course_id, LessonRef(lesson_id=lecture.id), learner)

    # giảng viên thêm 1 bài 400s → 400/800
    db.add(
        Lessons(
            course_id=course.course_id,
            section_id=course.sections[0].id,
            title="Bài mới",
            lesson_type="note",
            position=3,
            duration=400,
        )
    )
    await service.structure.recalculate_course_totals_async(course.course_id)
    db_course = await db.get(Courses, course.course_id)
    db_course.structure_updated_at = get_now() + timedelta(minutes=1)
    await db.commit()

    assert await service.resync_stale_progress_async() == 1

    enrollment = await db.get(CourseEnrollments, enrollment_id)
    assert enrollment.overall_progress == 50
    assert enrollment.completed_at is not None

    # đã đồng bộ → lần sau không còn gì để làm
    db_course.structure_updated_at = get_now() - timedelta(minutes=1)
    await db.commit()
    assert await service.resync_stale_progress_async() == 0


async def test_invalid_index_is_rejected_before_write(db, learner, course, enrollment_id):
    service = LearningService(db)
    with pytest.raises(InvalidInputError):
        await service.complete_lesson_async(
            course.course_id, LessonRef(section_index=0, lecture_index=7), learner
        )

    progress = await service.get_progress_async(course.course_id, learner)
    assert progress.completed == []


async def test_not_enrolled(db, learner, course):
    service = LearningService(db)
    with pytest.raises(NotFoundError):
        await service.get_progress_async(course.course_id, learner)
    with pytest.raises(NotFoundError):
        await service.complete_lesson_async(
            course.course_id, LessonRef(section_index=0, lecture_index=0), learner
        )


async def test_scheduler_job_resyncs_in_own_session(
    db, session_factory, learner, course, enrollment_id, monkeypatch
):
    monkeypatch.setattr(scheduler, "AsyncSessionLocal", session_factory)
    service = LearningService(db)
    await service.complete_lesson_async(course.course_id, LessonRef(section_index=0, lecture_index=1), learner)

    db_course = await db.get(Courses, course.course_id)
    db_course.structure_updated_at = get_now() + timedelta(minutes=1)
    db.add(
        Lessons(
            course_id=course.course_id,
            section_id=course.sections[0].id,
            title="Bài mới",
            lesson_type="note",
            position=3,
            duration=200,
        )
    )
    await db.commit()

    await scheduler.progress_resync_job()

    async with session_factory() as other:
        enrollment = await other.get(CourseEnrollments, enrollment_id)
        # 300 / (100 + 300 + 200)
        assert enrollment.overall_progress == 50


@pytest.fixture
def error_logs():
    messages = []
    handler_id = logger.add(messages.append, level="ERROR")
    yield messages
    logger.remove(handler_id)


@pytest.mark.parametrize(
    "call, label",
    [
        (lambda s, cid, u: s.record_access_async(cid, LessonRef(section_index=0, lecture_index=0), u), "cập nhật bài học"),
        (lambda s, cid, u: s.reset_progress_async(cid, u), "reset tiến độ"),
        (lambda s, cid, u: s.get_progress_async(cid, u), "lấy tiến độ"),
    ],
)
async def test_unexpected_errors_are_logged(db, learner, course, enrollment_id, monkeypatch, error_logs, call, label):
    service = LearningService(db)

    async def broken(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(service, "_completion_rows", broken)

    with pytest.raises(HTTPException) as exc:
        await call(service, course.course_id, learner)
    assert exc.value.status_code == 500
    assert any(label in str(m) and "db down" in str(m) for m in error_logs)


async def test_overview_error_is_logged(db, learner, monkeypatch, error_logs):
    service = LearningService(db)

    async def broken(*args, **kwargs):
        raise RuntimeError("db down")

    monkeypatch.setattr(db, "execute", broken)

    with pytest.raises(HTTPException) as exc:
        await service.get_overview_async(learner)
    assert exc.value.status_code == 500
    assert any("lấy tổng quan" in str(m) for m in error_logs)
