import uuid

import pytest

from app.core.exceptions import NotFoundError
from app.schemas.user.learning import LessonRef
from app.services.user.course_enroll import CourseEnrolls
from app.services.user.learning import LearningService
from tests.factories import video


@pytest.fixture
async def course(lecturer, make_course):
    return await make_course(lecturer, [{"title": "A", "lectures": [video("A1", 60), video("A2", 60)]}])


async def test_enroll_is_idempotent(db, learner, course):
    service = CourseEnrolls(db)
    first = await service.enroll_async(course.course_id, learner)
    second = await service.enroll_async(course.course_id, learner)

    assert first["enrollment_id"] == second["enrollment_id"]
    assert second["is_active"] is True


async def test_unenroll_keeps_progress_for_reactivation(db, learner, course):
    service = CourseEnrolls(db)
    await service.enroll_async(course.course_id, learner)
    await LearningService(db).complete_lesson_async(
        course.course_id, LessonRef(section_index=0, lecture_index=0), learner
    )

    await service.unenroll_async(course.course_id, learner)
    listing = await service.get_user_courses_async(learner.id)
    assert listing["total"] == 0

    again = await service.enroll_async(course.course_id, learner)
    assert again["overall_progress"] == 50


async def test_my_courses_lists_progress(db, learner, lecturer, course, make_course):
    other = await make_course(lecturer, [{"title": "B", "lectures": [video("B1", 10)]}], title="Khóa học B")
    service = CourseEnrolls(db)
    await service.enroll_async(course.course_id, learner)
    await service.enroll_async(other.course_id, learner)
    await LearningService(db).complete_lesson_async(
        other.course_id, LessonRef(section_index=0, lecture_index=0), learner
    )

    listing = await service.get_user_courses_async(learner.id, sort_by="progress", order="desc")
    assert listing["total"] == 2
    assert [c["progress_percent"] for c in listing["courses"]] == [100, 0]
    assert listing["courses"][0]["completed_at"] is not None


async def test_enroll_unknown_course(db, learner):
    with pytest.raises(NotFoundError):
        await CourseEnrolls(db).enroll_async(uuid.uuid4(), learner)


async def test_unenroll_without_enrollment(db, learner, course):
    with pytest.raises(NotFoundError):
        await CourseEnrolls(db).unenroll_async(course.course_id, learner)
