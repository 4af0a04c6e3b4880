import uuid

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.core.exceptions import InvalidInputError, NotFoundError
from app.db.models.database import (
    Courses,
    CourseSections,
    LessonQuizzes,
    Lessons,
)
from app.db.sesson import get_session
from app.libs.formats.datetime import now as get_now
from app.schemas.shares.course_structure import (
    CertificateConfig,
    CourseStructure,
    LectureNode,
    QuizDefinition,
    QuizQuestion,
    SectionNode,
)
from app.schemas.user.learning import LessonRef


def quiz_definition_from(lesson: Lessons) -> QuizDefinition:
    questions = []
    for q in lesson.lesson_quizzes or []:
        options = q.lesson_quiz_options or []
        questions.append(
            QuizQuestion(
                question=q.question,
                question_type=q.question_type,
                options=[o.text_ for o in options],
                correct_answers=[i for i, o in enumerate(options) if o.is_correct],
                explanation=q.explanation,
            )
        )
    return QuizDefinition(
        is_graded=bool(lesson.quiz_is_graded),
        passing_score=lesson.quiz_passing_score,
        time_limit=lesson.quiz_time_limit,
        instructions=lesson.quiz_instructions,
        questions=questions,
    )


def certificate_config_from(course: Courses) -> CertificateConfig:
    return CertificateConfig(
        enabled=bool(course.certificate_enabled),
        completion_requirement=course.certificate_completion_requirement,
        passing_score=course.certificate_passing_score,
        organization_name=course.certificate_organization_name,
        logo_url=course.certificate_logo_url,
        signed_by_name=course.certificate_signed_by_name,
        signed_by_title=course.certificate_signed_by_title,
        signature_url=course.certificate_signature_url,
        template=course.certificate_template,
    )


def resolve_lesson(structure: CourseStructure, ref: LessonRef) -> LectureNode:
    """
    ✅ Đổi tham chiếu bài học sang LectureNode:
    - lesson_id → tra theo id ổn định
    - (section_index, lecture_index) → chỉ số 0-based theo thứ tự hiện tại
    """
    if ref.lesson_id is not None:
        lecture = structure.find_lecture(ref.lesson_id)
        if lecture is None:
            raise InvalidInputError("Bài học không thuộc khóa học này")
        return lecture

    s_idx, l_idx = ref.section_index, ref.lecture_index
    if s_idx is None or l_idx is None:
        raise InvalidInputError("Thiếu chỉ số chương / bài học")
    if s_idx < 0 or s_idx >= len(structure.sections):
        raise InvalidInputError(f"Chương {s_idx} không tồn tại")
    lectures = structure.sections[s_idx].lectures
    if l_idx < 0 or l_idx >= len(lectures):
        raise InvalidInputError(f"Bài học {l_idx} không tồn tại trong chương {s_idx}")
    return lectures[l_idx]


class CourseStructureService:
    """Đọc cấu trúc khóa học (chương → bài) và cấu hình chứng chỉ."""

    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db

    async def get_course_async(self, course_id: uuid.UUID) -> Courses:
        course = await self.db.get(Courses, course_id)
        if course is None:
            raise NotFoundError("Khóa học không tồn tại")
        return course

    async def get_course_structure_async(self, course_id: uuid.UUID) -> CourseStructure:
        course = await self.get_course_async(course_id)

        stmt = (
            select(CourseSections)
            .where(CourseSections.course_id == course.id)
            .options(
                selectinload(CourseSections.lessons)
                .selectinload(Lessons.lesson_quizzes)
                .selectinload(LessonQuizzes.lesson_quiz_options)
            )
            .order_by(CourseSections.position)
            .execution_options(populate_existing=True)
        )
        sections = (await self.db.execute(stmt)).scalars().all()

        return CourseStructure(
            course_id=course.id,
            title=course.title,
            instructor_id=course.instructor_id,
            sections=[
                SectionNode(
                    id=s.id,
                    title=s.title,
                    position=s.position,
                    lectures=[
                        LectureNode(
                            id=l.id,
                            section_id=s.id,
                            title=l.title,
                            lecture_type=l.lesson_type,
                            position=l.position,
                            duration=l.duration or 0,
                            quiz=quiz_definition_from(l)
                            if l.lesson_type == "quiz"
                            else None,
                        )
                        for l in sorted(s.lessons, key=lambda x: x.position)
                    ],
                )
                for s in sections
            ],
        )

    async def get_certificate_config_async(self, course_id: uuid.UUID) -> CertificateConfig:
        course = await self.get_course_async(course_id)
        return certificate_config_from(course)

    async def recalculate_course_totals_async(self, course_id: uuid.UUID) -> Courses:
        """Tính lại tổng thời lượng + số bài, đánh dấu cấu trúc vừa đổi."""
        course = await self.get_course_async(course_id)

        total_duration, total_lectures = (
            await self.db.execute(
                select(
                    func.coalesce(func.sum(Lessons.duration), 0),
                    func.count(Lessons.id),
                ).where(Lessons.course_id == course_id)
            )
        ).one()

        course.total_length_seconds = int(total_duration or 0)
        course.total_lectures = int(total_lectures or 0)
        course.structure_updated_at = get_now()
        await self.db.flush()
        return course
