# app/services/lecturer/course.py
import uuid

from fastapi import Depends, HTTPException
from loguru import logger
from slugify import slugify
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.database import (
    Courses,
    CourseSections,
    LessonQuizOptions,
    LessonQuizzes,
    Lessons,
    LessonVideos,
    User,
)
from app.db.sesson import get_session
from app.libs.formats.datetime import now as get_now
from app.schemas.lecturer.courses import (
    CourseCreated,
    CreateCourse,
    CreateLecture,
    UpdateCertificateConfig,
)
from app.schemas.shares.course_structure import CertificateConfig, CourseStructure
from app.services.shares.course_structure import (
    CourseStructureService,
    certificate_config_from,
)

# field schema → cột trên bảng courses
CERTIFICATE_COLUMNS = {
    "enabled": "certificate_enabled",
    "organization_name": "certificate_organization_name",
    "logo_url": "certificate_logo_url",
    "signed_by_name": "certificate_signed_by_name",
    "signed_by_title": "certificate_signed_by_title",
    "signature_url": "certificate_signature_url",
    "template": "certificate_template",
    "completion_requirement": "certificate_completion_requirement",
    "passing_score": "certificate_passing_score",
}


class CourseService:
    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db
        self.structure = CourseStructureService(db)

    async def _get_owned_course(self, course_id: uuid.UUID, lecturer: User) -> Courses:
        course = await self.db.scalar(
            select(Courses).where(
                Courses.id == course_id, Courses.instructor_id == lecturer.id
            )
        )
        if not course:
            raise HTTPException(
                404, "❌ Không tìm thấy khóa học hoặc không có quyền truy cập"
            )
        return course

    def _add_lecture(
        self,
        course_id: uuid.UUID,
        section_id: uuid.UUID,
        position: int,
        lecture: CreateLecture,
    ) -> None:
        lesson_id = uuid.uuid4()
        quiz = lecture.quiz if lecture.lesson_type == "quiz" else None
        self.db.add(
            Lessons(
                id=lesson_id,
                course_id=course_id,
                section_id=section_id,
                title=lecture.title.strip(),
                description=lecture.description,
                lesson_type=lecture.lesson_type,
                position=position,
                duration=lecture.duration,
                is_preview=lecture.is_preview,
                note_content=lecture.note_content if lecture.lesson_type == "note" else None,
                quiz_is_graded=quiz.is_graded if quiz else False,
                quiz_passing_score=quiz.passing_score if quiz else 70,
                quiz_time_limit=quiz.time_limit if quiz else None,
                quiz_instructions=quiz.instructions if quiz else None,
            )
        )

        if lecture.lesson_type == "video" and lecture.video:
            self.db.add(LessonVideos(lesson_id=lesson_id, **lecture.video.model_dump()))

        if quiz:
            for q_pos, question in enumerate(quiz.questions, start=1):
                quiz_id = uuid.uuid4()
                self.db.add(
                    LessonQuizzes(
                        id=quiz_id,
                        lesson_id=lesson_id,
                        question=question.question,
                        question_type=question.question_type,
                        position=q_pos,
                        explanation=question.explanation,
                    )
                )
                correct = set(question.correct_answers)
                for o_idx, option in enumerate(question.options):
                    self.db.add(
                        LessonQuizOptions(
                            quiz_id=quiz_id,
                            text_=option,
                            position=o_idx + 1,
                            is_correct=o_idx in correct,
                        )
                    )

    # ======================================================
    # 🧩 Tạo khóa học kèm chương + bài học
    # ======================================================
    async def create_course_async(self, lecturer: User, schema: CreateCourse) -> CourseCreated:
        """
        ✅ Tạo khóa học mới:
        - Slug không trùng
        - Chương / bài học đánh số liên tục 1..N theo thứ tự gửi lên
        - Tính sẵn tổng thời lượng + số bài
        """
        try:
            # 1️⃣ Slug
            base_slug = slugify(schema.title)
            slug = base_slug
            i = 1
            while await self.db.scalar(select(Courses.id).where(Courses.slug == slug)):
                slug = f"{base_slug}-{i}"
                i += 1

            # 2️⃣ Khóa học + cấu hình chứng chỉ
            course_id = uuid.uuid4()
            course = Courses(
                id=course_id,
                instructor_id=lecturer.id,
                title=schema.title.strip(),
                slug=slug,
                description=schema.description,
                tags=list(schema.tags),
                is_published=schema.is_published,
            )
            if schema.certificate:
                for field, value in schema.certificate.model_dump(exclude_none=True).items():
                    setattr(course, CERTIFICATE_COLUMNS[field], value)
            self.db.add(course)

            # 3️⃣ Chương + bài học
            for s_pos, section in enumerate(schema.sections, start=1):
                section_id = uuid.uuid4()
                self.db.add(
                    CourseSections(
                        id=section_id,
                        course_id=course_id,
                        title=section.title.strip(),
                        description=section.description,
                        position=s_pos,
                    )
                )
                for l_pos, lecture in enumerate(section.lectures, start=1):
                    self._add_lecture(course_id, section_id, l_pos, lecture)
            await self.db.flush()

            # 4️⃣ Tổng thời lượng / số bài
            course = await self.structure.recalculate_course_totals_async(course_id)
            await self.db.commit()

            logger.info(f"📘 Giảng viên {lecturer.id} tạo khóa học {course_id} ({slug})")
            return CourseCreated(
                course_id=course_id,
                slug=slug,
                total_length_seconds=course.total_length_seconds,
                total_lectures=course.total_lectures,
            )

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi tạo khóa học: {e}")
            raise HTTPException(500, f"❌ Lỗi khi tạo khóa học: {e}")

    async def update_certificate_config_async(
        self, course_id: uuid.UUID, lecturer: User, schema: UpdateCertificateConfig
    ) -> CertificateConfig:
        """Đổi cấu hình chứng chỉ; chứng chỉ đã cấp giữ nguyên snapshot cũ."""
        try:
            course = await self._get_owned_course(course_id, lecturer)
            for field, value in schema.model_dump(exclude_none=True).items():
                setattr(course, CERTIFICATE_COLUMNS[field], value)
            course.updated_at = get_now()
            await self.db.commit()
            return certificate_config_from(course)

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi cập nhật cấu hình chứng chỉ: {e}")
            raise HTTPException(500, f"❌ Lỗi khi cập nhật cấu hình chứng chỉ: {e}")

    async def get_course_structure_async(
        self, course_id: uuid.UUID, lecturer: User
    ) -> CourseStructure:
        """Cấu trúc đầy đủ (kể cả đáp án đúng), chỉ cho giảng viên sở hữu."""
        await self._get_owned_course(course_id, lecturer)
        return await self.structure.get_course_structure_async(course_id)
