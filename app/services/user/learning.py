import uuid
from collections import defaultdict
from datetime import datetime
from typing import Collection, Dict

from fastapi import Depends, HTTPException
from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.db.models.database import (
    Certificates,
    CourseEnrollments,
    Courses,
    LessonProgress,
    User,
)
from app.db.sesson import get_session
from app.libs.formats.datetime import now as get_now
from app.libs.formats.number import round_half_up
from app.schemas.shares.course_structure import CourseStructure
from app.schemas.user.learning import (
    CompletedLesson,
    CourseProgress,
    LessonRef,
    ProgressOverview,
)
from app.services.shares.concurrency import run_with_retry
from app.services.shares.course_structure import CourseStructureService, resolve_lesson
from app.services.shares.progress_calculator import (
    count_completed,
    course_percentage,
    section_breakdown,
)


def apply_percentage(
    enrollment: CourseEnrollments,
    structure: CourseStructure,
    completed_ids: Collection[uuid.UUID],
    now: datetime,
) -> int:
    """Tính lại % của 1 enrollment; lần đầu chạm 100% thì ghi completed_at."""
    percent = course_percentage(structure, completed_ids)
    enrollment.overall_progress = percent
    enrollment.progress_synced_at = now
    if percent >= 100 and enrollment.completed_at is None:
        enrollment.completed_at = now
    return percent


class LearningService:
    """Service quản lý tiến độ học tập của người dùng."""

    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db
        self.structure = CourseStructureService(db)

    # ==============================
    # 🧩 HELPERS
    # ==============================

    async def get_active_enrollment_async(
        self, user_id: uuid.UUID, course_id: uuid.UUID, for_update: bool = False
    ) -> CourseEnrollments | None:
        stmt = select(CourseEnrollments).where(
            CourseEnrollments.user_id == user_id,
            CourseEnrollments.course_id == course_id,
            CourseEnrollments.is_active.is_(True),
        )
        if for_update:
            # ✅ khóa dòng enrollment, request khác cùng (user, course) phải chờ
            stmt = stmt.with_for_update()
        return await self.db.scalar(stmt.execution_options(populate_existing=True))

    async def _require_enrollment(
        self, user_id: uuid.UUID, course_id: uuid.UUID, for_update: bool = False
    ) -> CourseEnrollments:
        enrollment = await self.get_active_enrollment_async(user_id, course_id, for_update)
        if enrollment is None:
            raise NotFoundError("Bạn chưa đăng ký khóa học này")
        return enrollment

    async def _completion_rows(
        self, enrollment_id: uuid.UUID
    ) -> Dict[uuid.UUID, LessonProgress]:
        rows = (
            await self.db.execute(
                select(LessonProgress)
                .where(LessonProgress.enrollment_id == enrollment_id)
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
        return {r.lesson_id: r for r in rows}

    @staticmethod
    def _build_progress(
        structure: CourseStructure,
        enrollment: CourseEnrollments,
        rows: Dict[uuid.UUID, LessonProgress],
    ) -> CourseProgress:
        completed = []
        for lesson_id, row in rows.items():
            position = structure.locate(lesson_id)
            if position is None:
                continue  # bài đã bị xóa khỏi khóa học
            completed.append(
                CompletedLesson(
                    lesson_id=lesson_id,
                    section_index=position[0],
                    lecture_index=position[1],
                    completed_at=row.completed_at,
                    time_spent=row.time_spent,
                )
            )
        completed.sort(key=lambda c: (c.section_index, c.lecture_index))

        ids = rows.keys()
        return CourseProgress(
            course_id=structure.course_id,
            overall_progress=course_percentage(structure, ids),
            total_lessons=len(structure.lectures),
            completed_lessons=count_completed(structure, ids),
            total_time_spent=enrollment.total_time_spent,
            completed_at=enrollment.completed_at,
            last_accessed_lesson_id=enrollment.last_accessed_lesson_id,
            last_accessed_at=enrollment.last_accessed_at,
            completed=completed,
            sections=section_breakdown(structure, ids),
        )

    # ==============================
    # 🧩 PROGRESS MUTATIONS
    # ==============================

    async def complete_in_transaction(
        self,
        user_id: uuid.UUID,
        structure: CourseStructure,
        lesson_id: uuid.UUID,
        time_spent: int = 0,
    ) -> CourseProgress:
        """Phần ghi của complete, chạy bên trong giao dịch của người gọi (chưa commit)."""
        course_id = structure.course_id

        # 2️⃣ Khóa enrollment + đọc lại các bài đã hoàn thành
        enrollment = await self._require_enrollment(user_id, course_id, True)
        rows = await self._completion_rows(enrollment.id)
        now = get_now()

        # 3️⃣ Ghi nhận hoàn thành
        row = rows.get(lesson_id)
        if row is None:
            row = LessonProgress(
                enrollment_id=enrollment.id,
                user_id=user_id,
                course_id=course_id,
                lesson_id=lesson_id,
                completed_at=now,
                time_spent=time_spent,
            )
            self.db.add(row)
            rows[lesson_id] = row
        elif time_spent:
            row.time_spent = (row.time_spent or 0) + time_spent

        # 4️⃣ Truy cập gần nhất + thời gian học
        enrollment.last_accessed_lesson_id = lesson_id
        enrollment.last_accessed_at = now
        enrollment.total_time_spent = (enrollment.total_time_spent or 0) + time_spent
        enrollment.last_progress_at = now

        # 5️⃣ Tính lại %
        was_completed = enrollment.completed_at is not None
        apply_percentage(enrollment, structure, rows.keys(), now)
        await self.db.flush()

        if not was_completed and enrollment.completed_at is not None:
            logger.info(f"🎉 User {user_id} hoàn thành khóa học {course_id}")
        return self._build_progress(structure, enrollment, rows)

    async def complete_lesson_async(
        self, course_id: uuid.UUID, ref: LessonRef, user: User
    ) -> CourseProgress:
        """
        ✅ Đánh dấu hoàn thành 1 bài học:
        - Idempotent: bài đã hoàn thành thì chỉ cộng thêm time_spent.
        - Luôn cập nhật bài truy cập gần nhất + tổng thời gian học.
        - Tính lại % và lưu cùng 1 giao dịch.
        - Lần đầu đạt 100% → ghi completed_at (không tự cấp chứng chỉ).
        """
        user_id = user.id
        try:
            # 1️⃣ Cấu trúc khóa học + bài học (lỗi input → dừng trước khi ghi)
            structure = await self.structure.get_course_structure_async(course_id)
            lecture = resolve_lesson(structure, ref)

            return await run_with_retry(
                self.db,
                lambda: self.complete_in_transaction(
                    user_id, structure, lecture.id, ref.time_spent or 0
                ),
                "complete_lesson",
            )

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi hoàn thành bài học: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi hoàn thành bài học: {e}")

    async def uncomplete_lesson_async(
        self, course_id: uuid.UUID, ref: LessonRef, user: User
    ) -> CourseProgress:
        """
        ✅ Bỏ đánh dấu hoàn thành (ngược với complete):
        - Xóa bản ghi nếu có, không có thì bỏ qua.
        - Trừ time_spent nếu được gửi lên (không âm).
        - Dưới 100% thì xóa completed_at.
        """
        user_id = user.id
        try:
            structure = await self.structure.get_course_structure_async(course_id)
            lecture = resolve_lesson(structure, ref)
            time_spent = ref.time_spent or 0

            async def _uncomplete() -> CourseProgress:
                enrollment = await self._require_enrollment(user_id, course_id, True)
                rows = await self._completion_rows(enrollment.id)
                now = get_now()

                row = rows.pop(lecture.id, None)
                if row is not None:
                    await self.db.delete(row)

                if time_spent:
                    enrollment.total_time_spent = max(
                        0, (enrollment.total_time_spent or 0) - time_spent
                    )
                enrollment.last_progress_at = now

                percent = apply_percentage(enrollment, structure, rows.keys(), now)
                if enrollment.completed_at is not None and percent < 100:
                    enrollment.completed_at = None
                await self.db.flush()
                return self._build_progress(structure, enrollment, rows)

            return await run_with_retry(self.db, _uncomplete, "uncomplete_lesson")

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi bỏ hoàn thành bài học: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi bỏ hoàn thành bài học: {e}")

    async def record_access_async(
        self, course_id: uuid.UUID, ref: LessonRef, user: User
    ) -> CourseProgress:
        """Cập nhật bài đang học + cộng thời gian, không đổi trạng thái hoàn thành."""
        user_id = user.id
        try:
            structure = await self.structure.get_course_structure_async(course_id)
            lecture = resolve_lesson(structure, ref)
            time_spent = ref.time_spent or 0

            async def _access() -> CourseProgress:
                enrollment = await self._require_enrollment(user_id, course_id, True)
                rows = await self._completion_rows(enrollment.id)
                now = get_now()

                enrollment.last_accessed_lesson_id = lecture.id
                enrollment.last_accessed_at = now
                enrollment.total_time_spent = (enrollment.total_time_spent or 0) + time_spent
                enrollment.last_progress_at = now
                await self.db.flush()
                return self._build_progress(structure, enrollment, rows)

            return await run_with_retry(self.db, _access, "record_access")

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi cập nhật bài học: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi cập nhật bài học: {e}")

    async def reset_progress_async(self, course_id: uuid.UUID, user: User) -> CourseProgress:
        """Xóa toàn bộ tiến độ (học viên chủ động). Chứng chỉ đã cấp vẫn giữ nguyên."""
        user_id = user.id
        try:
            structure = await self.structure.get_course_structure_async(course_id)

            async def _reset() -> CourseProgress:
                enrollment = await self._require_enrollment(user_id, course_id, True)
                rows = await self._completion_rows(enrollment.id)
                for row in rows.values():
                    await self.db.delete(row)

                enrollment.overall_progress = 0
                enrollment.total_time_spent = 0
                enrollment.last_accessed_lesson_id = None
                enrollment.last_accessed_at = None
                enrollment.completed_at = None
                enrollment.last_progress_at = None
                enrollment.progress_synced_at = get_now()
                await self.db.flush()
                return self._build_progress(structure, enrollment, {})

            result = await run_with_retry(self.db, _reset, "reset_progress")
            logger.info(f"🔄 User {user_id} reset tiến độ khóa học {course_id}")
            return result

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi reset tiến độ: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi reset tiến độ: {e}")

    # ==============================
    # 🧩 READ
    # ==============================

    async def get_progress_async(self, course_id: uuid.UUID, user: User) -> CourseProgress:
        """Tiến độ hiện tại + chi tiết từng chương. Chỉ đọc."""
        try:
            structure = await self.structure.get_course_structure_async(course_id)
            enrollment = await self._require_enrollment(user.id, course_id)
            rows = await self._completion_rows(enrollment.id)
            return self._build_progress(structure, enrollment, rows)
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy tiến độ: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy tiến độ: {e}")

    async def get_overview_async(self, user: User) -> ProgressOverview:
        try:
            enrollments = (
                await self.db.execute(
                    select(CourseEnrollments).where(
                        CourseEnrollments.user_id == user.id,
                        CourseEnrollments.is_active.is_(True),
                    )
                )
            ).scalars().all()

            total_certificates = await self.db.scalar(
                select(func.count(Certificates.id)).where(Certificates.user_id == user.id)
            )

            total = len(enrollments)
            return ProgressOverview(
                total_enrolled=total,
                total_completed=sum(1 for e in enrollments if e.completed_at is not None),
                total_certificates=total_certificates or 0,
                total_watch_time=sum(e.total_time_spent or 0 for e in enrollments),
                overall_progress=round_half_up(
                    sum(e.overall_progress or 0 for e in enrollments) / total
                )
                if total
                else 0,
            )
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy tổng quan: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy tổng quan: {e}")

    # ==============================
    # 🧩 BACKGROUND RESYNC
    # ==============================

    async def resync_stale_progress_async(self) -> int:
        """
        ✅ Tính lại % cho các enrollment có cấu trúc khóa học đổi sau lần sync cuối.
        - completed_at chỉ được ghi thêm, không bao giờ bị xóa ở đây.
        - Xung đột ghi ở 1 khóa học → bỏ qua, lần chạy sau xử lý tiếp.
        """
        stmt = (
            select(CourseEnrollments)
            .join(Courses, Courses.id == CourseEnrollments.course_id)
            .where(
                CourseEnrollments.is_active.is_(True),
                or_(
                    CourseEnrollments.progress_synced_at.is_(None),
                    CourseEnrollments.progress_synced_at < Courses.structure_updated_at,
                ),
            )
        )
        stale = (await self.db.execute(stmt)).scalars().all()

        by_course: Dict[uuid.UUID, list] = defaultdict(list)
        for enrollment in stale:
            by_course[enrollment.course_id].append(enrollment.id)

        synced = 0
        for course_id, enrollment_ids in by_course.items():
            try:
                structure = await self.structure.get_course_structure_async(course_id)
                for enrollment_id in enrollment_ids:
                    enrollment = await self.db.get(CourseEnrollments, enrollment_id)
                    if enrollment is None:
                        continue
                    rows = await self._completion_rows(enrollment_id)
                    apply_percentage(enrollment, structure, rows.keys(), get_now())
                await self.db.commit()
                synced += len(enrollment_ids)
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.warning(f"⚠ Resync khóa học {course_id} thất bại, để lần sau: {e}")
        return synced
