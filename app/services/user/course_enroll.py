import uuid
from typing import Optional

from fastapi import Depends, HTTPException
from loguru import logger
from sqlalchemy import asc, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.db.models.database import CourseEnrollments, Courses, User
from app.db.sesson import get_session


class CourseEnrolls:
    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db

    async def get_enrollment_async(
        self, user_id: uuid.UUID, course_id: uuid.UUID
    ) -> Optional[CourseEnrollments]:
        return await self.db.scalar(
            select(CourseEnrollments).where(
                CourseEnrollments.user_id == user_id,
                CourseEnrollments.course_id == course_id,
            )
        )

    async def enroll_async(self, course_id: uuid.UUID, user: User):
        """
        ✅ Đăng ký khóa học:
        - Chưa có → tạo mới.
        - Đã hủy (is_active = false) → kích hoạt lại, giữ nguyên tiến độ cũ.
        - Đang hoạt động → trả về như cũ.
        """
        user_id = user.id
        try:
            course = await self.db.get(Courses, course_id)
            if course is None:
                raise NotFoundError("Khóa học không tồn tại")

            enrollment = await self.get_enrollment_async(user_id, course_id)
            if enrollment is None:
                enrollment = CourseEnrollments(user_id=user_id, course_id=course_id)
                self.db.add(enrollment)
                logger.info(f"📚 User {user_id} đăng ký khóa học {course_id}")
            elif not enrollment.is_active:
                enrollment.is_active = True
                logger.info(f"📚 User {user_id} kích hoạt lại khóa học {course_id}")

            await self.db.commit()
            return {
                "enrollment_id": enrollment.id,
                "course_id": course_id,
                "enrolled_at": enrollment.enrolled_at,
                "is_active": enrollment.is_active,
                "overall_progress": enrollment.overall_progress,
            }

        except HTTPException:
            raise
        except IntegrityError:
            # request song song đã tạo trước
            await self.db.rollback()
            enrollment = await self.get_enrollment_async(user_id, course_id)
            return {
                "enrollment_id": enrollment.id,
                "course_id": course_id,
                "enrolled_at": enrollment.enrolled_at,
                "is_active": enrollment.is_active,
                "overall_progress": enrollment.overall_progress,
            }
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi đăng ký khóa học: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi đăng ký khóa học: {e}")

    async def unenroll_async(self, course_id: uuid.UUID, user: User):
        """Hủy mềm: is_active = false, không xóa tiến độ."""
        try:
            enrollment = await self.get_enrollment_async(user.id, course_id)
            if enrollment is None or not enrollment.is_active:
                raise NotFoundError("Bạn chưa đăng ký khóa học này")

            enrollment.is_active = False
            await self.db.commit()
            return {"message": "Đã hủy đăng ký khóa học", "course_id": course_id}

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi hủy đăng ký: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi hủy đăng ký: {e}")

    async def get_user_courses_async(
        self,
        user_id: uuid.UUID,
        page: int = 1,
        size: int = 10,
        sort_by: str = "enrolled_at",
        order: str = "desc",
    ):
        # ánh xạ field hợp lệ để tránh SQL injection
        valid_sort_fields = {
            "title": Courses.title,
            "enrolled_at": CourseEnrollments.enrolled_at,
            "progress": CourseEnrollments.overall_progress,
            "last_accessed_at": CourseEnrollments.last_accessed_at,
        }
        sort_field = valid_sort_fields.get(sort_by, CourseEnrollments.enrolled_at)
        sort_order = desc if order.lower() == "desc" else asc

        # 🧮 Query chính
        query = (
            select(
                Courses.id,
                Courses.title,
                Courses.slug,
                Courses.total_length_seconds,
                Courses.total_lectures,
                CourseEnrollments.enrolled_at,
                CourseEnrollments.overall_progress.label("progress_percent"),
                CourseEnrollments.completed_at,
                CourseEnrollments.last_accessed_lesson_id,
                CourseEnrollments.last_accessed_at,
                CourseEnrollments.has_certificate,
            )
            .join(CourseEnrollments, CourseEnrollments.course_id == Courses.id)
            .where(
                CourseEnrollments.user_id == user_id,
                CourseEnrollments.is_active.is_(True),
            )
            .order_by(sort_order(sort_field))
            .offset((page - 1) * size)
            .limit(size)
        )

        # 📊 Tổng số bản ghi
        total_query = (
            select(func.count())
            .select_from(CourseEnrollments)
            .where(
                CourseEnrollments.user_id == user_id,
                CourseEnrollments.is_active.is_(True),
            )
        )

        result = await self.db.execute(query)
        total = await self.db.scalar(total_query)
        data = [dict(row) for row in result.mappings().all()]

        return {
            "page": page,
            "size": size,
            "total": total,
            "sort_by": sort_by,
            "order": order,
            "courses": data,
        }
