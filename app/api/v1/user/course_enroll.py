import uuid

from fastapi import APIRouter, Depends, Query, status

from app.core.deps import AuthorizationService
from app.db.models.database import User
from app.services.user.course_enroll import CourseEnrolls

router = APIRouter(prefix="/enrollments", tags=["User Course Enrollments"])


@router.get("/my-courses")
async def get_my_courses(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    sort_by: str = Query(
        "enrolled_at", description="enrolled_at, title, progress, last_accessed_at"
    ),
    order: str = Query("desc", description="asc hoặc desc"),
    authorization_service: AuthorizationService = Depends(AuthorizationService),
    enroll_service: CourseEnrolls = Depends(CourseEnrolls),
):
    user: User = await authorization_service.get_current_user()
    return await enroll_service.get_user_courses_async(user.id, page, size, sort_by, order)


@router.post("/{course_id}", status_code=status.HTTP_201_CREATED)
async def enroll_course(
    course_id: uuid.UUID,
    authorization_service: AuthorizationService = Depends(AuthorizationService),
    enroll_service: CourseEnrolls = Depends(CourseEnrolls),
):
    user: User = await authorization_service.get_current_user()
    return await enroll_service.enroll_async(course_id, user)


@router.delete("/{course_id}")
async def unenroll_course(
    course_id: uuid.UUID,
    authorization_service: AuthorizationService = Depends(AuthorizationService),
    enroll_service: CourseEnrolls = Depends(CourseEnrolls),
):
    user: User = await authorization_service.get_current_user()
    return await enroll_service.unenroll_async(course_id, user)
