import uuid

from fastapi import APIRouter, Body, Depends, status

from app.core.deps import AuthorizationService
from app.schemas.lecturer.courses import CreateCourse, UpdateCertificateConfig
from app.services.lecturer.course import CourseService
from app.services.user.quiz import QuizService

router = APIRouter(prefix="/lecturer/courses", tags=["Lecturer Course"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    schema: CreateCourse = Body(),
    course_service: CourseService = Depends(CourseService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    lecturer = await authorization.require_role(["LECTURER"])
    return await course_service.create_course_async(lecturer, schema)


@router.get("/{course_id}/structure")
async def get_course_structure(
    course_id: uuid.UUID,
    course_service: CourseService = Depends(CourseService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    lecturer = await authorization.require_role(["LECTURER"])
    return await course_service.get_course_structure_async(course_id, lecturer)


@router.put("/{course_id}/certificate")
async def update_certificate_config(
    course_id: uuid.UUID,
    schema: UpdateCertificateConfig = Body(),
    course_service: CourseService = Depends(CourseService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    lecturer = await authorization.require_role(["LECTURER"])
    return await course_service.update_certificate_config_async(course_id, lecturer, schema)


@router.get("/{course_id}/quiz-stats/{lesson_id}")
async def get_quiz_stats(
    course_id: uuid.UUID,
    lesson_id: uuid.UUID,
    quiz_service: QuizService = Depends(QuizService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    lecturer = await authorization.require_role(["LECTURER", "ADMIN"])
    return await quiz_service.get_quiz_stats_async(course_id, lesson_id, lecturer)
