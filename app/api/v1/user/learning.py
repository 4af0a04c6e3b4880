import uuid

from fastapi import APIRouter, Depends

from app.core.deps import AuthorizationService
from app.schemas.user.learning import LessonRef
from app.services.user.learning import LearningService

router = APIRouter(prefix="/learning", tags=["User Learning"])


@router.get("/progress/overview")
async def get_progress_overview(
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.get_overview_async(user)


@router.get("/{course_id}/progress")
async def get_course_progress(
    course_id: uuid.UUID,
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.get_progress_async(course_id, user)


@router.post("/{course_id}/lessons/complete")
async def complete_lesson(
    course_id: uuid.UUID,
    schema: LessonRef,
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.complete_lesson_async(course_id, schema, user)


@router.post("/{course_id}/lessons/uncomplete")
async def uncomplete_lesson(
    course_id: uuid.UUID,
    schema: LessonRef,
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.uncomplete_lesson_async(course_id, schema, user)


@router.put("/{course_id}/lessons/access")
async def record_lesson_access(
    course_id: uuid.UUID,
    schema: LessonRef,
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.record_access_async(course_id, schema, user)


@router.post("/{course_id}/progress/reset")
async def reset_progress(
    course_id: uuid.UUID,
    learning_service: LearningService = Depends(LearningService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await learning_service.reset_progress_async(course_id, user)
