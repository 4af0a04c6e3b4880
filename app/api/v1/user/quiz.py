import uuid

from fastapi import APIRouter, Depends

from app.core.deps import AuthorizationService
from app.schemas.user.quiz import SubmitQuizAttempt
from app.services.user.quiz import QuizService

router = APIRouter(prefix="/quiz", tags=["User Quiz"])


@router.get("/{course_id}/lessons/{lesson_id}")
async def get_quiz(
    course_id: uuid.UUID,
    lesson_id: uuid.UUID,
    quiz_service: QuizService = Depends(QuizService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await quiz_service.get_quiz_for_learner_async(course_id, lesson_id, user)


@router.post("/{course_id}/attempts")
async def submit_quiz(
    course_id: uuid.UUID,
    schema: SubmitQuizAttempt,
    quiz_service: QuizService = Depends(QuizService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await quiz_service.submit_quiz_async(course_id, schema, user)


@router.get("/{course_id}/attempts")
async def list_course_attempts(
    course_id: uuid.UUID,
    quiz_service: QuizService = Depends(QuizService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await quiz_service.list_attempts_async(course_id, user)


@router.get("/{course_id}/attempts/{lesson_id}")
async def list_lesson_attempts(
    course_id: uuid.UUID,
    lesson_id: uuid.UUID,
    quiz_service: QuizService = Depends(QuizService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await quiz_service.list_attempts_async(course_id, user, lesson_id)
