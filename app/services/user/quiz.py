import uuid
from typing import Optional

from fastapi import Depends, HTTPException
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import AuthorizationService
from app.core.enum import LectureType, RoleName
from app.core.exceptions import InvalidInputError, NotFoundError
from app.core.settings import settings
from app.db.models.database import QuizAttempts, User
from app.db.sesson import get_session
from app.libs.formats.datetime import now as get_now
from app.libs.formats.number import round_half_up
from app.schemas.shares.course_structure import CourseStructure, LectureNode
from app.schemas.user.quiz import (
    LearnerQuiz,
    LearnerQuizQuestion,
    QuizAttemptList,
    QuizAttemptResponse,
    QuizStats,
    SubmitQuizAttempt,
    SubmitQuizResponse,
)
from app.services.shares.concurrency import run_with_retry
from app.services.shares.course_structure import CourseStructureService
from app.services.shares.quiz_grading import grade_quiz
from app.services.user.learning import LearningService


def _quiz_lecture(structure: CourseStructure, lesson_id: uuid.UUID) -> LectureNode:
    lecture = structure.find_lecture(lesson_id)
    if lecture is None:
        raise NotFoundError("Bài quiz không tồn tại")
    if lecture.lecture_type != LectureType.QUIZ or lecture.quiz is None:
        raise InvalidInputError("Bài học này không phải bài quiz")
    return lecture


class QuizService:
    """Làm bài quiz, lưu lượt làm và thống kê cho giảng viên."""

    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db
        self.structure = CourseStructureService(db)
        self.learning = LearningService(db)

    async def get_quiz_for_learner_async(
        self, course_id: uuid.UUID, lesson_id: uuid.UUID, user: User
    ) -> LearnerQuiz:
        try:
            structure = await self.structure.get_course_structure_async(course_id)
            lecture = _quiz_lecture(structure, lesson_id)
            if await self.learning.get_active_enrollment_async(user.id, course_id) is None:
                raise NotFoundError("Bạn chưa đăng ký khóa học này")

            quiz = lecture.quiz
            return LearnerQuiz(
                lesson_id=lecture.id,
                title=lecture.title,
                is_graded=quiz.is_graded,
                passing_score=quiz.passing_score,
                time_limit=quiz.time_limit,
                instructions=quiz.instructions,
                questions=[
                    LearnerQuizQuestion(
                        question_index=idx,
                        question=q.question,
                        question_type=q.question_type,
                        options=list(q.options),
                    )
                    for idx, q in enumerate(quiz.questions)
                ],
            )
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy bài quiz: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy bài quiz: {e}")

    async def submit_quiz_async(
        self, course_id: uuid.UUID, data: SubmitQuizAttempt, user: User
    ) -> SubmitQuizResponse:
        """
        ✅ Nộp bài quiz:
        - Kiểm tra đăng ký, bài quiz, số câu trả lời (trước khi ghi).
        - Chấm điểm, lưu 1 lượt làm mới (không sửa lượt cũ).
        - Đạt (hoặc quiz không tính điểm) → đánh dấu hoàn thành bài quiz, cùng giao dịch.
        """
        user_id = user.id
        try:
            # 1️⃣ Bài quiz + đăng ký
            structure = await self.structure.get_course_structure_async(course_id)
            lecture = _quiz_lecture(structure, data.lesson_id)
            if await self.learning.get_active_enrollment_async(user_id, course_id) is None:
                raise NotFoundError("Bạn chưa đăng ký khóa học này")

            # 2️⃣ Chấm điểm (hàm thuần)
            result = grade_quiz(lecture.quiz, data.answers)
            should_complete = settings.QUIZ_COMPLETES_LECTURE and result.passed is not False

            async def _submit() -> SubmitQuizResponse:
                # 3️⃣ Lưu lượt làm
                attempt = QuizAttempts(
                    user_id=user_id,
                    course_id=course_id,
                    lesson_id=lecture.id,
                    lesson_title=lecture.title,
                    answers=[r.model_dump() for r in result.results],
                    score=result.score,
                    total_questions=result.total_questions,
                    correct_answers=result.correct_answers,
                    is_graded=result.is_graded,
                    passed=result.passed,
                    passing_score=result.passing_score,
                    time_taken=data.time_taken,
                    completed_at=get_now(),
                )
                self.db.add(attempt)

                # 4️⃣ Hoàn thành bài quiz
                if should_complete:
                    progress = await self.learning.complete_in_transaction(
                        user_id, structure, lecture.id, data.time_taken
                    )
                    overall = progress.overall_progress
                else:
                    await self.db.flush()
                    enrollment = await self.learning.get_active_enrollment_async(
                        user_id, course_id
                    )
                    overall = enrollment.overall_progress if enrollment else 0

                return SubmitQuizResponse(
                    attempt=QuizAttemptResponse.model_validate(attempt),
                    lesson_completed=should_complete,
                    overall_progress=overall,
                )

            response = await run_with_retry(self.db, _submit, "submit_quiz")
            logger.info(
                f"📝 User {user_id} nộp quiz {lecture.id}: {result.score} điểm (passed={result.passed})"
            )
            return response

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi nộp bài quiz: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi nộp bài quiz: {e}")

    async def list_attempts_async(
        self,
        course_id: uuid.UUID,
        user: User,
        lesson_id: Optional[uuid.UUID] = None,
    ) -> QuizAttemptList:
        """Các lượt làm, mới nhất trước; attempt_number đếm từ lượt đầu tiên = 1."""
        try:
            stmt = select(QuizAttempts).where(
                QuizAttempts.user_id == user.id,
                QuizAttempts.course_id == course_id,
            )
            if lesson_id is not None:
                stmt = stmt.where(QuizAttempts.lesson_id == lesson_id)
            attempts = (
                await self.db.execute(stmt.order_by(QuizAttempts.completed_at.desc()))
            ).scalars().all()

            total = len(attempts)
            items = [
                QuizAttemptResponse.model_validate(a).model_copy(
                    update={"attempt_number": total - idx}
                )
                for idx, a in enumerate(attempts)
            ]
            return QuizAttemptList(
                attempts=items,
                total_attempts=total,
                latest_attempt=items[0] if items else None,
            )
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy lịch sử làm quiz: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy lịch sử làm quiz: {e}")

    async def get_quiz_stats_async(
        self, course_id: uuid.UUID, lesson_id: uuid.UUID, user: User
    ) -> QuizStats:
        """Thống kê 1 bài quiz, chỉ giảng viên của khóa học (hoặc admin)."""
        try:
            course = await self.structure.get_course_async(course_id)
            roles = await AuthorizationService.get_list_role_in_user(self.db, user)
            if course.instructor_id != user.id and RoleName.ADMIN.value not in roles:
                raise HTTPException(status_code=403, detail="Permission denied")

            total, unique_users, avg_score = (
                await self.db.execute(
                    select(
                        func.count(QuizAttempts.id),
                        func.count(QuizAttempts.user_id.distinct()),
                        func.avg(QuizAttempts.score),
                    ).where(
                        QuizAttempts.course_id == course_id,
                        QuizAttempts.lesson_id == lesson_id,
                    )
                )
            ).one()

            graded, passed = (
                await self.db.execute(
                    select(
                        func.count(QuizAttempts.id),
                        func.count(QuizAttempts.id).filter(QuizAttempts.passed.is_(True)),
                    ).where(
                        QuizAttempts.course_id == course_id,
                        QuizAttempts.lesson_id == lesson_id,
                        QuizAttempts.is_graded.is_(True),
                    )
                )
            ).one()

            return QuizStats(
                lesson_id=lesson_id,
                total_attempts=total or 0,
                unique_users=unique_users or 0,
                average_score=round_half_up(float(avg_score)) if avg_score is not None else 0,
                pass_rate=round_half_up(passed / graded * 100) if graded else 0,
            )
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi thống kê quiz: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi thống kê quiz: {e}")
