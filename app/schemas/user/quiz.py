import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enum import QuestionType


class SubmitQuizAttempt(BaseModel):
    lesson_id: uuid.UUID
    # mỗi câu hỏi 1 mảng chỉ số đáp án đã chọn, cùng thứ tự câu hỏi
    answers: List[List[int]]
    time_taken: int = Field(default=0, ge=0)


class QuestionResult(BaseModel):
    question_index: int
    selected_answers: List[int]
    is_correct: bool


class QuizGradeResult(BaseModel):
    results: List[QuestionResult]
    score: int
    total_questions: int
    correct_answers: int
    is_graded: bool
    passed: Optional[bool] = None
    passing_score: Optional[int] = None


class QuizAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    lesson_id: uuid.UUID
    lesson_title: str
    answers: List[QuestionResult]
    score: int
    total_questions: int
    correct_answers: int
    is_graded: bool
    passed: Optional[bool] = None
    passing_score: Optional[int] = None
    time_taken: int
    completed_at: datetime
    attempt_number: Optional[int] = None


class SubmitQuizResponse(BaseModel):
    attempt: QuizAttemptResponse
    lesson_completed: bool
    overall_progress: int


class QuizAttemptList(BaseModel):
    attempts: List[QuizAttemptResponse]
    total_attempts: int
    latest_attempt: Optional[QuizAttemptResponse] = None


class QuizStats(BaseModel):
    lesson_id: uuid.UUID
    total_attempts: int
    unique_users: int
    average_score: int
    pass_rate: int


class LearnerQuizQuestion(BaseModel):
    question_index: int
    question: str
    question_type: QuestionType
    options: List[str]


class LearnerQuiz(BaseModel):
    """Đề quiz cho học viên, không kèm đáp án đúng."""

    lesson_id: uuid.UUID
    title: str
    is_graded: bool
    passing_score: int
    time_limit: Optional[int] = None
    instructions: Optional[str] = None
    questions: List[LearnerQuizQuestion]
