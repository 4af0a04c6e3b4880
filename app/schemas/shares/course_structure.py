import uuid
from typing import Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enum import CertificateTemplate, LectureType, QuestionType


class QuizQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    question: str
    question_type: QuestionType = QuestionType.SINGLE
    options: List[str] = Field(default_factory=list)
    # chỉ số (0-based) các đáp án đúng trong options
    correct_answers: List[int] = Field(default_factory=list)
    explanation: Optional[str] = None


class QuizDefinition(BaseModel):
    """Dạng chuẩn duy nhất của một bài quiz bên trong hệ thống."""

    model_config = ConfigDict(frozen=True)

    is_graded: bool = False
    passing_score: int = Field(default=70, ge=0, le=100)
    time_limit: Optional[int] = None
    instructions: Optional[str] = None
    questions: List[QuizQuestion] = Field(default_factory=list)


class LectureNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    section_id: uuid.UUID
    title: str
    lecture_type: LectureType
    position: int
    duration: int = 0
    quiz: Optional[QuizDefinition] = None


class SectionNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    title: str
    position: int
    lectures: List[LectureNode] = Field(default_factory=list)


class CourseStructure(BaseModel):
    """Cây section → lecture đã sắp xếp, chụp lại 1 lần cho mỗi thao tác."""

    model_config = ConfigDict(frozen=True)

    course_id: uuid.UUID
    title: str
    instructor_id: uuid.UUID
    sections: List[SectionNode] = Field(default_factory=list)

    def iter_lectures(self) -> Iterator[LectureNode]:
        for section in self.sections:
            yield from section.lectures

    @property
    def lectures(self) -> List[LectureNode]:
        return list(self.iter_lectures())

    @property
    def total_duration(self) -> int:
        return sum(max(lecture.duration, 0) for lecture in self.iter_lectures())

    @property
    def has_graded_quiz(self) -> bool:
        return any(
            lecture.lecture_type == LectureType.QUIZ
            and lecture.quiz is not None
            and lecture.quiz.is_graded
            for lecture in self.iter_lectures()
        )

    def find_lecture(self, lecture_id: uuid.UUID) -> Optional[LectureNode]:
        return next((l for l in self.iter_lectures() if l.id == lecture_id), None)

    def locate(self, lecture_id: uuid.UUID) -> Optional[tuple[int, int]]:
        """(section_index, lecture_index) 0-based của 1 lecture, dùng cho API cũ."""
        for s_idx, section in enumerate(self.sections):
            for l_idx, lecture in enumerate(section.lectures):
                if lecture.id == lecture_id:
                    return s_idx, l_idx
        return None


class CertificateConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    completion_requirement: int = Field(default=100, ge=50, le=100)
    passing_score: int = Field(default=70, ge=0, le=100)
    organization_name: Optional[str] = None
    logo_url: Optional[str] = None
    signed_by_name: Optional[str] = None
    signed_by_title: Optional[str] = None
    signature_url: Optional[str] = None
    template: CertificateTemplate = CertificateTemplate.MODERN
