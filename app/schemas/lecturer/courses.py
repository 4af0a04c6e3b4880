import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

LectureKind = Literal["video", "quiz", "note"]
QuestionKind = Literal["single", "multiple"]
Template = Literal["modern", "classic", "elegant", "professional"]


class CreateQuizQuestion(BaseModel):
    question: str = Field(min_length=1)
    question_type: QuestionKind = "single"
    options: List[str] = Field(min_length=2)
    correct_answers: List[int] = Field(default_factory=list)
    explanation: Optional[str] = None

    @model_validator(mode="after")
    def _check_answers(self):
        for idx in self.correct_answers:
            if idx < 0 or idx >= len(self.options):
                raise ValueError(f"Đáp án đúng {idx} nằm ngoài danh sách lựa chọn")
        if len(set(self.correct_answers)) != len(self.correct_answers):
            raise ValueError("Đáp án đúng bị trùng")
        return self


class CreateLectureQuiz(BaseModel):
    is_graded: bool = False
    passing_score: int = Field(default=70, ge=0, le=100)
    time_limit: Optional[int] = Field(default=None, ge=1, description="Phút")
    instructions: Optional[str] = None
    questions: List[CreateQuizQuestion] = Field(default_factory=list)


class CreateLectureVideo(BaseModel):
    video_url: str
    file_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    source_type: Optional[str] = "upload"


class CreateLecture(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    lesson_type: LectureKind
    duration: int = Field(default=0, ge=0, description="Giây")
    is_preview: bool = False
    video: Optional[CreateLectureVideo] = None
    quiz: Optional[CreateLectureQuiz] = None
    note_content: Optional[str] = None

    @model_validator(mode="after")
    def _check_payload(self):
        if self.lesson_type == "quiz" and self.quiz is None:
            raise ValueError("Bài quiz cần có nội dung quiz")
        if self.lesson_type == "video" and self.video is None:
            raise ValueError("Bài video cần có video_url")
        return self


class CreateSection(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    lectures: List[CreateLecture] = Field(default_factory=list)


class UpdateCertificateConfig(BaseModel):
    enabled: Optional[bool] = None
    organization_name: Optional[str] = None
    logo_url: Optional[str] = None
    signed_by_name: Optional[str] = None
    signed_by_title: Optional[str] = None
    signature_url: Optional[str] = None
    template: Optional[Template] = None
    completion_requirement: Optional[int] = Field(default=None, ge=50, le=100)
    passing_score: Optional[int] = Field(default=None, ge=0, le=100)


class CreateCourse(BaseModel):
    title: str = Field(min_length=3, max_length=160)
    description: str | None = None
    tags: List[str] = Field(default_factory=list)
    is_published: bool = False
    sections: List[CreateSection] = Field(default_factory=list)
    certificate: UpdateCertificateConfig | None = None


class CourseCreated(BaseModel):
    course_id: uuid.UUID
    slug: str
    total_length_seconds: int
    total_lectures: int
