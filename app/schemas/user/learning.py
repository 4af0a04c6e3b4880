import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class LessonRef(BaseModel):
    """
    Tham chiếu 1 bài học: ưu tiên lesson_id, hoặc cặp chỉ số (0-based)
    section_index / lecture_index cho client cũ.
    """

    lesson_id: Optional[uuid.UUID] = None
    section_index: Optional[int] = None
    lecture_index: Optional[int] = None
    time_spent: Optional[int] = Field(None, ge=0, description="Thời gian học (giây)")

    @model_validator(mode="after")
    def _check_ref(self):
        if self.lesson_id is None and (
            self.section_index is None or self.lecture_index is None
        ):
            raise ValueError("Cần lesson_id hoặc section_index + lecture_index")
        return self


class CompletedLesson(BaseModel):
    lesson_id: uuid.UUID
    section_index: int
    lecture_index: int
    completed_at: datetime
    time_spent: int


class SectionProgress(BaseModel):
    section_id: uuid.UUID
    section_index: int
    section_title: str
    total_lessons: int
    completed_lessons: int
    progress: int


class CourseProgress(BaseModel):
    course_id: uuid.UUID
    overall_progress: int
    total_lessons: int
    completed_lessons: int
    total_time_spent: int
    completed_at: Optional[datetime] = None
    last_accessed_lesson_id: Optional[uuid.UUID] = None
    last_accessed_at: Optional[datetime] = None
    completed: List[CompletedLesson] = Field(default_factory=list)
    sections: List[SectionProgress] = Field(default_factory=list)


class ProgressOverview(BaseModel):
    total_enrolled: int
    total_completed: int
    total_certificates: int
    total_watch_time: int
    overall_progress: int
