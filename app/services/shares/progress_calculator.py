import uuid
from typing import Collection, List, Sequence

from app.libs.formats.number import clamp_percent, round_half_up
from app.schemas.shares.course_structure import CourseStructure, LectureNode
from app.schemas.user.learning import SectionProgress


def completion_percentage(
    lectures: Sequence[LectureNode], completed_ids: Collection[uuid.UUID]
) -> int:
    """
    ✅ Chính sách tính % hoàn thành (dùng chung cho khóa học và từng chương):
    - Mặc định theo thời lượng: tổng duration bài đã xong / tổng duration.
    - Nếu tổng duration = 0 → tính theo số bài.
    - Bản ghi hoàn thành không còn khớp bài nào (mồ côi) bị bỏ qua.
    - Làm tròn .5 lên, kẹp trong [0, 100].
    """
    if not lectures:
        return 0

    done = [l for l in lectures if l.id in completed_ids]
    total_duration = sum(max(l.duration, 0) for l in lectures)

    if total_duration > 0:
        done_duration = sum(max(l.duration, 0) for l in done)
        ratio = done_duration / total_duration
    else:
        ratio = len(done) / len(lectures)

    return clamp_percent(round_half_up(ratio * 100))


def course_percentage(
    structure: CourseStructure, completed_ids: Collection[uuid.UUID]
) -> int:
    return completion_percentage(structure.lectures, completed_ids)


def count_completed(
    structure: CourseStructure, completed_ids: Collection[uuid.UUID]
) -> int:
    return sum(1 for l in structure.iter_lectures() if l.id in completed_ids)


def section_breakdown(
    structure: CourseStructure, completed_ids: Collection[uuid.UUID]
) -> List[SectionProgress]:
    return [
        SectionProgress(
            section_id=section.id,
            section_index=idx,
            section_title=section.title,
            total_lessons=len(section.lectures),
            completed_lessons=sum(1 for l in section.lectures if l.id in completed_ids),
            progress=completion_percentage(section.lectures, completed_ids),
        )
        for idx, section in enumerate(structure.sections)
    ]
