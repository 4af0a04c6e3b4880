import secrets
import time
import uuid
from typing import Optional, Tuple

from fastapi import Depends, HTTPException
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.deps import AuthorizationService
from app.core.enum import CertificateGrade, RoleName
from app.core.exceptions import IneligibleError, NotFoundError
from app.core.settings import settings
from app.db.models.database import (
    Certificates,
    CourseEnrollments,
    Courses,
    LessonProgress,
    QuizAttempts,
    User,
)
from app.db.sesson import get_session
from app.libs.formats.datetime import days_between
from app.libs.formats.datetime import now as get_now
from app.libs.formats.number import round_half_up
from app.schemas.shares.course_structure import CertificateConfig, CourseStructure
from app.schemas.user.certificates import (
    CertificatePage,
    CertificateResponse,
    CertificateStats,
    CertificateVerification,
    EligibilityData,
    EligibilityResult,
    SignedBy,
)
from app.services.shares.certificate_render import render_certificate_html
from app.services.shares.concurrency import run_with_retry
from app.services.shares.course_structure import (
    CourseStructureService,
    certificate_config_from,
)
from app.services.shares.progress_calculator import course_percentage
from app.services.user.learning import LearningService

REASON_NOT_ENABLED = "certificate not enabled"
REASON_NOT_ENROLLED = "not enrolled"
REASON_ALREADY_ISSUED = "certificate already issued"
REASON_NO_PROGRESS = "no progress recorded"

GRADE_THRESHOLDS = [
    (95, CertificateGrade.A_PLUS),
    (90, CertificateGrade.A),
    (85, CertificateGrade.B_PLUS),
    (80, CertificateGrade.B),
    (75, CertificateGrade.C_PLUS),
    (70, CertificateGrade.C),
]


def compute_grade(completion_percentage: float, quiz_average_score: float) -> CertificateGrade:
    """overall = (hoàn thành + điểm quiz TB) / 2, xếp loại theo ngưỡng cố định."""
    overall = (completion_percentage + quiz_average_score) / 2
    for threshold, grade in GRADE_THRESHOLDS:
        if overall >= threshold:
            return grade
    return CertificateGrade.PASS


def generate_certificate_id() -> str:
    return f"CERT-{int(time.time() * 1000)}-{secrets.token_hex(4).upper()}"


def verification_url(certificate_id: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/certificates/verify/{certificate_id}"


def to_response(cert: Certificates) -> CertificateResponse:
    return CertificateResponse.model_validate(cert).model_copy(
        update={"verification_url": verification_url(cert.certificate_id)}
    )


class CertificateService:
    """Xét điều kiện, cấp và tra cứu chứng chỉ hoàn thành khóa học."""

    def __init__(self, db: AsyncSession = Depends(get_session)):
        self.db = db
        self.structure = CourseStructureService(db)
        self.learning = LearningService(db)

    # ==============================
    # 🧩 HELPERS
    # ==============================

    async def _find_certificate(
        self, user_id: uuid.UUID, course_id: uuid.UUID
    ) -> Optional[Certificates]:
        return await self.db.scalar(
            select(Certificates).where(
                Certificates.user_id == user_id,
                Certificates.course_id == course_id,
            )
        )

    async def _require_course_manager(self, course_id: uuid.UUID, user: User) -> Courses:
        """Giảng viên sở hữu khóa học hoặc admin."""
        course = await self.structure.get_course_async(course_id)
        roles = await AuthorizationService.get_list_role_in_user(self.db, user)
        if course.instructor_id != user.id and RoleName.ADMIN.value not in roles:
            raise HTTPException(status_code=403, detail="Permission denied")
        return course

    async def _quiz_average(
        self, user_id: uuid.UUID, structure: CourseStructure
    ) -> int:
        """
        Điểm TB mọi lượt làm quiz trong khóa học.
        Chưa làm lượt nào → 100 (ngưỡng điểm quiz coi như đạt).
        """
        avg = await self.db.scalar(
            select(func.avg(QuizAttempts.score)).where(
                QuizAttempts.user_id == user_id,
                QuizAttempts.course_id == structure.course_id,
            )
        )
        if avg is None:
            return 100
        return round_half_up(float(avg))

    async def _evaluate(
        self, user_id: uuid.UUID, course_id: uuid.UUID, for_update: bool = False
    ) -> Tuple[EligibilityResult, Courses, Optional[CourseEnrollments], CertificateConfig]:
        # 1️⃣ Khóa học bật chứng chỉ?
        course = await self.structure.get_course_async(course_id)
        config = certificate_config_from(course)
        if not config.enabled:
            return EligibilityResult(eligible=False, reason=REASON_NOT_ENABLED), course, None, config

        # 2️⃣ Đăng ký còn hiệu lực?
        enrollment = await self.learning.get_active_enrollment_async(user_id, course_id, for_update)
        if enrollment is None:
            return EligibilityResult(eligible=False, reason=REASON_NOT_ENROLLED), course, None, config

        # 3️⃣ Đã có chứng chỉ → trả lại chứng chỉ cũ (ưu tiên hơn các điều kiện sau)
        existing = await self._find_certificate(user_id, course_id)
        if existing is not None:
            return (
                EligibilityResult(
                    eligible=False,
                    reason=REASON_ALREADY_ISSUED,
                    certificate=to_response(existing),
                ),
                course,
                enrollment,
                config,
            )

        # 4️⃣ Có tiến độ chưa?
        if enrollment.last_progress_at is None:
            return EligibilityResult(eligible=False, reason=REASON_NO_PROGRESS), course, enrollment, config

        # 5️⃣ % hoàn thành
        structure = await self.structure.get_course_structure_async(course_id)
        completed_ids = (
            await self.db.execute(
                select(LessonProgress.lesson_id).where(
                    LessonProgress.enrollment_id == enrollment.id
                )
            )
        ).scalars().all()
        completion = course_percentage(structure, set(completed_ids))
        if completion < config.completion_requirement:
            reason = (
                f"completion below threshold: need {config.completion_requirement}%, "
                f"have {completion}%"
            )
            return EligibilityResult(eligible=False, reason=reason), course, enrollment, config

        # 6️⃣ Điểm quiz trung bình (chỉ xét khi có quiz tính điểm)
        quiz_average = await self._quiz_average(user_id, structure)
        if structure.has_graded_quiz and quiz_average < config.passing_score:
            reason = (
                f"quiz average below threshold: need {config.passing_score}%, "
                f"have {quiz_average}%"
            )
            return EligibilityResult(eligible=False, reason=reason), course, enrollment, config

        completed_at = enrollment.completed_at or get_now()
        data = EligibilityData(
            completion_percentage=completion,
            quiz_average_score=quiz_average,
            completed_at=completed_at,
            total_duration=structure.total_duration,
            completion_time=enrollment.total_time_spent or 0,
            days_to_complete=days_between(enrollment.enrolled_at, completed_at),
        )
        return EligibilityResult(eligible=True, data=data), course, enrollment, config

    # ==============================
    # 🧩 ELIGIBILITY + ISSUANCE
    # ==============================

    async def check_eligibility_async(self, course_id: uuid.UUID, user: User) -> EligibilityResult:
        """Chỉ đọc. Chưa đủ điều kiện là kết quả bình thường, không phải lỗi."""
        try:
            result, *_ = await self._evaluate(user.id, course_id)
            return result
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi kiểm tra điều kiện: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi kiểm tra điều kiện: {e}")

    async def _issue_async(
        self, course_id: uuid.UUID, user_id: uuid.UUID, student_name: str
    ) -> CertificateResponse:
        """
        ✅ Cấp chứng chỉ (idempotent):
        - Luôn xét lại điều kiện, không có đường tắt.
        - Đã có chứng chỉ → trả lại chứng chỉ đó.
        - 2 request song song → UNIQUE (user_id, course_id) chặn bản thứ 2,
          lần thử lại sẽ thấy chứng chỉ đã cấp và trả về.
        """
        try:

            async def _generate() -> CertificateResponse:
                result, course, enrollment, config = await self._evaluate(
                    user_id, course_id, for_update=True
                )
                if result.certificate is not None:
                    return result.certificate
                if not result.eligible:
                    raise IneligibleError(result.reason)

                data = result.data
                instructor = await self.db.get(User, course.instructor_id)
                instructor_name = instructor.fullname if instructor else None
                grade = compute_grade(data.completion_percentage, data.quiz_average_score)
                final_score = round_half_up(
                    (data.completion_percentage + data.quiz_average_score) / 2
                )

                # 🎓 snapshot cấu hình tại thời điểm cấp
                cert = Certificates(
                    certificate_id=generate_certificate_id(),
                    user_id=user_id,
                    course_id=course_id,
                    student_name=student_name,
                    course_title=course.title,
                    instructor_name=instructor_name,
                    grade=grade.value,
                    final_score=final_score,
                    skills=list(course.tags or []),
                    completed_at=data.completed_at,
                    issued_at=get_now(),
                    organization_name=config.organization_name
                    or settings.DEFAULT_ORGANIZATION_NAME,
                    logo_url=config.logo_url,
                    signed_by_name=config.signed_by_name or instructor_name,
                    signed_by_title=config.signed_by_title or settings.DEFAULT_SIGNER_TITLE,
                    signature_url=config.signature_url,
                    template=config.template.value,
                    meta={
                        "completion_percentage": data.completion_percentage,
                        "quiz_average_score": data.quiz_average_score,
                        "final_score": final_score,
                        "total_duration": data.total_duration,
                        "completion_time": data.completion_time,
                        "days_to_complete": data.days_to_complete,
                    },
                )
                self.db.add(cert)

                # Đánh dấu hoàn thành nếu progress chưa kịp ghi
                if enrollment.completed_at is None:
                    enrollment.completed_at = data.completed_at
                enrollment.has_certificate = True
                await self.db.flush()
                logger.info(
                    f"🎓 Cấp chứng chỉ {cert.certificate_id} cho user {user_id} (khóa {course_id}, {grade.value})"
                )
                return to_response(cert)

            return await run_with_retry(self.db, _generate, "generate_certificate")

        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi cấp chứng chỉ: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi cấp chứng chỉ: {e}")

    async def generate_certificate_async(
        self, course_id: uuid.UUID, user: User
    ) -> CertificateResponse:
        """Học viên tự nhận chứng chỉ của mình."""
        return await self._issue_async(course_id, user.id, user.fullname)

    async def issue_certificate_for_user_async(
        self, course_id: uuid.UUID, user_id: uuid.UUID, caller: User
    ) -> CertificateResponse:
        """Giảng viên / admin cấp hộ cho 1 học viên, vẫn phải qua xét điều kiện."""
        await self._require_course_manager(course_id, caller)
        student = await self.db.get(User, user_id)
        if student is None:
            raise NotFoundError("Học viên không tồn tại")
        issued_by = caller.id
        cert = await self._issue_async(course_id, student.id, student.fullname)
        logger.info(f"🎓 {issued_by} cấp chứng chỉ {cert.certificate_id} cho học viên {user_id}")
        return cert

    # ==============================
    # 🧩 READ
    # ==============================

    async def verify_certificate_async(self, certificate_id: str) -> CertificateVerification:
        """Tra cứu công khai theo mã chứng chỉ."""
        cert = await self.db.scalar(
            select(Certificates).where(Certificates.certificate_id == certificate_id)
        )
        if cert is None:
            raise NotFoundError("Chứng chỉ không tồn tại")
        return CertificateVerification(
            certificate_id=cert.certificate_id,
            student_name=cert.student_name,
            course_title=cert.course_title,
            grade=cert.grade,
            issued_at=cert.issued_at,
            completed_at=cert.completed_at,
            organization_name=cert.organization_name,
            signed_by=SignedBy(name=cert.signed_by_name, title=cert.signed_by_title),
        )

    async def list_my_certificates_async(
        self, user: User, page: int = 1, size: int = 20
    ) -> CertificatePage:
        try:
            total = await self.db.scalar(
                select(func.count(Certificates.id)).where(Certificates.user_id == user.id)
            )
            rows = (
                await self.db.execute(
                    select(Certificates)
                    .where(Certificates.user_id == user.id)
                    .order_by(Certificates.issued_at.desc())
                    .offset((page - 1) * size)
                    .limit(size)
                )
            ).scalars().all()
            return CertificatePage(
                items=[to_response(c) for c in rows],
                total=total or 0,
                page=page,
                size=size,
            )
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy chứng chỉ: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy chứng chỉ: {e}")

    async def list_course_certificates_async(
        self, course_id: uuid.UUID, user: User, page: int = 1, size: int = 20
    ) -> CertificatePage:
        """Mọi chứng chỉ đã cấp của 1 khóa học (giảng viên sở hữu hoặc admin)."""
        try:
            await self._require_course_manager(course_id, user)

            total = await self.db.scalar(
                select(func.count(Certificates.id)).where(Certificates.course_id == course_id)
            )
            rows = (
                await self.db.execute(
                    select(Certificates)
                    .where(Certificates.course_id == course_id)
                    .order_by(Certificates.issued_at.desc())
                    .offset((page - 1) * size)
                    .limit(size)
                )
            ).scalars().all()
            return CertificatePage(
                items=[to_response(c) for c in rows],
                total=total or 0,
                page=page,
                size=size,
            )
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi lấy chứng chỉ của khóa học: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi lấy chứng chỉ: {e}")

    async def get_certificate_for_course_async(
        self, course_id: uuid.UUID, user: User
    ) -> CertificateResponse:
        cert = await self._find_certificate(user.id, course_id)
        if cert is None:
            raise NotFoundError("Bạn chưa có chứng chỉ cho khóa học này")
        return to_response(cert)

    async def render_certificate_async(self, certificate_id: str, user: User) -> str:
        """HTML chứng chỉ: chủ sở hữu, giảng viên khóa học hoặc admin."""
        cert = await self.db.scalar(
            select(Certificates).where(Certificates.certificate_id == certificate_id)
        )
        if cert is None:
            raise NotFoundError("Chứng chỉ không tồn tại")

        if cert.user_id != user.id:
            await self._require_course_manager(cert.course_id, user)

        return render_certificate_html(cert)

    async def get_certificate_stats_async(self, user: User) -> CertificateStats:
        """Admin thấy toàn hệ thống, giảng viên chỉ thấy khóa học của mình."""
        try:
            roles = await AuthorizationService.get_list_role_in_user(self.db, user)
            scope = []
            if RoleName.ADMIN.value not in roles:
                scope.append(
                    Certificates.course_id.in_(
                        select(Courses.id).where(Courses.instructor_id == user.id)
                    )
                )

            now = get_now()
            month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

            total = await self.db.scalar(select(func.count(Certificates.id)).where(*scope))
            this_month = await self.db.scalar(
                select(func.count(Certificates.id)).where(
                    *scope, Certificates.issued_at >= month_start
                )
            )
            grade_rows = (
                await self.db.execute(
                    select(Certificates.grade, func.count(Certificates.id))
                    .where(*scope)
                    .group_by(Certificates.grade)
                )
            ).all()

            return CertificateStats(
                total=total or 0,
                issued_this_month=this_month or 0,
                grade_distribution={grade: count for grade, count in grade_rows},
            )
        except HTTPException:
            raise
        except Exception as e:
            await self.db.rollback()
            logger.exception(f"❌ Lỗi khi thống kê chứng chỉ: {e}")
            raise HTTPException(status_code=500, detail=f"Lỗi khi thống kê chứng chỉ: {e}")
