import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.enum import CertificateGrade


class EligibilityData(BaseModel):
    completion_percentage: int
    quiz_average_score: int
    completed_at: datetime
    total_duration: int
    completion_time: int
    days_to_complete: int


class CertificateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    certificate_id: str
    course_id: uuid.UUID
    student_name: str
    course_title: str
    instructor_name: Optional[str] = None
    grade: CertificateGrade
    final_score: int
    skills: List[str] = Field(default_factory=list)
    completed_at: datetime
    issued_at: datetime
    organization_name: str
    logo_url: Optional[str] = None
    signed_by_name: Optional[str] = None
    signed_by_title: Optional[str] = None
    signature_url: Optional[str] = None
    template: str
    meta: Dict[str, Any] = Field(default_factory=dict)
    verification_url: Optional[str] = None


class EligibilityResult(BaseModel):
    eligible: bool
    reason: Optional[str] = None
    data: Optional[EligibilityData] = None
    certificate: Optional[CertificateResponse] = None


class SignedBy(BaseModel):
    name: Optional[str] = None
    title: Optional[str] = None


class CertificateVerification(BaseModel):
    """Dữ liệu công khai khi tra cứu chứng chỉ, không chứa id nội bộ."""

    certificate_id: str
    student_name: str
    course_title: str
    grade: CertificateGrade
    issued_at: datetime
    completed_at: datetime
    organization_name: str
    signed_by: SignedBy


class CertificatePage(BaseModel):
    items: List[CertificateResponse]
    total: int
    page: int
    size: int


class CertificateStats(BaseModel):
    total: int
    issued_this_month: int
    grade_distribution: Dict[str, int]


class IssueCertificate(BaseModel):
    """Giảng viên / admin cấp chứng chỉ cho 1 học viên."""

    course_id: uuid.UUID
    user_id: uuid.UUID
