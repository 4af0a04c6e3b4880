import uuid

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import HTMLResponse

from app.core.deps import AuthorizationService
from app.schemas.user.certificates import IssueCertificate
from app.services.user.certificates import CertificateService

router = APIRouter(prefix="/certificates", tags=["Certificates"])


@router.get("/verify/{certificate_id}")
async def verify_certificate(
    certificate_id: str,
    certificate_service: CertificateService = Depends(CertificateService),
):
    # công khai, không cần đăng nhập
    return await certificate_service.verify_certificate_async(certificate_id)


@router.get("/check-eligibility/{course_id}")
async def check_eligibility(
    course_id: uuid.UUID,
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await certificate_service.check_eligibility_async(course_id, user)


@router.post("/generate/{course_id}")
async def generate_certificate(
    course_id: uuid.UUID,
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await certificate_service.generate_certificate_async(course_id, user)


@router.post("/generate")
async def issue_certificate_for_user(
    schema: IssueCertificate = Body(),
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    caller = await authorization.require_role(["LECTURER", "ADMIN"])
    return await certificate_service.issue_certificate_for_user_async(
        schema.course_id, schema.user_id, caller
    )


@router.get("/my")
async def get_my_certificates(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await certificate_service.list_my_certificates_async(user, page, size)


@router.get("/course/{course_id}/all")
async def get_course_certificates(
    course_id: uuid.UUID,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.require_role(["LECTURER", "ADMIN"])
    return await certificate_service.list_course_certificates_async(course_id, user, page, size)


@router.get("/course/{course_id}")
async def get_certificate_for_course(
    course_id: uuid.UUID,
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await certificate_service.get_certificate_for_course_async(course_id, user)


@router.get("/render/{certificate_id}", response_class=HTMLResponse)
async def render_certificate(
    certificate_id: str,
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.get_current_user()
    return await certificate_service.render_certificate_async(certificate_id, user)


@router.get("/stats/overview")
async def get_certificate_stats(
    certificate_service: CertificateService = Depends(CertificateService),
    authorization: AuthorizationService = Depends(AuthorizationService),
):
    user = await authorization.require_role(["LECTURER", "ADMIN"])
    return await certificate_service.get_certificate_stats_async(user)
