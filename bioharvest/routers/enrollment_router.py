# bioharvest/routers/enrollment_router.py
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from bioharvest.core.db import get_db
from bioharvest.schemas.enrollment_schemas import (
    EnrollmentCreate,
    EnrollmentOut,
    EnrollmentDetailOut,
    ProgressUpdate,
    CertificateOut,
)
from bioharvest.services import enrollment_service
from bioharvest.utils.get_user import get_current_user

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


@router.post("", response_model=EnrollmentDetailOut, status_code=201)
async def route_enroll(
    payload: EnrollmentCreate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """
    Enroll the caller in a course.
    Paid courses need the gateway's payment confirmation in `payment`.
    """
    return await enrollment_service.enroll(db, payload.course_id, current_user, payload.payment)


@router.get("/me", response_model=List[EnrollmentOut])
async def route_my_enrollments(
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return await enrollment_service.list_enrollments(db, current_user.id)


@router.get("/{enrollment_id}", response_model=EnrollmentDetailOut)
async def route_get_enrollment(
    enrollment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return await enrollment_service.get_enrollment(db, enrollment_id, current_user.id)


@router.put("/{enrollment_id}/progress", response_model=EnrollmentOut)
async def route_update_progress(
    enrollment_id: int,
    payload: ProgressUpdate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return await enrollment_service.record_section_completion(
        db, enrollment_id, current_user.id, payload.section_id, payload.score
    )


@router.post("/{enrollment_id}/certificate", response_model=CertificateOut)
async def route_generate_certificate(
    enrollment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    enrollment = await enrollment_service.generate_certificate(db, enrollment_id, current_user.id)
    return CertificateOut(
        issued=True,
        certificate_id=enrollment.certificate_id,
        issued_at=enrollment.certificate_issued_at,
        download_url=f"/enrollments/{enrollment.id}/certificate/download",
    )


@router.get("/{enrollment_id}/certificate/download", response_class=Response)
async def route_download_certificate(
    enrollment_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    filename, pdf = await enrollment_service.download_certificate(db, enrollment_id, current_user.id)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
