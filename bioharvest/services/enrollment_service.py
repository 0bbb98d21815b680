# bioharvest/services/enrollment_service.py
import logging
import secrets
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from bioharvest.core.config import CERTIFICATE_MIN_PROGRESS, CURRENCY
from bioharvest.core.exceptions import ErrorCode, EnrollmentError
from bioharvest.models.course_models import Course, CourseSection
from bioharvest.models.enrollment_models import Enrollment, SectionCompletion
from bioharvest.schemas.enrollment_schemas import PaymentConfirmation
from bioharvest.utils.datetime_utils import utcnow, ensure_utc
from bioharvest.utils.decimal_utils import to_decimal
from bioharvest.utils.pdf_generators.certificate_pdf import CertificateData, render_certificate_pdf
from bioharvest.utils.progress import is_certificate_eligible

logger = logging.getLogger(__name__)

CONFIRMED_PAYMENT_STATUSES = {"succeeded", "completed", "paid"}


def _enrollment_query():
    return select(Enrollment).options(
        selectinload(Enrollment.course).selectinload(Course.sections),
        selectinload(Enrollment.completions),
        selectinload(Enrollment.student),
    ).execution_options(populate_existing=True)


async def get_enrollment_for_student(db: AsyncSession, enrollment_id: int, student_id: int) -> Enrollment:
    result = await db.execute(
        _enrollment_query().where(Enrollment.id == enrollment_id, Enrollment.student_id == student_id)
    )
    enrollment = result.scalar_one_or_none()
    if not enrollment:
        raise EnrollmentError(ErrorCode.ENROLLMENT_NOT_FOUND)
    return enrollment


def generate_certificate_id(course_id: int, student_id: int) -> str:
    return f"CERT-{course_id:06d}-{student_id:06d}-{secrets.token_hex(4).upper()}"


# --------------------------
# ENROLL
# --------------------------
def _check_payment(course: Course, payment: Optional[PaymentConfirmation]) -> None:
    if course.is_free:
        return
    if payment is None:
        raise EnrollmentError(ErrorCode.PAYMENT_REQUIRED)
    if payment.status.lower() not in CONFIRMED_PAYMENT_STATUSES:
        raise EnrollmentError(ErrorCode.PAYMENT_NOT_CONFIRMED, f"Payment status is '{payment.status}'")
    if to_decimal(payment.amount) < course.discounted_price:
        raise EnrollmentError(
            ErrorCode.PAYMENT_NOT_CONFIRMED,
            f"Paid amount {to_decimal(payment.amount)} is below the course price {course.discounted_price}",
        )


async def enroll(
    db: AsyncSession,
    course_id: int,
    student,
    payment: Optional[PaymentConfirmation] = None,
) -> Enrollment:
    """
    Enroll a student. Free courses enroll immediately; paid courses only once the
    payment gateway has confirmed the transaction.
    """
    course = await db.get(Course, course_id, populate_existing=True)
    if not course:
        raise EnrollmentError(ErrorCode.COURSE_NOT_FOUND)
    if not course.is_active:
        raise EnrollmentError(ErrorCode.COURSE_INACTIVE)
    if course.is_full:
        raise EnrollmentError(ErrorCode.COURSE_FULL)

    existing = await db.execute(
        select(Enrollment.id).where(Enrollment.student_id == student.id, Enrollment.course_id == course_id)
    )
    if existing.scalar_one_or_none() is not None:
        raise EnrollmentError(ErrorCode.ALREADY_ENROLLED)

    _check_payment(course, payment)

    now = utcnow()
    enrollment = Enrollment(
        student_id=student.id,
        course_id=course_id,
        enrollment_date=now,
        last_accessed=now,
        payment_amount=to_decimal(payment.amount) if payment else to_decimal(0),
        payment_currency=(payment.currency if payment and payment.currency else CURRENCY).upper(),
        payment_method=payment.payment_method if payment else None,
        transaction_id=payment.transaction_id if payment else None,
        payment_status="completed",
    )
    try:
        async with db.begin_nested():
            db.add(enrollment)
    except IntegrityError:
        await db.rollback()
        raise EnrollmentError(ErrorCode.ALREADY_ENROLLED)

    seat = await db.execute(
        update(Course)
        .where(Course.id == course_id, Course.enrolled_students < Course.max_students)
        .values(enrolled_students=Course.enrolled_students + 1)
        .execution_options(synchronize_session=False)
    )
    if seat.rowcount == 0:
        await db.rollback()
        raise EnrollmentError(ErrorCode.COURSE_FULL)

    await db.commit()
    logger.info("Student %s enrolled in course %s (enrollment %s)", student.id, course_id, enrollment.id)
    return await get_enrollment_for_student(db, enrollment.id, student.id)


# --------------------------
# READ
# --------------------------
async def list_enrollments(db: AsyncSession, student_id: int):
    result = await db.execute(
        _enrollment_query()
        .where(Enrollment.student_id == student_id)
        .order_by(Enrollment.enrollment_date.desc(), Enrollment.id.desc())
    )
    return result.scalars().all()


async def get_enrollment(db: AsyncSession, enrollment_id: int, student_id: int) -> Enrollment:
    """Dashboard view: also stamps last_accessed."""
    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)
    enrollment.last_accessed = utcnow()
    await db.commit()
    return enrollment


# --------------------------
# PROGRESS
# --------------------------
async def record_section_completion(
    db: AsyncSession,
    enrollment_id: int,
    student_id: int,
    section_id: int,
    score: Optional[int] = None,
) -> Enrollment:
    """
    Mark a section complete. Repeats (retries, double clicks) are no-ops, so the
    completed set only ever grows by distinct section ids.
    """
    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)

    section = await db.execute(
        select(CourseSection.id).where(CourseSection.id == section_id, CourseSection.course_id == enrollment.course_id)
    )
    if section.scalar_one_or_none() is None:
        raise EnrollmentError(ErrorCode.SECTION_NOT_FOUND)

    now = utcnow()
    already_done = any(c.section_id == section_id for c in enrollment.completions)
    if not already_done:
        try:
            async with db.begin_nested():
                db.add(SectionCompletion(
                    enrollment_id=enrollment.id,
                    section_id=section_id,
                    completed_at=now,
                    score=score,
                ))
        except IntegrityError:
            logger.info("Section %s already recorded for enrollment %s", section_id, enrollment.id)

    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)
    if enrollment.completed_at is None and 0 < enrollment.total_sections <= enrollment.completed_sections:
        enrollment.completed_at = now
        logger.info("Enrollment %s completed course %s", enrollment.id, enrollment.course_id)
    enrollment.last_accessed = now

    await db.commit()
    return enrollment


# --------------------------
# CERTIFICATE
# --------------------------
async def generate_certificate(db: AsyncSession, enrollment_id: int, student_id: int) -> Enrollment:
    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)

    if enrollment.certificate_issued:
        raise EnrollmentError(ErrorCode.ALREADY_ISSUED)

    if not is_certificate_eligible(enrollment.completed_sections, enrollment.total_sections, CERTIFICATE_MIN_PROGRESS):
        raise EnrollmentError(
            ErrorCode.NOT_ELIGIBLE,
            f"Certificate requires {CERTIFICATE_MIN_PROGRESS}% progress, current progress is "
            f"{enrollment.progress_percentage}%",
        )

    # one-way flip: only the first writer sees a matching row
    result = await db.execute(
        update(Enrollment)
        .where(Enrollment.id == enrollment.id, Enrollment.certificate_issued.is_(False))
        .values(
            certificate_issued=True,
            certificate_id=generate_certificate_id(enrollment.course_id, enrollment.student_id),
            certificate_issued_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise EnrollmentError(ErrorCode.ALREADY_ISSUED)

    await db.commit()
    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)
    logger.info("Certificate %s issued for enrollment %s", enrollment.certificate_id, enrollment.id)
    return enrollment


async def download_certificate(db: AsyncSession, enrollment_id: int, student_id: int) -> Tuple[str, bytes]:
    enrollment = await get_enrollment_for_student(db, enrollment_id, student_id)
    if not enrollment.certificate_issued:
        raise EnrollmentError(ErrorCode.NOT_ISSUED)

    course = enrollment.course
    pdf = render_certificate_pdf(CertificateData(
        certificate_id=enrollment.certificate_id,
        student_name=enrollment.student.name,
        course_title=course.title,
        instructor_name=course.instructor_name,
        issued_at=ensure_utc(enrollment.certificate_issued_at),
        valid_for_months=course.certificate_valid_months,
    ))
    return f"certificate-{enrollment.certificate_id}.pdf", pdf
