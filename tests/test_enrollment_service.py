from decimal import Decimal

import pytest

from bioharvest.core.exceptions import ErrorCode, EnrollmentError
from bioharvest.models.course_models import CourseSection
from bioharvest.schemas.enrollment_schemas import PaymentConfirmation
from bioharvest.services import enrollment_service
from bioharvest.utils.datetime_utils import utcnow
from bioharvest.utils.progress import (
    EnrollmentStatus,
    derive_status,
    is_certificate_eligible,
    progress_percentage,
)


class TestProgressRules:

    def test_derive_status(self):
        assert derive_status(0, 5) == EnrollmentStatus.ENROLLED
        assert derive_status(2, 5) == EnrollmentStatus.IN_PROGRESS
        assert derive_status(5, 5) == EnrollmentStatus.COMPLETED

    def test_completed_at_pins_status(self):
        assert derive_status(5, 6, utcnow()) == EnrollmentStatus.COMPLETED

    def test_certificate_threshold_is_exact(self):
        assert is_certificate_eligible(4, 5, 80)
        assert not is_certificate_eligible(3, 5, 80)
        assert not is_certificate_eligible(0, 0, 80)

    def test_progress_percentage(self):
        assert progress_percentage(1, 3) == 33
        assert progress_percentage(0, 0) == 0


class TestEnroll:

    async def test_free_course(self, db, student, make_course):
        course = await make_course()
        enrollment = await enrollment_service.enroll(db, course.id, student)
        assert enrollment.status == EnrollmentStatus.ENROLLED
        assert enrollment.total_sections == 5
        assert enrollment.course.enrolled_students == 1

    async def test_already_enrolled(self, db, student, make_course):
        course = await make_course()
        course_id = course.id
        await enrollment_service.enroll(db, course_id, student)
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.enroll(db, course_id, student)
        assert exc.value.code == ErrorCode.ALREADY_ENROLLED
        assert exc.value.status_code == 409

    async def test_course_full(self, db, make_user, make_course):
        course = await make_course(max_students=1)
        course_id = course.id
        first, second = await make_user(), await make_user()
        await enrollment_service.enroll(db, course_id, first)
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.enroll(db, course_id, second)
        assert exc.value.code == ErrorCode.COURSE_FULL

    async def test_paid_course_requires_payment(self, db, student, make_course):
        course = await make_course(is_free=False, price=Decimal("49.99"))
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.enroll(db, course.id, student)
        assert exc.value.code == ErrorCode.PAYMENT_REQUIRED
        assert exc.value.status_code == 402

    async def test_paid_course_with_unconfirmed_payment(self, db, student, make_course):
        course = await make_course(is_free=False, price=Decimal("49.99"))
        payment = PaymentConfirmation(transaction_id="txn_1", amount=Decimal("49.99"), status="pending")
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.enroll(db, course.id, student, payment)
        assert exc.value.code == ErrorCode.PAYMENT_NOT_CONFIRMED

    async def test_paid_course_with_confirmed_payment(self, db, student, make_course):
        course = await make_course(is_free=False, price=Decimal("50.00"), discount=10)
        payment = PaymentConfirmation(
            transaction_id="txn_2", amount=Decimal("45.00"), status="succeeded", payment_method="card"
        )
        enrollment = await enrollment_service.enroll(db, course.id, student, payment)
        assert enrollment.payment_amount == Decimal("45.00")
        assert enrollment.transaction_id == "txn_2"
        assert enrollment.payment_status == "completed"

    async def test_inactive_course(self, db, student, make_course):
        course = await make_course(is_active=False)
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.enroll(db, course.id, student)
        assert exc.value.code == ErrorCode.COURSE_INACTIVE


class TestProgress:

    async def test_completion_is_idempotent(self, db, student, make_course):
        course = await make_course()
        enrollment = await enrollment_service.enroll(db, course.id, student)
        section_id = enrollment.course.sections[0].id

        for _ in range(3):
            enrollment = await enrollment_service.record_section_completion(
                db, enrollment.id, student.id, section_id, score=90
            )
        assert enrollment.completed_sections == 1
        assert enrollment.status == EnrollmentStatus.IN_PROGRESS
        assert enrollment.progress_percentage == 20

    async def test_section_from_another_course(self, db, student, make_course):
        course = await make_course()
        other = await make_course(title="Cooking with Millets", category="cooking")
        enrollment = await enrollment_service.enroll(db, course.id, student)
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.record_section_completion(
                db, enrollment.id, student.id, other.sections[0].id
            )
        assert exc.value.code == ErrorCode.SECTION_NOT_FOUND

    async def test_status_does_not_regress_when_sections_are_added(self, db, student, make_course):
        course = await make_course(sections=2)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        section_ids = [s.id for s in enrollment.course.sections]
        for section_id in section_ids:
            enrollment = await enrollment_service.record_section_completion(db, enrollment.id, student.id, section_id)
        assert enrollment.status == EnrollmentStatus.COMPLETED
        assert enrollment.completed_at is not None

        db.add(CourseSection(course_id=course.id, title="Bonus", position=2))
        await db.commit()

        enrollment = await enrollment_service.get_enrollment_for_student(db, enrollment.id, student.id)
        assert enrollment.total_sections == 3
        assert enrollment.status == EnrollmentStatus.COMPLETED

    async def test_other_student_cannot_touch_enrollment(self, db, student, make_user, make_course):
        course = await make_course()
        enrollment = await enrollment_service.enroll(db, course.id, student)
        intruder = await make_user()
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.get_enrollment(db, enrollment.id, intruder.id)
        assert exc.value.code == ErrorCode.ENROLLMENT_NOT_FOUND


class TestCertificate:

    async def _complete(self, db, student, enrollment, count):
        section_ids = [s.id for s in enrollment.course.sections][:count]
        for section_id in section_ids:
            enrollment = await enrollment_service.record_section_completion(db, enrollment.id, student.id, section_id)
        return enrollment

    async def test_four_of_five_is_eligible(self, db, student, make_course):
        course = await make_course(sections=5)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        enrollment = await self._complete(db, student, enrollment, 4)

        enrollment = await enrollment_service.generate_certificate(db, enrollment.id, student.id)
        assert enrollment.certificate_issued
        assert enrollment.certificate_id.startswith(f"CERT-{course.id:06d}-{student.id:06d}-")
        assert enrollment.certificate_issued_at is not None

    async def test_three_of_five_is_not_eligible(self, db, student, make_course):
        course = await make_course(sections=5)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        enrollment = await self._complete(db, student, enrollment, 3)

        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.generate_certificate(db, enrollment.id, student.id)
        assert exc.value.code == ErrorCode.NOT_ELIGIBLE

    async def test_certificate_is_issued_once(self, db, student, make_course):
        course = await make_course(sections=2)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        enrollment = await self._complete(db, student, enrollment, 2)
        enrollment_id, student_id = enrollment.id, student.id

        issued = await enrollment_service.generate_certificate(db, enrollment_id, student_id)
        certificate_id = issued.certificate_id

        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.generate_certificate(db, enrollment_id, student_id)
        assert exc.value.code == ErrorCode.ALREADY_ISSUED

        again = await enrollment_service.get_enrollment_for_student(db, enrollment_id, student_id)
        assert again.certificate_id == certificate_id

    async def test_download_requires_issued_certificate(self, db, student, make_course):
        course = await make_course(sections=1)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        with pytest.raises(EnrollmentError) as exc:
            await enrollment_service.download_certificate(db, enrollment.id, student.id)
        assert exc.value.code == ErrorCode.NOT_ISSUED

    async def test_download_renders_pdf(self, db, student, make_course):
        course = await make_course(sections=1)
        enrollment = await enrollment_service.enroll(db, course.id, student)
        enrollment = await self._complete(db, student, enrollment, 1)
        enrollment = await enrollment_service.generate_certificate(db, enrollment.id, student.id)

        filename, pdf = await enrollment_service.download_certificate(db, enrollment.id, student.id)
        assert filename == f"certificate-{enrollment.certificate_id}.pdf"
        assert pdf.startswith(b"%PDF")
