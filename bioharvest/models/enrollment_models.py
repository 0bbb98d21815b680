# bioharvest/models/enrollment_models.py
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Index, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bioharvest.core.db import Base
from bioharvest.utils.datetime_utils import utcnow
from bioharvest.utils.progress import derive_status, progress_percentage, EnrollmentStatus


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    course_id = Column(Integer, ForeignKey("courses.id"), nullable=False, index=True)

    enrollment_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_accessed = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    payment_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    payment_currency = Column(String(3), nullable=False, default="USD")
    payment_method = Column(String(50), nullable=True)
    transaction_id = Column(String(120), nullable=True)
    payment_status = Column(String(20), nullable=False, default="pending")  # pending, completed, failed, refunded

    certificate_issued = Column(Boolean, nullable=False, default=False)
    certificate_id = Column(String(64), unique=True, nullable=True)
    certificate_issued_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    student = relationship("User", back_populates="enrollments", lazy="selectin")
    course = relationship("Course", lazy="selectin")
    completions = relationship(
        "SectionCompletion",
        back_populates="enrollment",
        cascade="all, delete-orphan",
        order_by="SectionCompletion.completed_at",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("student_id", "course_id", name="uq_enrollment_student_course"),
        Index("ix_enrollments_enrollment_date", "enrollment_date"),
    )

    @property
    def completed_sections(self) -> int:
        return len(self.completions)

    @property
    def total_sections(self) -> int:
        return self.course.total_sections if self.course else 0

    @property
    def status(self) -> EnrollmentStatus:
        return derive_status(self.completed_sections, self.total_sections, self.completed_at)

    @property
    def progress_percentage(self) -> int:
        return progress_percentage(self.completed_sections, self.total_sections)


class SectionCompletion(Base):
    __tablename__ = "section_completions"

    id = Column(Integer, primary_key=True, index=True)
    enrollment_id = Column(Integer, ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("course_sections.id"), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    score = Column(Integer, nullable=True)

    enrollment = relationship("Enrollment", back_populates="completions", lazy="raise")

    __table_args__ = (
        UniqueConstraint("enrollment_id", "section_id", name="uq_completion_enrollment_section"),
    )
