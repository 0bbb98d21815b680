# bioharvest/schemas/enrollment_schemas.py
from pydantic import BaseModel, Field
from typing import Optional, List
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

from bioharvest.schemas.course_schemas import CourseOut
from bioharvest.utils.progress import EnrollmentStatus

PositiveDecimal = Annotated[Decimal, Field(gt=0, max_digits=12, decimal_places=2)]


class PaymentConfirmation(BaseModel):
    """Supplied by the payment gateway callback; the core never charges."""
    transaction_id: str = Field(..., min_length=1, max_length=120)
    amount: PositiveDecimal
    status: str
    payment_method: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)


class EnrollmentCreate(BaseModel):
    course_id: int
    payment: Optional[PaymentConfirmation] = None


class ProgressUpdate(BaseModel):
    section_id: int
    score: Optional[int] = Field(None, ge=0, le=100)


class SectionCompletionOut(BaseModel):
    section_id: int
    completed_at: datetime
    score: Optional[int]

    class Config:
        from_attributes = True


class CertificateOut(BaseModel):
    issued: bool
    certificate_id: Optional[str] = None
    issued_at: Optional[datetime] = None
    download_url: Optional[str] = None


class EnrollmentOut(BaseModel):
    id: int
    student_id: int
    course_id: int
    status: EnrollmentStatus
    progress_percentage: int
    completed_sections: int
    total_sections: int
    completions: List[SectionCompletionOut] = []
    enrollment_date: datetime
    last_accessed: datetime
    completed_at: Optional[datetime]
    payment_amount: Decimal
    payment_currency: str
    payment_status: str
    transaction_id: Optional[str]
    certificate_issued: bool
    certificate_id: Optional[str]
    certificate_issued_at: Optional[datetime]

    class Config:
        from_attributes = True


class EnrollmentDetailOut(EnrollmentOut):
    course: CourseOut
