from pydantic import BaseModel, Field
from typing import Optional, List
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]


class SectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0)
    position: Optional[int] = None


class SectionOut(BaseModel):
    id: int
    course_id: int
    title: str
    description: Optional[str]
    duration: Optional[int]
    position: int

    class Config:
        from_attributes = True


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str
    category: str = Field(..., pattern="^(organic|food|plantation|sustainability|cooking)$")
    level: str = Field(..., pattern="^(beginner|intermediate|advanced)$")
    price: NonNegativeDecimal = Decimal("0")
    discount: int = Field(0, ge=0, le=100)
    is_free: bool = False
    instructor_name: str
    instructor_title: Optional[str] = None
    is_active: bool = True
    max_students: int = Field(50, ge=1)
    certificate_valid_months: int = Field(12, ge=1)
    sections: List[SectionCreate] = []


class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = Field(None, pattern="^(organic|food|plantation|sustainability|cooking)$")
    level: Optional[str] = Field(None, pattern="^(beginner|intermediate|advanced)$")
    price: Optional[NonNegativeDecimal] = None
    discount: Optional[int] = Field(None, ge=0, le=100)
    is_free: Optional[bool] = None
    instructor_name: Optional[str] = None
    instructor_title: Optional[str] = None
    is_active: Optional[bool] = None
    max_students: Optional[int] = Field(None, ge=1)
    certificate_valid_months: Optional[int] = Field(None, ge=1)


class CourseOut(BaseModel):
    id: int
    title: str
    description: str
    category: str
    level: str
    price: Decimal
    discount: int
    discounted_price: Decimal
    is_free: bool
    instructor_name: str
    instructor_title: Optional[str]
    is_active: bool
    max_students: int
    enrolled_students: int
    is_full: bool
    certificate_valid_months: int
    total_sections: int
    sections: List[SectionOut] = []
    created_at: Optional[datetime]

    class Config:
        from_attributes = True
