from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bioharvest.core.db import Base
from bioharvest.utils.decimal_utils import to_decimal


class Course(Base):
    __tablename__ = "courses"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)  # organic, food, plantation, sustainability, cooking
    level = Column(String(20), nullable=False)  # beginner, intermediate, advanced

    price = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Integer, nullable=False, default=0)  # percent
    is_free = Column(Boolean, nullable=False, default=False)

    instructor_name = Column(String(120), nullable=False)
    instructor_title = Column(String(120), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    max_students = Column(Integer, nullable=False, default=50)
    enrolled_students = Column(Integer, nullable=False, default=0)
    certificate_valid_months = Column(Integer, nullable=False, default=12)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    sections = relationship(
        "CourseSection",
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="CourseSection.position",
        lazy="selectin",
    )

    @property
    def discounted_price(self) -> Decimal:
        if self.is_free:
            return to_decimal(0)
        return to_decimal(Decimal(self.price) * (100 - (self.discount or 0)) / 100)

    @property
    def is_full(self) -> bool:
        return self.enrolled_students >= self.max_students

    @property
    def total_sections(self) -> int:
        return len(self.sections)


class CourseSection(Base):
    __tablename__ = "course_sections"

    id = Column(Integer, primary_key=True, index=True)
    course_id = Column(Integer, ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=True)  # minutes
    position = Column(Integer, nullable=False, default=0)

    course = relationship("Course", back_populates="sections", lazy="raise")
