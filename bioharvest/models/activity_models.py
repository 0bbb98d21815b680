from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from bioharvest.core.db import Base


class UserActivity(Base):
    """Audit trail for admin changes to promo codes, courses and orders."""
    __tablename__ = "user_activity"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    username = Column(String(255), nullable=False)

    entity_type = Column(String(30), nullable=True)  # promo_code, course, order
    entity_id = Column(Integer, nullable=True)
    message = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_user_activity_entity", "entity_type", "entity_id"),
    )
