# bioharvest/models/promo_models.py
import enum
from decimal import Decimal
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, Enum, Index, Text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bioharvest.core.db import Base
from bioharvest.utils.datetime_utils import utcnow, ensure_utc

UNLIMITED = -1


class DiscountType(str, enum.Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class PromoCode(Base):
    __tablename__ = "promocodes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)

    discount_type = Column(Enum(DiscountType, name="discount_type"), nullable=False, default=DiscountType.FIXED)
    discount_value = Column(Numeric(10, 2), nullable=False)
    max_discount = Column(Numeric(10, 2), nullable=True)  # percentage only
    minimum_order_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    max_usage = Column(Integer, nullable=False, default=UNLIMITED)
    max_usage_per_user = Column(Integer, nullable=False, default=1)
    current_usage = Column(Integer, nullable=False, default=0)

    start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    send_notification = Column(Boolean, default=False)
    notification_message = Column(String(255), nullable=True)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now(), server_default=func.now())

    redemptions = relationship("PromoRedemption", back_populates="promo", lazy="raise")

    __table_args__ = (
        Index("ix_promocodes_code_active", "code", "is_active"),
        Index("ix_promocodes_end_date", "end_date"),
    )

    @property
    def is_unlimited(self) -> bool:
        return self.max_usage == UNLIMITED

    @property
    def is_expired(self) -> bool:
        end = ensure_utc(self.end_date)
        return end is not None and utcnow() > end


class PromoRedemption(Base):
    __tablename__ = "promo_redemptions"

    id = Column(Integer, primary_key=True, index=True)
    promo_id = Column(Integer, ForeignKey("promocodes.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # one redemption per order
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    redeemed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    promo = relationship("PromoCode", back_populates="redemptions", lazy="raise")

    __table_args__ = (
        Index("ix_promo_redemptions_promo_user", "promo_id", "user_id"),
    )
