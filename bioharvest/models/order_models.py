from decimal import Decimal
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from bioharvest.core.db import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    items = Column(JSON, nullable=False, default=list)

    subtotal = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    delivery_fee = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))
    amount = Column(Numeric(14, 2), nullable=False, default=Decimal("0.00"))

    promo_code = Column(String(50), nullable=True)
    promo_id = Column(Integer, ForeignKey("promocodes.id"), nullable=True)

    order_type = Column(String(20), nullable=False, default="food")  # food or course
    status = Column(String(40), nullable=False, default="processing")  # processing, out_for_delivery, delivered, cancelled
    payment = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="orders", lazy="raise")
