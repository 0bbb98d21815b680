from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]


class OrderItem(BaseModel):
    name: str = Field(..., min_length=1)
    price: NonNegativeDecimal
    quantity: int = Field(1, ge=1)


class OrderCreate(BaseModel):
    items: List[OrderItem] = Field(..., min_length=1)
    delivery_fee: NonNegativeDecimal = Decimal("0")
    promo_code: Optional[str] = None
    order_type: str = Field("food", pattern="^(food|course)$")


class OrderOut(BaseModel):
    id: int
    user_id: int
    items: list
    subtotal: Decimal
    delivery_fee: Decimal
    discount: Decimal
    amount: Decimal
    promo_code: Optional[str]
    promo_id: Optional[int]
    order_type: str
    status: str
    payment: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = Field(None, pattern="^(processing|out_for_delivery|delivered|cancelled)$")
    payment: Optional[bool] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and self.payment is None:
            raise ValueError("Provide a status or a payment flag")
        return self
