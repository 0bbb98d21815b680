from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from typing_extensions import Annotated
from datetime import datetime
from decimal import Decimal

from bioharvest.models.promo_models import DiscountType, UNLIMITED

NonNegativeDecimal = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]


def _normalize_code(value: str) -> str:
    value = value.strip().upper()
    if not value:
        raise ValueError("Promo code must not be empty")
    return value


class PromoBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: Optional[str] = None
    discount_type: DiscountType = DiscountType.FIXED
    discount_value: NonNegativeDecimal
    max_discount: Optional[NonNegativeDecimal] = None
    minimum_order_amount: NonNegativeDecimal = Decimal("0")
    max_usage: int = Field(UNLIMITED, ge=UNLIMITED, description="-1 means unlimited")
    max_usage_per_user: int = Field(1, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: bool = True
    send_notification: bool = False
    notification_message: Optional[str] = Field(None, max_length=255)

    @field_validator("max_usage")
    @classmethod
    def check_max_usage(cls, v: int) -> int:
        if v == 0:
            raise ValueError("max_usage must be -1 (unlimited) or at least 1")
        return v

    @model_validator(mode="after")
    def check_rules(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount must be between 0 and 100")
        if self.start_date and self.end_date and self.start_date >= self.end_date:
            raise ValueError("Start date must be before end date")
        return self


class PromoCreate(PromoBase):
    code: str = Field(..., min_length=1, max_length=50)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return _normalize_code(v)


class PromoUpdate(BaseModel):
    # code is immutable once issued
    name: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[NonNegativeDecimal] = None
    max_discount: Optional[NonNegativeDecimal] = None
    minimum_order_amount: Optional[NonNegativeDecimal] = None
    max_usage: Optional[int] = Field(None, ge=UNLIMITED)
    max_usage_per_user: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    send_notification: Optional[bool] = None
    notification_message: Optional[str] = Field(None, max_length=255)

    @field_validator("max_usage")
    @classmethod
    def check_max_usage(cls, v: Optional[int]) -> Optional[int]:
        if v == 0:
            raise ValueError("max_usage must be -1 (unlimited) or at least 1")
        return v


class PromoOut(BaseModel):
    id: int
    code: str
    name: str
    description: Optional[str]
    discount_type: DiscountType
    discount_value: Decimal
    max_discount: Optional[Decimal]
    minimum_order_amount: Decimal
    max_usage: int
    max_usage_per_user: int
    current_usage: int
    start_date: datetime
    end_date: Optional[datetime]
    is_active: bool
    is_expired: bool
    is_unlimited: bool
    send_notification: bool
    notification_message: Optional[str]
    created_by: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class PromoDetailOut(PromoOut):
    redemption_count: int = 0
    unique_users: int = 0


class PromoValidateRequest(BaseModel):
    promo_code: str = Field(..., min_length=1)
    cart_total: NonNegativeDecimal


class PromoValidationOut(BaseModel):
    success: bool
    message: str
    reason: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    final_total: Optional[Decimal] = None
    promo_id: Optional[int] = None
    code: Optional[str] = None
    name: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = None
    minimum_order_amount: Optional[Decimal] = None


class TopPromo(BaseModel):
    id: int
    code: str
    name: str
    current_usage: int

    class Config:
        from_attributes = True


class PromoStatsOut(BaseModel):
    total_promos: int
    active_promos: int
    expired_promos: int
    total_usage: int
    top_promos: List[TopPromo]
