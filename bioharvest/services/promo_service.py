# bioharvest/services/promo_service.py
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bioharvest.core.exceptions import ErrorCode, ERROR_MESSAGES, PromoError
from bioharvest.models.promo_models import PromoCode, PromoRedemption, DiscountType, UNLIMITED
from bioharvest.schemas.promo_schemas import PromoCreate, PromoUpdate
from bioharvest.utils.activity_helpers import log_user_activity
from bioharvest.utils.datetime_utils import utcnow, ensure_utc
from bioharvest.utils.decimal_utils import to_decimal, percent_of, clamp, ZERO

logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


# -----------------------
# PURE RULES
# -----------------------
def compute_discount(promo: PromoCode, cart_total) -> Decimal:
    """Discount for a cart, always within [0, cart_total]."""
    cart_total = to_decimal(cart_total)
    if cart_total <= ZERO:
        return ZERO

    if promo.discount_type == DiscountType.PERCENTAGE:
        discount = percent_of(cart_total, promo.discount_value)
        if promo.max_discount is not None:
            discount = min(discount, to_decimal(promo.max_discount))
    else:
        discount = to_decimal(promo.discount_value)

    return clamp(discount, ZERO, cart_total)


def check_promo(promo: PromoCode, cart_total, user_usage: int, now: Optional[datetime] = None) -> Optional[ErrorCode]:
    """First violated rule, in the order callers see them, or None when usable."""
    now = now or utcnow()
    start = ensure_utc(promo.start_date)
    end = ensure_utc(promo.end_date)

    if not promo.is_active:
        return ErrorCode.INACTIVE
    if end is not None and now > end:
        return ErrorCode.EXPIRED
    if start is not None and now < start:
        return ErrorCode.NOT_YET_STARTED
    if to_decimal(cart_total) < to_decimal(promo.minimum_order_amount):
        return ErrorCode.BELOW_MINIMUM
    if not promo.is_unlimited and promo.current_usage >= promo.max_usage:
        return ErrorCode.LIMIT_REACHED
    if user_usage >= promo.max_usage_per_user:
        return ErrorCode.PER_USER_LIMIT_REACHED
    return None


@dataclass
class PromoValidation:
    valid: bool
    discount: Decimal = ZERO
    promo: Optional[PromoCode] = None
    reason: Optional[ErrorCode] = None

    @property
    def promo_id(self) -> Optional[int]:
        return self.promo.id if self.promo else None

    @property
    def message(self) -> str:
        if self.valid:
            return "Promo code is valid"
        if self.reason == ErrorCode.BELOW_MINIMUM and self.promo is not None:
            return f"Minimum order amount of {to_decimal(self.promo.minimum_order_amount)} required"
        return ERROR_MESSAGES[self.reason]


# -----------------------
# LOOKUPS
# -----------------------
async def get_promo_by_code(db: AsyncSession, code: str) -> PromoCode | None:
    result = await db.execute(select(PromoCode).where(PromoCode.code == normalize_code(code)))
    return result.scalar_one_or_none()


async def get_promo_by_id(db: AsyncSession, promo_id: int) -> PromoCode | None:
    result = await db.execute(
        select(PromoCode).where(PromoCode.id == promo_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_user_redemptions(db: AsyncSession, promo_id: int, user_id: int) -> int:
    result = await db.execute(
        select(func.count(PromoRedemption.id)).where(
            PromoRedemption.promo_id == promo_id,
            PromoRedemption.user_id == user_id,
        )
    )
    return result.scalar_one()


# -----------------------
# VALIDATE (read-only)
# -----------------------
async def validate_promo_code(db: AsyncSession, code: str, cart_total, user_id: int) -> PromoValidation:
    """
    Check a promo code against a cart without consuming it.
    Failures are returned, not raised, so the caller can show the reason.
    """
    promo = await get_promo_by_code(db, code)
    if not promo:
        return PromoValidation(valid=False, reason=ErrorCode.NOT_FOUND)

    user_usage = await count_user_redemptions(db, promo.id, user_id)
    reason = check_promo(promo, cart_total, user_usage)
    if reason:
        logger.info("Promo %s rejected for user %s: %s", promo.code, user_id, reason.value)
        return PromoValidation(valid=False, promo=promo, reason=reason)

    return PromoValidation(valid=True, promo=promo, discount=compute_discount(promo, cart_total))


# -----------------------
# REDEEM (order finalization only)
# -----------------------
async def _existing_redemption(db: AsyncSession, order_id: int) -> PromoRedemption | None:
    result = await db.execute(select(PromoRedemption).where(PromoRedemption.order_id == order_id))
    return result.scalar_one_or_none()


def _replay(existing: PromoRedemption, promo_id: int) -> PromoRedemption:
    if existing.promo_id != promo_id:
        raise PromoError(ErrorCode.ORDER_ALREADY_REDEEMED)
    return existing


async def _diagnose_rejected_increment(db: AsyncSession, promo_id: int) -> ErrorCode:
    promo = await get_promo_by_id(db, promo_id)
    if not promo:
        return ErrorCode.NOT_FOUND
    now = utcnow()
    if not promo.is_active:
        return ErrorCode.INACTIVE
    end = ensure_utc(promo.end_date)
    if end is not None and now > end:
        return ErrorCode.EXPIRED
    start = ensure_utc(promo.start_date)
    if start is not None and now < start:
        return ErrorCode.NOT_YET_STARTED
    return ErrorCode.LIMIT_REACHED


async def redeem_promo(
    db: AsyncSession,
    promo_id: int,
    user_id: int,
    order_id: int,
    discount=ZERO,
    commit: bool = True,
) -> PromoRedemption:
    """
    Consume one use of a promo for an order.

    Idempotent per order_id. The usage counter only moves through a single
    conditional UPDATE, so concurrent redemptions cannot overshoot max_usage.
    With commit=False the caller owns the transaction and must roll back on error.
    """
    try:
        existing = await _existing_redemption(db, order_id)
        if existing:
            return _replay(existing, promo_id)

        redemption = PromoRedemption(
            promo_id=promo_id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=to_decimal(discount),
            redeemed_at=utcnow(),
        )
        try:
            async with db.begin_nested():
                db.add(redemption)
        except IntegrityError:
            # a concurrent call for the same order won the insert
            existing = await _existing_redemption(db, order_id)
            if existing is None:
                raise
            return _replay(existing, promo_id)

        now = utcnow()
        result = await db.execute(
            update(PromoCode)
            .where(
                PromoCode.id == promo_id,
                PromoCode.is_active.is_(True),
                or_(PromoCode.end_date.is_(None), PromoCode.end_date >= now),
                or_(PromoCode.start_date.is_(None), PromoCode.start_date <= now),
                or_(PromoCode.max_usage == UNLIMITED, PromoCode.current_usage < PromoCode.max_usage),
            )
            .values(current_usage=PromoCode.current_usage + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise PromoError(await _diagnose_rejected_increment(db, promo_id))

        promo = await get_promo_by_id(db, promo_id)
        used = await count_user_redemptions(db, promo_id, user_id)
        if used > promo.max_usage_per_user:
            raise PromoError(ErrorCode.PER_USER_LIMIT_REACHED)

        if commit:
            await db.commit()
        logger.info("Promo %s redeemed by user %s for order %s", promo.code, user_id, order_id)
        return redemption
    except PromoError as exc:
        logger.warning("Promo %s redemption rejected for order %s: %s", promo_id, order_id, exc.code.value)
        if commit:
            await db.rollback()
        raise


# -----------------------
# ADMIN: CREATE
# -----------------------
async def create_promo(db: AsyncSession, payload: PromoCreate, _user) -> PromoCode:
    existing = await get_promo_by_code(db, payload.code)
    if existing:
        raise PromoError(ErrorCode.PROMO_CODE_EXISTS)

    data = payload.model_dump()
    data["start_date"] = ensure_utc(data.get("start_date")) or utcnow()
    data["end_date"] = ensure_utc(data.get("end_date"))
    if data["discount_type"] != DiscountType.PERCENTAGE:
        data["max_discount"] = None

    promo = PromoCode(**data, current_usage=0, created_by=_user.id)
    db.add(promo)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise PromoError(ErrorCode.PROMO_CODE_EXISTS)

    if promo.send_notification and promo.notification_message:
        # delivery belongs to the notification service; only record the intent here
        logger.info("Promo %s flagged for user notification", promo.code)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="promo_code",
        entity_id=promo.id,
        message=f"Created promo code '{promo.name}' ({promo.code})"
    )

    await db.commit()
    await db.refresh(promo)
    return promo


# -----------------------
# ADMIN: READ
# -----------------------
async def list_promos(
    db: AsyncSession,
    is_active: bool | None = None,
    code: str | None = None,
    discount_type: DiscountType | None = None,
    expired: bool | None = None,
):
    filters = []
    now = utcnow()

    if is_active is not None:
        filters.append(PromoCode.is_active.is_(is_active))
    if code:
        filters.append(PromoCode.code.ilike(f"%{normalize_code(code)}%"))
    if discount_type:
        filters.append(PromoCode.discount_type == discount_type)
    if expired is True:
        filters.append(and_(PromoCode.end_date.is_not(None), PromoCode.end_date < now))
    elif expired is False:
        filters.append(or_(PromoCode.end_date.is_(None), PromoCode.end_date >= now))

    query = select(PromoCode).where(and_(*filters)).order_by(PromoCode.created_at.desc(), PromoCode.id.desc())
    result = await db.execute(query)
    return result.scalars().all()


async def get_promo_detail(db: AsyncSession, promo_id: int) -> dict:
    promo = await get_promo_by_id(db, promo_id)
    if not promo:
        raise PromoError(ErrorCode.NOT_FOUND, "Promo code not found")

    result = await db.execute(
        select(
            func.count(PromoRedemption.id),
            func.count(func.distinct(PromoRedemption.user_id)),
        ).where(PromoRedemption.promo_id == promo_id)
    )
    redemption_count, unique_users = result.one()
    return {"promo": promo, "redemption_count": redemption_count, "unique_users": unique_users}


async def get_promo_stats(db: AsyncSession) -> dict:
    now = utcnow()
    total = (await db.execute(select(func.count(PromoCode.id)))).scalar_one()
    active = (await db.execute(
        select(func.count(PromoCode.id)).where(PromoCode.is_active.is_(True))
    )).scalar_one()
    expired = (await db.execute(
        select(func.count(PromoCode.id)).where(PromoCode.end_date.is_not(None), PromoCode.end_date < now)
    )).scalar_one()
    total_usage = (await db.execute(select(func.coalesce(func.sum(PromoCode.current_usage), 0)))).scalar_one()

    top = (await db.execute(
        select(PromoCode)
        .where(PromoCode.current_usage > 0)
        .order_by(PromoCode.current_usage.desc(), PromoCode.id)
        .limit(5)
    )).scalars().all()
    # nothing redeemed yet: show the newest codes instead
    if not top:
        top = (await db.execute(
            select(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).limit(5)
        )).scalars().all()

    return {
        "total_promos": total,
        "active_promos": active,
        "expired_promos": expired,
        "total_usage": int(total_usage),
        "top_promos": top,
    }


# -----------------------
# ADMIN: UPDATE
# -----------------------
async def update_promo(db: AsyncSession, promo_id: int, payload: PromoUpdate, _user) -> PromoCode:
    promo = await get_promo_by_id(db, promo_id)
    if not promo:
        raise PromoError(ErrorCode.NOT_FOUND, "Promo code not found")

    update_data = payload.model_dump(exclude_unset=True)

    # columns that cannot be cleared
    for key in ("name", "discount_type", "discount_value", "minimum_order_amount",
                "max_usage", "max_usage_per_user", "start_date", "is_active", "send_notification"):
        if key in update_data and update_data[key] is None:
            del update_data[key]

    dtype = update_data.get("discount_type", promo.discount_type)
    dval = update_data.get("discount_value", promo.discount_value)
    if dtype == DiscountType.PERCENTAGE and to_decimal(dval) > 100:
        raise HTTPException(status_code=400, detail="Percentage discount must be between 0 and 100")
    if dtype != DiscountType.PERCENTAGE:
        update_data["max_discount"] = None

    if "start_date" in update_data:
        update_data["start_date"] = ensure_utc(update_data["start_date"])
    if "end_date" in update_data:
        update_data["end_date"] = ensure_utc(update_data["end_date"])

    start = update_data.get("start_date", ensure_utc(promo.start_date))
    end = update_data["end_date"] if "end_date" in update_data else ensure_utc(promo.end_date)
    if start and end and start >= end:
        raise HTTPException(status_code=400, detail="Start date must be before end date")
    # same guard as reactivate_promo: an expired code cannot be switched back on
    if update_data.get("is_active") is True and end is not None and end < utcnow():
        raise PromoError(ErrorCode.EXPIRED, "Cannot activate an expired promo code")

    for key, value in update_data.items():
        setattr(promo, key, value)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="promo_code",
        entity_id=promo.id,
        message=f"Updated promo code '{promo.code}' (ID: {promo.id})"
    )

    await db.commit()
    await db.refresh(promo)
    return promo


# -----------------------
# ADMIN: DEACTIVATE / REACTIVATE
# -----------------------
async def deactivate_promo(db: AsyncSession, promo_id: int, _user) -> PromoCode:
    """Promos referenced by orders are never deleted, only switched off."""
    promo = await get_promo_by_id(db, promo_id)
    if not promo:
        raise PromoError(ErrorCode.NOT_FOUND, "Promo code not found")

    promo.is_active = False

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="promo_code",
        entity_id=promo.id,
        message=f"Deactivated promo code '{promo.code}' (ID: {promo.id})"
    )

    await db.commit()
    await db.refresh(promo)
    return promo


async def reactivate_promo(db: AsyncSession, promo_id: int, _user) -> PromoCode:
    promo = await get_promo_by_id(db, promo_id)
    if not promo:
        raise PromoError(ErrorCode.NOT_FOUND, "Promo code not found")

    if promo.is_active:
        raise HTTPException(status_code=400, detail="Promo code is already active")
    if promo.is_expired:
        raise PromoError(ErrorCode.EXPIRED, "Cannot reactivate an expired promo code")

    promo.is_active = True

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="promo_code",
        entity_id=promo.id,
        message=f"Reactivated promo code '{promo.code}' (ID: {promo.id})"
    )

    await db.commit()
    await db.refresh(promo)
    return promo
