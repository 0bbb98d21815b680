import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bioharvest.core.exceptions import ErrorCode, OrderError, PromoError
from bioharvest.models.order_models import Order
from bioharvest.schemas.order_schemas import OrderCreate, OrderStatusUpdate
from bioharvest.services.promo_service import validate_promo_code, redeem_promo
from bioharvest.utils.activity_helpers import log_user_activity
from bioharvest.utils.decimal_utils import to_decimal, ZERO

logger = logging.getLogger(__name__)

FINAL_STATUSES = {"delivered", "cancelled"}


async def place_order(db: AsyncSession, user, payload: OrderCreate) -> Order:
    """
    Create an order and, when a promo code is supplied, redeem it in the same
    transaction. A rejected redemption aborts the order.
    """
    subtotal = to_decimal(sum((item.price * item.quantity for item in payload.items), ZERO))
    delivery_fee = to_decimal(payload.delivery_fee)

    promo = None
    discount = ZERO
    if payload.promo_code:
        validation = await validate_promo_code(db, payload.promo_code, subtotal, user.id)
        if not validation.valid:
            raise PromoError(validation.reason, validation.message)
        promo = validation.promo
        discount = validation.discount

    amount = to_decimal(subtotal + delivery_fee - discount)
    if discount > subtotal or (discount > ZERO and amount <= ZERO):
        raise OrderError(ErrorCode.INVALID_ORDER_TOTAL)

    order = Order(
        user_id=user.id,
        items=[item.model_dump(mode="json") for item in payload.items],
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        discount=discount,
        amount=amount,
        promo_code=promo.code if promo else None,
        promo_id=promo.id if promo else None,
        order_type=payload.order_type,
    )
    db.add(order)
    await db.flush()

    if promo:
        try:
            await redeem_promo(db, promo.id, user.id, order.id, discount=discount, commit=False)
        except PromoError:
            await db.rollback()
            raise

    await db.commit()
    await db.refresh(order)
    logger.info("Order %s placed by user %s (amount %s, discount %s)", order.id, user.id, amount, discount)
    return order


async def list_user_orders(db: AsyncSession, user_id: int, limit: int = 50, offset: int = 0):
    result = await db.execute(
        select(Order).where(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit).offset(offset)
    )
    return result.scalars().all()


async def list_orders(db: AsyncSession, status: str | None = None, limit: int = 100, offset: int = 0):
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    result = await db.execute(query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset))
    return result.scalars().all()


async def get_order(db: AsyncSession, order_id: int, user) -> Order:
    order = await db.get(Order, order_id)
    if not order or (not user.is_admin and order.user_id != user.id):
        raise HTTPException(status_code=404, detail="Order not found")
    return order


async def update_order_status(db: AsyncSession, order_id: int, payload: OrderStatusUpdate, _user) -> Order:
    """
    Admin fulfilment update. Delivered and cancelled orders are final,
    and a confirmed payment cannot be reverted.
    """
    order = await db.get(Order, order_id, populate_existing=True)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    changes = []
    if payload.status is not None and payload.status != order.status:
        if order.status in FINAL_STATUSES:
            raise HTTPException(status_code=400, detail=f"Order is already {order.status}")
        changes.append(f"status {order.status} -> {payload.status}")
        order.status = payload.status

    if payload.payment is not None and payload.payment != order.payment:
        if not payload.payment:
            raise HTTPException(status_code=400, detail="A confirmed payment cannot be reverted")
        order.payment = True
        changes.append("payment confirmed")

    if changes:
        await log_user_activity(
            db=db,
            user_id=_user.id,
            username=_user.email,
            entity_type="order",
            entity_id=order.id,
            message=f"Updated order {order.id}: {', '.join(changes)}"
        )
        await db.commit()
        logger.info("Order %s updated by admin %s: %s", order.id, _user.id, ", ".join(changes))
    return order
