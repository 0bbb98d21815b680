from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from bioharvest.core.db import get_db
from bioharvest.schemas.order_schemas import OrderCreate, OrderOut, OrderStatusUpdate
from bioharvest.services import order_service
from bioharvest.utils.check_roles import require_role
from bioharvest.utils.get_user import get_current_user

router = APIRouter(prefix="/orders", tags=["Orders"])


@router.post("", response_model=OrderOut, status_code=201)
async def route_place_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Place an order; a promo code is redeemed here and nowhere else."""
    return await order_service.place_order(db, current_user, payload)


@router.get("/me", response_model=List[OrderOut])
async def route_my_orders(
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
):
    return await order_service.list_user_orders(db, current_user.id, limit=limit, offset=offset)


@router.get("", response_model=List[OrderOut])
@require_role(["admin"])
async def route_list_orders(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
    status: str | None = Query(None, description="Filter by order status"),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    return await order_service.list_orders(db, status=status, limit=limit, offset=offset)


@router.get("/{order_id}", response_model=OrderOut)
async def route_get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    return await order_service.get_order(db, order_id, current_user)


@router.patch("/{order_id}/status", response_model=OrderOut)
@require_role(["admin"])
async def route_update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    """Move an order through fulfilment or record its confirmed payment."""
    return await order_service.update_order_status(db, order_id, payload, _user)
