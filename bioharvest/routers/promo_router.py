from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from bioharvest.core.db import get_db
from bioharvest.core.exceptions import ERROR_STATUS
from bioharvest.models.promo_models import DiscountType
from bioharvest.schemas.promo_schemas import (
    PromoCreate,
    PromoUpdate,
    PromoOut,
    PromoDetailOut,
    PromoStatsOut,
    PromoValidateRequest,
    PromoValidationOut,
)
from bioharvest.services import promo_service
from bioharvest.utils.check_roles import require_role
from bioharvest.utils.decimal_utils import to_decimal
from bioharvest.utils.get_user import get_current_user

router = APIRouter(prefix="/promos", tags=["Promo Codes"])


@router.post("", response_model=PromoOut, status_code=201)
@require_role(["admin"])
async def route_create_promo(
    payload: PromoCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    """
    Create a promo code. Codes are stored upper-cased and must be unique.
    """
    return await promo_service.create_promo(db, payload, _user)


@router.get("", response_model=List[PromoOut])
@require_role(["admin"])
async def route_list_promos(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user),
    is_active: bool | None = Query(None, description="Filter by active flag"),
    code: str | None = Query(None, description="Filter by code (partial match)"),
    discount_type: DiscountType | None = Query(None, description="Filter by type (fixed/percentage)"),
    expired: bool | None = Query(None, description="Only expired (true) or only unexpired (false)"),
):
    return await promo_service.list_promos(
        db,
        is_active=is_active,
        code=code,
        discount_type=discount_type,
        expired=expired,
    )


@router.get("/stats", response_model=PromoStatsOut)
@require_role(["admin"])
async def route_promo_stats(
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await promo_service.get_promo_stats(db)


@router.post("/validate", response_model=PromoValidationOut)
async def route_validate_promo(
    payload: PromoValidateRequest,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """
    Check a code against the caller's cart. Nothing is consumed until the order is placed.
    """
    result = await promo_service.validate_promo_code(db, payload.promo_code, payload.cart_total, current_user.id)
    promo = result.promo
    body = PromoValidationOut(
        success=result.valid,
        message=result.message,
        reason=result.reason.value if result.reason else None,
        discount=result.discount,
        final_total=to_decimal(payload.cart_total - result.discount) if result.valid else None,
        promo_id=result.promo_id if result.valid else None,
        code=promo.code if promo else None,
        name=promo.name if result.valid else None,
        discount_type=promo.discount_type if result.valid else None,
        discount_value=promo.discount_value if result.valid else None,
        minimum_order_amount=promo.minimum_order_amount if promo else None,
    )
    status_code = 200 if result.valid else ERROR_STATUS.get(result.reason, 400)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.get("/{promo_id}", response_model=PromoDetailOut)
@require_role(["admin"])
async def route_get_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    detail = await promo_service.get_promo_detail(db, promo_id)
    out = PromoOut.model_validate(detail["promo"])
    return PromoDetailOut(
        **out.model_dump(),
        redemption_count=detail["redemption_count"],
        unique_users=detail["unique_users"],
    )


@router.put("/{promo_id}", response_model=PromoOut)
@require_role(["admin"])
async def route_update_promo(
    promo_id: int,
    payload: PromoUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await promo_service.update_promo(db, promo_id, payload, _user)


@router.delete("/{promo_id}", response_model=PromoOut)
@require_role(["admin"])
async def route_deactivate_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    """Soft delete: the code stays for order history but can no longer be used."""
    return await promo_service.deactivate_promo(db, promo_id, _user)


@router.patch("/{promo_id}/reactivate", response_model=PromoOut)
@require_role(["admin"])
async def route_reactivate_promo(
    promo_id: int,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await promo_service.reactivate_promo(db, promo_id, _user)
