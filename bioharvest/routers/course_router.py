from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from bioharvest.core.db import get_db
from bioharvest.schemas.course_schemas import CourseCreate, CourseUpdate, CourseOut, SectionCreate
from bioharvest.services import course_service
from bioharvest.utils.check_roles import require_role
from bioharvest.utils.get_user import get_current_user, get_optional_user

router = APIRouter(prefix="/courses", tags=["Courses"])


@router.post("", response_model=CourseOut, status_code=201)
@require_role(["admin"])
async def route_create_course(
    payload: CourseCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await course_service.create_course(db, payload, _user)


@router.get("", response_model=List[CourseOut])
async def route_list_courses(
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_optional_user),
    category: str | None = Query(None, description="Filter by category"),
):
    """Public catalogue. Inactive courses are listed for admins only."""
    is_admin = current_user is not None and current_user.is_admin
    return await course_service.list_courses(db, include_inactive=is_admin, category=category)


@router.get("/{course_id}", response_model=CourseOut)
async def route_get_course(
    course_id: int,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(get_optional_user),
):
    is_admin = current_user is not None and current_user.is_admin
    return await course_service.get_course(db, course_id, include_inactive=is_admin)


@router.put("/{course_id}", response_model=CourseOut)
@require_role(["admin"])
async def route_update_course(
    course_id: int,
    payload: CourseUpdate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await course_service.update_course(db, course_id, payload, _user)


@router.post("/{course_id}/sections", response_model=CourseOut, status_code=201)
@require_role(["admin"])
async def route_add_section(
    course_id: int,
    payload: SectionCreate,
    db: AsyncSession = Depends(get_db),
    _user=Depends(get_current_user)
):
    return await course_service.add_section(db, course_id, payload, _user)
