from fastapi import HTTPException
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from bioharvest.models.course_models import Course, CourseSection
from bioharvest.schemas.course_schemas import CourseCreate, CourseUpdate, SectionCreate
from bioharvest.utils.activity_helpers import log_user_activity


async def get_course(db: AsyncSession, course_id: int, include_inactive: bool = True) -> Course:
    query = select(Course).where(Course.id == course_id).execution_options(populate_existing=True)
    if not include_inactive:
        query = query.where(Course.is_active.is_(True))
    result = await db.execute(query)
    course = result.scalar_one_or_none()
    if not course:
        raise HTTPException(status_code=404, detail="Course not found")
    return course


async def list_courses(db: AsyncSession, include_inactive: bool = False, category: str | None = None):
    query = select(Course)
    if not include_inactive:
        query = query.where(Course.is_active.is_(True))
    if category:
        query = query.where(Course.category == category)
    result = await db.execute(query.order_by(Course.created_at.desc(), Course.id.desc()))
    return result.scalars().all()


async def create_course(db: AsyncSession, payload: CourseCreate, _user) -> Course:
    data = payload.model_dump(exclude={"sections"})
    course = Course(**data, enrolled_students=0)
    for index, section in enumerate(payload.sections):
        course.sections.append(CourseSection(
            title=section.title,
            description=section.description,
            duration=section.duration,
            position=section.position if section.position is not None else index,
        ))
    db.add(course)
    await db.flush()

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="course",
        entity_id=course.id,
        message=f"Created course '{course.title}' with {len(payload.sections)} sections"
    )

    await db.commit()
    return await get_course(db, course.id)


async def update_course(db: AsyncSession, course_id: int, payload: CourseUpdate, _user) -> Course:
    course = await get_course(db, course_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        if value is None and key not in ("instructor_title",):
            continue
        setattr(course, key, value)

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="course",
        entity_id=course.id,
        message=f"Updated course '{course.title}' (ID: {course.id})"
    )

    await db.commit()
    return await get_course(db, course.id)


async def add_section(db: AsyncSession, course_id: int, payload: SectionCreate, _user) -> Course:
    course = await get_course(db, course_id)

    position = payload.position
    if position is None:
        result = await db.execute(
            select(func.coalesce(func.max(CourseSection.position) + 1, 0)).where(CourseSection.course_id == course_id)
        )
        position = result.scalar_one()

    db.add(CourseSection(
        course_id=course.id,
        title=payload.title,
        description=payload.description,
        duration=payload.duration,
        position=position,
    ))

    await log_user_activity(
        db=db,
        user_id=_user.id,
        username=_user.email,
        entity_type="course",
        entity_id=course.id,
        message=f"Added section '{payload.title}' to course '{course.title}'"
    )

    await db.commit()
    return await get_course(db, course.id)
