# bioharvest/services/auth_service.py
from datetime import timedelta
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bioharvest.models.user_models import User
from bioharvest.core.security import verify_password, hash_password, create_access_token
from bioharvest.core.config import ACCESS_TOKEN_EXPIRE_MINUTES, ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES
from bioharvest.schemas.user_schemas import UserRegister
from bioharvest.utils.datetime_utils import utcnow


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email.lower()))
    return result.scalars().first()


async def register_user(db: AsyncSession, payload: UserRegister, role: str = "student") -> User:
    if await get_user_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        name=payload.name,
        email=payload.email.lower(),
        password_hash=hash_password(payload.password),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def authenticate_user(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials"
        )
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive.")
    return user


async def create_token(db: AsyncSession, user: User) -> str:
    """
    Issue an access token. token_version lets logout invalidate it immediately.
    """
    expire_minutes = (
        ADMIN_ACCESS_TOKEN_EXPIRE_MINUTES
        if user.is_admin
        else ACCESS_TOKEN_EXPIRE_MINUTES
    )

    access_token = create_access_token(
        {"sub": user.email, "user_id": user.id, "role": user.role},
        token_version=user.token_version,
        expires_delta=timedelta(minutes=expire_minutes),
    )

    user.last_login = utcnow()
    await db.commit()
    return access_token


async def logout_user(db: AsyncSession, user: User):
    user.token_version += 1
    await db.commit()
    return {"msg": "Logged out successfully"}
