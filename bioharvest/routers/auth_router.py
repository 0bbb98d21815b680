# bioharvest/routers/auth_router.py
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from bioharvest.core.db import get_db
from bioharvest.schemas.user_schemas import UserLogin, UserRegister, TokenResponse, UserOut, MessageResponse
from bioharvest.services.auth_service import authenticate_user, create_token, logout_user, register_user
from bioharvest.utils.get_user import get_current_user

router = APIRouter(prefix="/auth", tags=["Auth"])

@router.post("/register", response_model=UserOut, status_code=201)
async def register(data: UserRegister, db: AsyncSession = Depends(get_db)):
    return await register_user(db, data)

@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, db: AsyncSession = Depends(get_db)):
    user = await authenticate_user(db, data.email, data.password)
    access_token = await create_token(db, user)
    return TokenResponse(access_token=access_token)

@router.post("/logout", response_model=MessageResponse)
async def logout(db: AsyncSession = Depends(get_db), current_user = Depends(get_current_user)):
    """
    Invalidates every token issued to the user so far.
    """
    return await logout_user(db, current_user)

@router.get("/me", response_model=UserOut)
async def me(current_user = Depends(get_current_user)):
    return current_user
