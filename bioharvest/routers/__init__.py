# bioharvest/routers/__init__.py

from .auth_router import router as auth_router
from .course_router import router as course_router
from .enrollment_router import router as enrollment_router
from .order_router import router as order_router
from .promo_router import router as promo_router

__all__ = [
    "auth_router",
    "course_router",
    "enrollment_router",
    "order_router",
    "promo_router",
]
