# main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bioharvest.core.config import CORS_ORIGINS, LOG_LEVEL
from bioharvest.core.db import init_models
from bioharvest.core.exceptions import AppHttpException, app_exception_handler
from bioharvest.routers import (
    auth_router,
    course_router,
    enrollment_router,
    order_router,
    promo_router,
)

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="BioHarvest API",
    description="FastAPI backend for BioHarvest courses, enrollments, orders and promo codes",
    version="0.1.0"
)
# CORS setup
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(AppHttpException, app_exception_handler)


# Health check endpoint
@app.get("/", tags=["Health"])
async def health_check():
    return {"status": "ok", "message": "Backend is running"}

# Register routers
app.include_router(auth_router)
app.include_router(promo_router)
app.include_router(course_router)
app.include_router(enrollment_router)
app.include_router(order_router)


@app.on_event("startup")
async def on_startup():
    await init_models()
    logger.info("Database tables ready")
