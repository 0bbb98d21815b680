import asyncio
import logging
import os

from bioharvest.core.db import AsyncSessionLocal, init_models
from bioharvest.core.security import hash_password
from bioharvest.models.user_models import User
from bioharvest.services.auth_service import get_user_by_email

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def create_admin():
    email = os.getenv("ADMIN_EMAIL", "admin@bioharvest.local").lower()
    password = os.getenv("ADMIN_PASSWORD")
    if not password:
        raise ValueError("ADMIN_PASSWORD environment variable must be set")

    await init_models()
    async with AsyncSessionLocal() as session:
        if await get_user_by_email(session, email):
            logger.info("Admin %s already exists", email)
            return
        admin = User(
            name=os.getenv("ADMIN_NAME", "Administrator"),
            email=email,
            password_hash=hash_password(password),
            role="admin",
            is_active=True
        )
        session.add(admin)
        await session.commit()
        logger.info("Admin user %s created", email)


if __name__ == "__main__":
    asyncio.run(create_admin())
