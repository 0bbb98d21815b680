# bioharvest/utils/activity_helpers.py
import logging

from sqlalchemy.ext.asyncio import AsyncSession
from bioharvest.models.activity_models import UserActivity

logger = logging.getLogger(__name__)


async def log_user_activity(
    db: AsyncSession,
    user_id: int | None = None,
    username: str | None = None,
    message: str = "",
    entity_type: str | None = None,
    entity_id: int | None = None,
    commit: bool = False,
) -> UserActivity:
    """
    Stage an audit row in the caller's transaction, so it is written
    only if the change it describes is committed.
    """
    activity = UserActivity(
        user_id=user_id,
        username=username or "system",
        entity_type=entity_type,
        entity_id=entity_id,
        message=message,
    )
    db.add(activity)
    logger.debug("Activity by %s: %s", activity.username, message)
    if commit:
        await db.commit()
    return activity
