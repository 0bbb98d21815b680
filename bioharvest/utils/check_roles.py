# bioharvest/utils/check_roles.py
import logging
from functools import wraps
from typing import Callable

from fastapi import HTTPException

logger = logging.getLogger(__name__)


def require_role(roles: list[str]):
    """
    Route decorator. The route must declare `_user=Depends(get_current_user)`;
    the wrapper reads it from the keyword arguments and passes it through.
    """
    allowed = {r.lower() for r in roles}

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, _user, **kwargs):
            if _user is None:
                raise HTTPException(status_code=401, detail="User not authenticated")
            if (_user.role or "").lower() not in allowed:
                logger.warning("User %s (%s) denied access to %s", _user.id, _user.role, func.__name__)
                raise HTTPException(status_code=403, detail="Permission denied")
            return await func(*args, _user=_user, **kwargs)
        return wrapper
    return decorator
