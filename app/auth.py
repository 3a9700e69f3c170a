import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from . import config
from .shared.exceptions import Unauthorized
from .webhook_security import constant_time_compare

logger = logging.getLogger(__name__)

# auto_error is off so a missing header is reported as 401 by our own handler
security = HTTPBearer(auto_error=False)


async def get_current_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> str:
    """
    Authorize the single operator by static bearer token.

    Admin routes are closed entirely while ADMIN_API_TOKEN is unset.
    """
    if not config.ADMIN_API_TOKEN:
        logger.error("❌ ADMIN_API_TOKEN not configured - rejecting admin request")
        raise Unauthorized()

    if credentials is None or not credentials.credentials:
        raise Unauthorized()

    if not constant_time_compare(credentials.credentials, config.ADMIN_API_TOKEN):
        logger.warning("🚫 Admin request with invalid token")
        raise Unauthorized("Invalid admin token.")

    return "admin"
