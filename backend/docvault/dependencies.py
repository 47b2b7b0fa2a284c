import logging

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.database import get_db
from docvault.models import User

logger = logging.getLogger(__name__)


async def get_current_user(
    x_user_id: int | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the acting user from the X-User-Id header set by the gateway."""
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    result = await db.execute(select(User).where(User.id == x_user_id))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Unknown user id", extra={"user_id": x_user_id})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    return user
