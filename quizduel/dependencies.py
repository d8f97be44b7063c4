"""FastAPI dependencies."""
import hmac
import logging
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from quizduel.config import get_settings
from quizduel.database import get_db
from quizduel.models.user import User
from quizduel.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

settings = get_settings()


def _mask_identifier(identifier: str) -> str:
    """Mask a sensitive identifier for logging (e.g., user_id, token)."""
    if not identifier:
        return "<missing>"
    if len(identifier) <= 8:
        return f"{identifier[:2]}...{identifier[-2:]}"
    return f"{identifier[:4]}...{identifier[-4:]}"


def get_clock() -> Clock:
    """Source of "now" for services; overridden in tests."""
    return utc_now


async def get_current_user(
        request: Request,
        db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from the identity header set by the auth gateway."""
    raw_user_id = request.headers.get(settings.auth_user_header)
    if not raw_user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        user_id = UUID(raw_user_id.strip())
    except ValueError:
        logger.warning(f"Malformed {settings.auth_user_header} header: {_mask_identifier(raw_user_id)}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = await db.get(User, user_id, populate_existing=True)
    if user is None:
        logger.warning(f"Unknown user in {settings.auth_user_header} header: {_mask_identifier(raw_user_id)}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    return user


async def require_cleanup_token(
        cleanup_token: str | None = Header(default=None, alias="X-Cleanup-Token"),
) -> None:
    """Guard the scheduler endpoint when a cleanup token is configured."""
    expected = get_settings().cleanup_token
    if not expected:
        return
    if not cleanup_token or not hmac.compare_digest(cleanup_token, expected):
        logger.warning("Rejected cleanup request with missing or invalid token")
        raise HTTPException(status_code=403, detail="Invalid cleanup token")
