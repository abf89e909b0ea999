"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.database import init_db


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _parse_user_id(x_user_id: str) -> UUID:
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-User-ID format",
        )


async def get_acting_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID | None:
    """Acting user from the X-User-ID header, when present."""
    if not x_user_id:
        return None
    return _parse_user_id(x_user_id)


async def require_acting_user_id(
    x_user_id: Annotated[str | None, Header()] = None
) -> UUID:
    """Acting user from the X-User-ID header; required."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-ID header is required",
        )
    return _parse_user_id(x_user_id)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActingUserId = Annotated[UUID | None, Depends(get_acting_user_id)]
RequiredUserId = Annotated[UUID, Depends(require_acting_user_id)]
