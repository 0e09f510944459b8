"""FastAPI dependency that scopes one database session to one request."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from taxform.infrastructure.database.session import get_async_session


async def get_db() -> AsyncGenerator[AsyncSession]:
    """Yield a request-scoped session.

    The session commits after the route handler returns and rolls back if it
    raises. The dependency is function-scoped, so the commit finishes before
    the response is built and a failed commit reaches the client as an error.

    Yields:
        AsyncGenerator[AsyncSession]: Session for the current request.
    """
    async with get_async_session() as session:
        yield session


DatabaseSession = Annotated[AsyncSession, Depends(get_db, scope="function")]
