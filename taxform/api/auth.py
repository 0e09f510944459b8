"""Authentication and authorization dependencies.

Routes declare what they need with ``require_permission``::

    @router.post("", dependencies=[Depends(require_permission("tax:write"))])

The bearer token is verified once per request and the resulting
``AuthenticatedUser`` is shared by every dependency that asks for it.
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger

from taxform.core.config import Settings, get_settings
from taxform.core.context import RequestContext
from taxform.core.exceptions import ForbiddenError, UnauthorizedError
from taxform.core.security import AuthenticatedUser, authenticate_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> AuthenticatedUser:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Raises:
        UnauthorizedError: If the header is missing or the token is rejected.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Authentication required")

    user = authenticate_token(credentials.credentials, settings.auth_config)
    RequestContext.set_user_id(user.id)
    logger.debug("Authenticated user {} with role {}", user.id, user.role)
    return user


CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]


def require_permission(
    permission: str,
) -> Callable[[AuthenticatedUser], Awaitable[AuthenticatedUser]]:
    """Build a dependency that admits only users holding ``permission``."""

    async def check_permission(user: CurrentUser) -> AuthenticatedUser:
        if not user.has_permission(permission):
            raise ForbiddenError(
                f"Missing required permission: {permission}",
                context={"permission": permission, "role": user.role},
            )
        return user

    return check_permission
