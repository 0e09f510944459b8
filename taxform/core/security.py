"""Bearer token verification and role-based permissions.

Access tokens are issued by the external auth provider (Supabase-style HS256
JWTs). This module only verifies them: signature, expiry, audience and
issuer. It then turns the claims into an ``AuthenticatedUser``. The user's
role is read from the ``app_metadata.role`` claim and mapped to permission
strings such as ``tax:read`` and ``tax:write``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import jwt
from jwt import ExpiredSignatureError
from jwt import InvalidTokenError as PyJWTInvalidTokenError

from taxform.core.exceptions import UnauthorizedError

if TYPE_CHECKING:
    from taxform.core.config import AuthConfig

DEFAULT_ROLE: Final[str] = "vendor"
WILDCARD_PERMISSION: Final[str] = "*"

# Permissions granted to each role. Admins hold every permission.
ROLE_PERMISSIONS: Final[dict[str, frozenset[str]]] = {
    "admin": frozenset({WILDCARD_PERMISSION}),
    "vendor": frozenset(
        {
            "forms:read",
            "forms:write",
            "forms:delete",
            "forms:submit",
            "forms:generate",
            "entries:read",
            "entries:write",
            "entries:delete",
            "identifiers:read",
            "identifiers:write",
            "payments:read",
            "tax:read",
        }
    ),
    "readonly": frozenset(
        {
            "forms:read",
            "entries:read",
            "identifiers:read",
            "payments:read",
            "tax:read",
        }
    ),
}


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """The caller identified by a verified access token."""

    id: str
    role: str
    email: str | None = None

    def has_permission(self, permission: str) -> bool:
        """Check whether the user's role grants ``permission``.

        Unknown roles grant nothing.
        """
        granted = ROLE_PERMISSIONS.get(self.role, frozenset())
        return WILDCARD_PERMISSION in granted or permission in granted


def decode_access_token(token: str, config: AuthConfig) -> dict[str, Any]:
    """Verify ``token`` and return its claims.

    Args:
        token: Raw JWT taken from the Authorization header.
        config: Token verification settings.

    Returns:
        dict[str, Any]: The verified claims.

    Raises:
        UnauthorizedError: If the token is expired, malformed, wrongly signed
            or issued for another audience or issuer.
    """
    options = {"require": ["exp", "sub"], "verify_aud": config.jwt_audience is not None}
    try:
        return jwt.decode(
            token,
            config.jwt_secret.get_secret_value(),
            algorithms=[config.jwt_algorithm],
            audience=config.jwt_audience,
            issuer=config.jwt_issuer,
            leeway=config.leeway_seconds,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise UnauthorizedError("Access token has expired", cause=exc) from exc
    except PyJWTInvalidTokenError as exc:
        raise UnauthorizedError(
            "Access token is invalid",
            context={"reason": type(exc).__name__},
            cause=exc,
        ) from exc


def user_from_claims(claims: dict[str, Any]) -> AuthenticatedUser:
    """Build the caller identity from verified token claims.

    Raises:
        UnauthorizedError: If the subject claim is empty.
    """
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise UnauthorizedError("Access token has no subject")

    app_metadata = claims.get("app_metadata")
    role = DEFAULT_ROLE
    if isinstance(app_metadata, dict) and app_metadata.get("role"):
        role = str(app_metadata["role"]).lower()

    return AuthenticatedUser(id=subject, role=role, email=claims.get("email"))


def authenticate_token(token: str, config: AuthConfig) -> AuthenticatedUser:
    """Verify ``token`` and resolve the user it was issued to."""
    return user_from_claims(decode_access_token(token, config))
