"""Request-scoped context stored in contextvars.

Holds the correlation ID of the current request and, once the bearer token
has been verified, the id of the acting user. Both survive ``await`` points
and are visible to logging and tracing helpers without being passed around.
"""

import uuid
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)


class RequestContext:
    """Accessors for the request-scoped context variables."""

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        return _correlation_id_var.get()

    @staticmethod
    def set_user_id(user_id: str) -> None:
        """Record the authenticated user for the rest of the request."""
        _user_id_var.set(user_id)

    @staticmethod
    def get_user_id() -> str | None:
        return _user_id_var.get()

    @staticmethod
    def clear() -> None:
        """Reset every context variable to its default."""
        _correlation_id_var.set(None)
        _user_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a UUID4 correlation ID.

    Returns:
        str: A string representation of a UUID4.
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a per-request identifier.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.

    Examples:
        >>> generate_request_id().startswith("req-")
        True
    """
    return f"req-{uuid.uuid4()}"
