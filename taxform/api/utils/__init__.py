"""Response helpers for the API layer."""

from taxform.api.utils.responses import ORJSONResponse

__all__ = ["ORJSONResponse"]
