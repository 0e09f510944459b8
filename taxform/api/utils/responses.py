"""JSON responses rendered with orjson.

``ORJSONResponse`` is the application's default response class. orjson
handles datetime, date and UUID natively; ``Decimal`` (the type of the
rate columns) is emitted as a JSON number through ``_default``.
"""

from decimal import Decimal
from typing import Any

import orjson
from fastapi.responses import JSONResponse
from pydantic import BaseModel


def _default(obj: Any) -> Any:  # noqa: ANN401 - orjson fallback hook
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    raise TypeError


class ORJSONResponse(JSONResponse):
    """FastAPI Response class using orjson for JSON serialization."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:  # noqa: ANN401 - accepts any JSON-serializable content
        if isinstance(content, BaseModel):
            content = content.model_dump(mode="json")

        return orjson.dumps(content, default=_default, option=orjson.OPT_SORT_KEYS)
