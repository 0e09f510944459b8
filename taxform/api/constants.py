"""API-related constants."""

API_V1_PREFIX = "/api/v1"

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"

# Named locally; Starlette renamed its 422 constant between releases
HTTP_422_UNPROCESSABLE = 422

# Request handling
REQUEST_BODY_METHODS = {"POST", "PUT", "PATCH"}

# Content types
JSON_CONTENT_TYPES = {"application/json", "text/json"}

# Security
DEFAULT_HSTS_MAX_AGE = 31536000  # 1 year in seconds

# Date path parameters are accepted in this exact shape only
ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

# Permissions checked by the tax rate routes
TAX_READ_PERMISSION = "tax:read"
TAX_WRITE_PERMISSION = "tax:write"
