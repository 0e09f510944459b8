"""Error response body shared by every failing endpoint."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standardized error response model for API errors."""

    status: int = Field(
        ...,
        description="HTTP status code, repeated in the body",
        examples=[404, 409],
    )

    code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["TAX_RATE_NOT_FOUND", "CONFLICT", "FORBIDDEN"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["Tax rate not found"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g., field-specific validation errors)",
        examples=[{"effective_from": "2024-01-01", "today": "2025-03-01"}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )

    request_id: str | None = Field(
        default=None,
        description="Unique request identifier",
        examples=["req-550e8400-e29b-41d4-a716-446655440000"],
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
        examples=["LOW", "HIGH"],
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
        examples=["2025-01-14T12:00:00+00:00"],
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": 409,
                    "code": "CONFLICT",
                    "message": (
                        "effective_from must be after the current rate's "
                        "effective_from (2024-01-01)"
                    ),
                    "details": {
                        "effective_from": "2023-06-01",
                        "current_effective_from": "2024-01-01",
                    },
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440000",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440000",
                    "severity": "MEDIUM",
                    "timestamp": "2025-01-14T12:00:00+00:00",
                },
                {
                    "status": 400,
                    "code": "INVALID_DATE_FORMAT",
                    "message": "Date must be in YYYY-MM-DD format",
                    "timestamp": "2025-01-14T12:00:01+00:00",
                    "severity": "LOW",
                },
            ]
        }
    }
