"""Cross-cutting concerns shared by every layer.

- **config**: settings loaded from the environment
- **context**: correlation ID and acting user for the current request
- **exceptions**: error hierarchy mapped to HTTP responses by the API layer
- **error_context**: redaction of sensitive values in logs and errors
- **logging**: loguru setup and formatters
- **observability**: OpenTelemetry tracing
- **security**: bearer token verification and role permissions
"""
