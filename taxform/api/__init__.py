"""HTTP layer: FastAPI application, routes, middleware and schemas."""
