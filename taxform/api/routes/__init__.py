"""API routers."""

from taxform.api.routes.tax_rates import router as tax_rates_router

__all__ = ["tax_rates_router"]
