"""API request and response schemas."""

from taxform.api.schemas.errors import ErrorResponse
from taxform.api.schemas.tax_rates import (
    TaxRateCreate,
    TaxRateResponse,
    TaxRatesOverview,
    TaxRateUpdate,
)

__all__ = [
    "ErrorResponse",
    "TaxRateCreate",
    "TaxRateResponse",
    "TaxRateUpdate",
    "TaxRatesOverview",
]
