"""Tax rate ledger: model, repository and service."""

from taxform.domain.tax_rates.ledger import TaxRateLedger, utc_today
from taxform.domain.tax_rates.models import TaxRate
from taxform.domain.tax_rates.repository import (
    LEDGER_LOCK_KEY,
    TaxRateRepository,
    TaxRateStore,
)

__all__ = [
    "LEDGER_LOCK_KEY",
    "TaxRate",
    "TaxRateLedger",
    "TaxRateRepository",
    "TaxRateStore",
    "utc_today",
]
