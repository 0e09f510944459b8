"""Service dependencies for route handlers."""

from typing import Annotated

from fastapi import Depends

from taxform.domain.tax_rates import TaxRateLedger, TaxRateRepository
from taxform.infrastructure.database.dependencies import DatabaseSession


async def get_tax_rate_ledger(db: DatabaseSession) -> TaxRateLedger:
    """Build a ledger bound to the request's database session."""
    return TaxRateLedger(TaxRateRepository(db))


TaxRateLedgerDep = Annotated[TaxRateLedger, Depends(get_tax_rate_ledger)]
