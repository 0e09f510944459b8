"""Data access for the tax rate ledger."""

import uuid
from collections.abc import Mapping
from datetime import date
from typing import Final, Protocol

from loguru import logger
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from taxform.domain.tax_rates.models import TaxRate
from taxform.infrastructure.database.repository import BaseRepository

# Advisory lock id shared by every ledger write ("tax_rate" as ASCII)
LEDGER_LOCK_KEY: Final[int] = 0x7461785F72617465


class TaxRateStore(Protocol):
    """Storage operations the ledger relies on."""

    async def acquire_write_lock(self) -> None: ...

    async def get_by_id(self, entity_id: uuid.UUID) -> TaxRate | None: ...

    async def get_current(self) -> TaxRate | None: ...

    async def list_newest_first(self) -> list[TaxRate]: ...

    async def find_effective_on(self, day: date) -> list[TaxRate]: ...

    async def get_predecessor(self, tax_rate: TaxRate) -> TaxRate | None: ...

    async def create(self, obj: TaxRate) -> TaxRate: ...

    async def update(
        self, entity_id: uuid.UUID, data: Mapping[str, object]
    ) -> TaxRate | None: ...

    async def delete(self, entity_id: uuid.UUID) -> bool: ...


class TaxRateRepository(BaseRepository[TaxRate]):
    """SQLAlchemy implementation of ``TaxRateStore``."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, TaxRate)

    async def acquire_write_lock(self) -> None:
        """Take the transaction-scoped ledger lock.

        Blocks until concurrent writers commit or roll back. Postgres releases
        the lock when the surrounding transaction ends.
        """
        async with self._storage_errors("acquire_write_lock"):
            await self.session.execute(
                text("SELECT pg_advisory_xact_lock(:key)"), {"key": LEDGER_LOCK_KEY}
            )
        logger.debug("Acquired tax rate ledger lock")

    async def get_current(self) -> TaxRate | None:
        """Return the open-ended rate, if any."""
        async with self._storage_errors("get_current"):
            stmt = (
                select(TaxRate)
                .where(TaxRate.effective_to.is_(None))
                .order_by(TaxRate.effective_from.desc())
                .limit(1)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()

    async def list_newest_first(self) -> list[TaxRate]:
        async with self._storage_errors("list_newest_first"):
            stmt = select(TaxRate).order_by(TaxRate.effective_from.desc())
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def find_effective_on(self, day: date) -> list[TaxRate]:
        """Return every rate whose interval contains ``day``, latest start first.

        A consistent ledger yields at most one row.
        """
        async with self._storage_errors("find_effective_on"):
            stmt = (
                select(TaxRate)
                .where(
                    TaxRate.effective_from <= day,
                    (TaxRate.effective_to > day) | TaxRate.effective_to.is_(None),
                )
                .order_by(TaxRate.effective_from.desc())
            )
            result = await self.session.execute(stmt)
            return list(result.scalars().all())

    async def get_predecessor(self, tax_rate: TaxRate) -> TaxRate | None:
        """Return the rate that starts immediately before ``tax_rate``."""
        async with self._storage_errors("get_predecessor"):
            stmt = (
                select(TaxRate)
                .where(TaxRate.effective_from < tax_rate.effective_from)
                .order_by(TaxRate.effective_from.desc())
                .limit(1)
            )
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
