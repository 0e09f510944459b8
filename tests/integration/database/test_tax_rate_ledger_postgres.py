"""Ledger behavior against a real PostgreSQL database.

These tests cover what the in-memory store cannot: the table constraints,
the statement order of multi-row writes, and the advisory lock that
serializes concurrent writers. "Today" is 2024-06-01.
"""

import asyncio
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal

import pytest
import pytest_check
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from taxform.core.exceptions import ConflictError, StorageError
from taxform.domain.tax_rates.ledger import TaxRateLedger
from taxform.domain.tax_rates.models import TaxRate
from taxform.domain.tax_rates.repository import TaxRateRepository
from tests.fakes import FixedClock, assert_chain_is_consistent

SessionFactory = async_sessionmaker[AsyncSession]

D = date.fromisoformat

TODAY = D("2024-06-01")


def _row(
    start: str, end: str | None = None, rate: str = "0.0595", multiplier: str = "1.12"
) -> TaxRate:
    return TaxRate(
        id=uuid.uuid4(),
        rate=Decimal(rate),
        multiplier=Decimal(multiplier),
        effective_from=D(start),
        effective_to=D(end) if end else None,
        created_by="seed",
    )


async def _seed(factory: SessionFactory, *rows: TaxRate) -> list[uuid.UUID]:
    async with factory() as session, session.begin():
        session.add_all(rows)
    return [row.id for row in rows]


async def _rows(factory: SessionFactory) -> list[TaxRate]:
    async with factory() as session:
        result = await session.execute(select(TaxRate).order_by(TaxRate.effective_from))
        return list(result.scalars().all())


@asynccontextmanager
async def ledger_transaction(factory: SessionFactory) -> AsyncGenerator[TaxRateLedger]:
    """Ledger bound to one transaction that commits when the block exits."""
    async with factory() as session, session.begin():
        yield TaxRateLedger(TaxRateRepository(session), clock=FixedClock(TODAY))


async def _create(factory: SessionFactory, effective_from: str) -> TaxRate:
    async with ledger_transaction(factory) as ledger:
        return await ledger.create(
            "admin-1", Decimal("0.0625"), Decimal("1.15"), D(effective_from)
        )


@pytest.mark.integration
class TestLedgerWrites:
    async def test_create_closes_current_rate(
        self, pg_session_factory: SessionFactory
    ) -> None:
        (first_id,) = await _seed(pg_session_factory, _row("2024-01-01"))

        created = await _create(pg_session_factory, "2025-01-01")

        rows = await _rows(pg_session_factory)
        assert [r.id for r in rows] == [first_id, created.id]
        assert rows[0].effective_to == D("2025-01-01")
        assert rows[1].is_current
        assert_chain_is_consistent(rows)

    async def test_effective_on_date_at_boundaries(
        self, pg_session_factory: SessionFactory
    ) -> None:
        first_id, second_id = await _seed(
            pg_session_factory,
            _row("2024-01-01", "2025-01-01"),
            _row("2025-01-01", rate="0.0625"),
        )

        async with ledger_transaction(pg_session_factory) as ledger:
            on_switch = await ledger.get_effective_on_date(D("2025-01-01"))
            day_before = await ledger.get_effective_on_date(D("2024-12-31"))
            before_first = await ledger.get_effective_on_date(D("2023-12-31"))

        assert on_switch is not None
        assert on_switch.id == second_id
        assert day_before is not None
        assert day_before.id == first_id
        assert before_first is None

    async def test_values_at_column_limits_are_stored_exactly(
        self, pg_session_factory: SessionFactory
    ) -> None:
        async with ledger_transaction(pg_session_factory) as ledger:
            await ledger.create(
                "admin-1", Decimal("9999.999999"), Decimal("999999.9999"), D("2025-01-01")
            )
            await ledger.create(
                "admin-1", Decimal("0.000001"), Decimal("0.0001"), D("2026-01-01")
            )

        rows = await _rows(pg_session_factory)
        assert [(r.rate, r.multiplier) for r in rows] == [
            (Decimal("9999.999999"), Decimal("999999.9999")),
            (Decimal("0.000001"), Decimal("0.0001")),
        ]

    @pytest.mark.parametrize(
        ("new_from", "first_ends"),
        [("2024-10-01", "2024-10-01"), ("2025-03-01", "2025-03-01")],
        ids=["earlier", "later"],
    )
    async def test_reschedule_keeps_chain_gapless(
        self, pg_session_factory: SessionFactory, new_from: str, first_ends: str
    ) -> None:
        _, middle_id, _ = await _seed(
            pg_session_factory,
            _row("2024-01-01", "2025-01-01"),
            _row("2025-01-01", "2026-01-01"),
            _row("2026-01-01"),
        )

        async with ledger_transaction(pg_session_factory) as ledger:
            updated = await ledger.update(middle_id, {"effective_from": D(new_from)})

        assert updated is not None
        rows = await _rows(pg_session_factory)
        pytest_check.equal(rows[0].effective_to, D(first_ends))
        pytest_check.equal(rows[1].effective_from, D(new_from))
        pytest_check.equal(rows[1].effective_to, D("2026-01-01"))
        assert_chain_is_consistent(rows)

    async def test_reschedule_head_later_extends_predecessor(
        self, pg_session_factory: SessionFactory
    ) -> None:
        _, head_id = await _seed(
            pg_session_factory,
            _row("2024-01-01", "2025-01-01"),
            _row("2025-01-01"),
        )

        async with ledger_transaction(pg_session_factory) as ledger:
            await ledger.update(
                head_id, {"effective_from": D("2025-07-01"), "rate": Decimal("0.07")}
            )

        rows = await _rows(pg_session_factory)
        assert rows[0].effective_to == D("2025-07-01")
        assert rows[1].rate == Decimal("0.07")
        assert_chain_is_consistent(rows)

    async def test_delete_head_reopens_predecessor(
        self, pg_session_factory: SessionFactory
    ) -> None:
        first_id, head_id = await _seed(
            pg_session_factory,
            _row("2024-01-01", "2025-01-01"),
            _row("2025-01-01"),
        )

        async with ledger_transaction(pg_session_factory) as ledger:
            assert await ledger.delete(head_id) is True

        rows = await _rows(pg_session_factory)
        assert [r.id for r in rows] == [first_id]
        assert rows[0].is_current

    async def test_delete_middle_extends_predecessor(
        self, pg_session_factory: SessionFactory
    ) -> None:
        _, middle_id, _ = await _seed(
            pg_session_factory,
            _row("2024-01-01", "2025-01-01"),
            _row("2025-01-01", "2026-01-01"),
            _row("2026-01-01"),
        )

        async with ledger_transaction(pg_session_factory) as ledger:
            assert await ledger.delete(middle_id) is True

        rows = await _rows(pg_session_factory)
        assert len(rows) == 2
        assert rows[0].effective_to == D("2026-01-01")
        assert_chain_is_consistent(rows)


@pytest.mark.integration
class TestTableConstraints:
    async def test_second_open_ended_row_is_rejected(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01"))

        with pytest.raises(IntegrityError):
            await _seed(pg_session_factory, _row("2025-01-01"))

        assert len(await _rows(pg_session_factory)) == 1

    async def test_single_current_index_is_partial_and_unique(
        self, pg_session_factory: SessionFactory
    ) -> None:
        async with pg_session_factory() as session:
            result = await session.execute(
                text(
                    "SELECT indexdef FROM pg_indexes "
                    "WHERE indexname = 'uq_tax_rates_single_current'"
                )
            )
            indexdef = result.scalar_one()

        assert "UNIQUE" in indexdef
        assert "WHERE (effective_to IS NULL)" in indexdef

    async def test_overlapping_intervals_are_rejected(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01", "2025-01-01"))

        with pytest.raises(IntegrityError) as exc_info:
            await _seed(pg_session_factory, _row("2024-06-01", "2024-09-01"))

        assert "ex_tax_rates_no_overlap" in str(exc_info.value)

    async def test_adjacent_intervals_are_allowed(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(
            pg_session_factory,
            _row("2024-01-01", "2024-06-01"),
            _row("2024-06-01", "2025-01-01"),
            _row("2025-01-01"),
        )

        assert_chain_is_consistent(await _rows(pg_session_factory))

    @pytest.mark.parametrize(
        ("row", "constraint"),
        [
            (_row("2024-01-01", rate="0"), "ck_tax_rates_rate_positive"),
            (_row("2024-01-01", multiplier="-1"), "ck_tax_rates_multiplier_positive"),
            (_row("2024-01-01", "2024-01-01"), "ck_tax_rates_interval_ordered"),
        ],
        ids=["rate", "multiplier", "empty-interval"],
    )
    async def test_check_constraints(
        self, pg_session_factory: SessionFactory, row: TaxRate, constraint: str
    ) -> None:
        with pytest.raises(IntegrityError) as exc_info:
            await _seed(pg_session_factory, row)

        assert constraint in str(exc_info.value)

    async def test_repository_reports_violations_as_storage_errors(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01"))

        async with pg_session_factory() as session:
            repository = TaxRateRepository(session)
            with pytest.raises(StorageError) as exc_info:
                await repository.create(_row("2024-06-01"))

        assert isinstance(exc_info.value.cause, IntegrityError)


@pytest.mark.integration
class TestConcurrentWriters:
    async def test_racing_creates_on_same_date_admit_one(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01"))

        results = await asyncio.gather(
            _create(pg_session_factory, "2025-01-01"),
            _create(pg_session_factory, "2025-01-01"),
            return_exceptions=True,
        )

        created = [r for r in results if isinstance(r, TaxRate)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1, results
        assert len(conflicts) == 1, results
        rows = await _rows(pg_session_factory)
        assert len(rows) == 2
        assert_chain_is_consistent(rows)

    async def test_racing_creates_on_different_dates_keep_chain(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01"))

        results = await asyncio.gather(
            _create(pg_session_factory, "2025-01-01"),
            _create(pg_session_factory, "2025-06-01"),
            return_exceptions=True,
        )

        assert all(isinstance(r, TaxRate | ConflictError) for r in results), results
        assert_chain_is_consistent(await _rows(pg_session_factory))

    async def test_writer_waits_for_lock_holder(
        self, pg_session_factory: SessionFactory
    ) -> None:
        await _seed(pg_session_factory, _row("2024-01-01"))

        async with pg_session_factory() as holder, holder.begin():
            await TaxRateRepository(holder).acquire_write_lock()
            pending = asyncio.create_task(_create(pg_session_factory, "2025-01-01"))
            await asyncio.sleep(0.3)
            assert not pending.done()

        created = await asyncio.wait_for(pending, timeout=10)

        assert created.effective_from == D("2025-01-01")
        assert_chain_is_consistent(await _rows(pg_session_factory))
