"""Tax rate ledger service.

The ledger keeps a gapless chain of non-overlapping effective intervals with
exactly one open-ended (current) rate. Writes run inside the caller's
transaction after taking the ledger advisory lock, so the read-modify-write
sequences below never interleave between workers.

Only rates that start after today may change. Rates that have taken effect
are history and stay as they are.
"""

import uuid
from collections.abc import Callable, Mapping
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any, Final

from loguru import logger

from taxform.core.exceptions import (
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from taxform.core.observability import trace_operation
from taxform.domain.tax_rates.models import (
    MULTIPLIER_PRECISION,
    MULTIPLIER_SCALE,
    RATE_PRECISION,
    RATE_SCALE,
    TaxRate,
)
from taxform.domain.tax_rates.repository import TaxRateStore

UPDATABLE_FIELDS: Final[frozenset[str]] = frozenset(
    {"rate", "multiplier", "effective_from"}
)


def utc_today() -> date:
    return datetime.now(UTC).date()


# (precision, scale) of the column behind each decimal field
_DECIMAL_LIMITS: Final[dict[str, tuple[int, int]]] = {
    "rate": (RATE_PRECISION, RATE_SCALE),
    "multiplier": (MULTIPLIER_PRECISION, MULTIPLIER_SCALE),
}


def _require_storable(field: str, value: Decimal) -> None:
    """Reject values that are not positive or that the column would round."""
    if value <= 0:
        raise ValidationError(
            f"{field} must be greater than zero",
            context={"field": field, "value": str(value)},
        )

    precision, scale = _DECIMAL_LIMITS[field]
    too_large = value >= Decimal(10) ** (precision - scale)
    if too_large or value != value.quantize(Decimal(1).scaleb(-scale)):
        raise ValidationError(
            f"{field} allows at most {precision - scale} digits before and "
            f"{scale} after the decimal point",
            context={"field": field, "value": str(value)},
        )


class TaxRateLedger:
    """Lookups and interval-preserving writes over the tax rate table.

    Args:
        store: Storage backend, normally a ``TaxRateRepository``.
        clock: Returns today's date; defaults to the current UTC date.
    """

    def __init__(
        self, store: TaxRateStore, clock: Callable[[], date] = utc_today
    ) -> None:
        self._store = store
        self._clock = clock

    async def get_current(self) -> TaxRate:
        """Return the rate presently in force.

        Raises:
            NotFoundError: If no open-ended rate exists. This means the
                ledger was never seeded and callers treat it as a server
                fault.
        """
        current = await self._store.get_current()
        if current is None:
            logger.error("No current tax rate in the ledger")
            raise NotFoundError(
                "No current tax rate is configured",
                error_code=ErrorCode.CURRENT_TAX_RATE_MISSING,
            )
        return current

    async def get_all(self) -> list[TaxRate]:
        """Return every rate, newest ``effective_from`` first."""
        return await self._store.list_newest_first()

    async def get_by_id(self, rate_id: uuid.UUID) -> TaxRate | None:
        return await self._store.get_by_id(rate_id)

    async def get_effective_on_date(self, day: date) -> TaxRate | None:
        """Return the rate whose interval contains ``day``.

        Returns None when no rate covers the date, e.g. a day before the
        first rate. If several rows match, the one with the latest
        ``effective_from`` wins and the overlap is logged.
        """
        matches = await self._store.find_effective_on(day)
        if not matches:
            return None

        if len(matches) > 1:
            logger.warning(
                "Overlapping tax rate intervals cover {}: {} rows match",
                day.isoformat(),
                len(matches),
                day=day.isoformat(),
                rate_ids=[str(m.id) for m in matches],
            )
        return max(matches, key=lambda m: m.effective_from)

    async def create(
        self,
        actor_id: str,
        rate: Decimal,
        multiplier: Decimal,
        effective_from: date,
    ) -> TaxRate:
        """Schedule a new rate and close the current one at its start date.

        Args:
            actor_id: Subject of the user creating the rate.
            rate: Tax rate as a decimal fraction.
            multiplier: Cost multiplier.
            effective_from: First day the new rate applies.

        Returns:
            TaxRate: The new open-ended rate.

        Raises:
            ValidationError: If ``rate`` or ``multiplier`` is not positive or
                does not fit its column without rounding.
            ConflictError: If ``effective_from`` is not after the current
                rate's start.
        """
        _require_storable("rate", rate)
        _require_storable("multiplier", multiplier)

        with trace_operation(
            "tax_rate.create", effective_from=effective_from.isoformat()
        ):
            await self._store.acquire_write_lock()

            current = await self._store.get_current()
            if current is not None:
                if effective_from <= current.effective_from:
                    raise ConflictError(
                        "effective_from must be after the current rate's "
                        f"effective_from ({current.effective_from.isoformat()})",
                        context={
                            "effective_from": effective_from.isoformat(),
                            "current_effective_from": current.effective_from.isoformat(),
                        },
                    )
                await self._store.update(current.id, {"effective_to": effective_from})

            created = await self._store.create(
                TaxRate(
                    id=uuid.uuid4(),
                    rate=rate,
                    multiplier=multiplier,
                    effective_from=effective_from,
                    effective_to=None,
                    created_by=actor_id,
                )
            )

        logger.info(
            "Tax rate {} scheduled from {}",
            created.id,
            effective_from.isoformat(),
            rate_id=str(created.id),
            closed_rate_id=str(current.id) if current else None,
        )
        return created

    async def update(
        self, rate_id: uuid.UUID, changes: Mapping[str, Any]
    ) -> TaxRate | None:
        """Change a rate that has not taken effect yet.

        Moving ``effective_from`` also moves the end of the preceding rate
        so the chain stays gapless.

        Args:
            rate_id: Rate to change.
            changes: Any of ``rate``, ``multiplier`` and ``effective_from``.

        Returns:
            TaxRate | None: The updated rate, or None if ``rate_id`` is unknown.

        Raises:
            ValidationError: If ``changes`` is empty or holds bad values.
            ForbiddenError: If the rate has taken effect, or the new start is
                not in the future.
            ConflictError: If the new start would cross a neighbouring rate.
        """
        self._validate_changes(changes)

        with trace_operation("tax_rate.update", rate_id=str(rate_id)):
            await self._store.acquire_write_lock()

            existing = await self._store.get_by_id(rate_id)
            if existing is None:
                return None

            today = self._clock()
            self._ensure_mutable(existing, today, "modify")

            new_from = changes.get("effective_from")
            if new_from is None or new_from == existing.effective_from:
                updated = await self._store.update(rate_id, dict(changes))
            else:
                updated = await self._reschedule(existing, new_from, today, changes)

        logger.info(
            "Tax rate {} updated - fields: {}",
            rate_id,
            sorted(changes),
            rate_id=str(rate_id),
        )
        return updated

    async def delete(self, rate_id: uuid.UUID) -> bool:
        """Remove a rate that has not taken effect yet.

        The preceding rate takes over the deleted interval; if the deleted
        rate was current, its predecessor becomes current again.

        Returns:
            bool: False if ``rate_id`` is unknown, True once deleted.

        Raises:
            ForbiddenError: If the rate has taken effect.
        """
        with trace_operation("tax_rate.delete", rate_id=str(rate_id)):
            await self._store.acquire_write_lock()

            existing = await self._store.get_by_id(rate_id)
            if existing is None:
                return False

            self._ensure_mutable(existing, self._clock(), "delete")

            predecessor = await self._store.get_predecessor(existing)
            reopened_to = existing.effective_to
            reopened = predecessor is not None and existing.is_current
            if not await self._store.delete(rate_id):
                return False
            if predecessor is not None:
                await self._store.update(predecessor.id, {"effective_to": reopened_to})

        logger.info(
            "Tax rate {} deleted",
            rate_id,
            rate_id=str(rate_id),
            extended_rate_id=str(predecessor.id) if predecessor else None,
            reopened=reopened,
        )
        return True

    @staticmethod
    def _validate_changes(changes: Mapping[str, Any]) -> None:
        if not changes:
            raise ValidationError("No fields to update")

        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown fields in update",
                context={"fields": sorted(unknown)},
            )

        for field in ("rate", "multiplier"):
            if field in changes:
                value = changes[field]
                if value is None:
                    raise ValidationError(
                        f"{field} cannot be null", context={"field": field}
                    )
                _require_storable(field, value)

        if "effective_from" in changes and changes["effective_from"] is None:
            raise ValidationError(
                "effective_from cannot be null", context={"field": "effective_from"}
            )

    @staticmethod
    def _ensure_mutable(tax_rate: TaxRate, today: date, action: str) -> None:
        if tax_rate.effective_from <= today:
            raise ForbiddenError(
                f"Cannot {action} a tax rate that has already taken effect",
                context={
                    "rate_id": str(tax_rate.id),
                    "effective_from": tax_rate.effective_from.isoformat(),
                    "today": today.isoformat(),
                },
            )

    async def _reschedule(
        self,
        existing: TaxRate,
        new_from: date,
        today: date,
        changes: Mapping[str, Any],
    ) -> TaxRate | None:
        if new_from <= today:
            raise ForbiddenError(
                "A rate can only be rescheduled to a future date",
                context={"effective_from": new_from.isoformat(), "today": today.isoformat()},
            )
        if existing.effective_to is not None and new_from >= existing.effective_to:
            raise ConflictError(
                "effective_from must stay before the rate's effective_to",
                context={
                    "effective_from": new_from.isoformat(),
                    "effective_to": existing.effective_to.isoformat(),
                },
            )

        predecessor = await self._store.get_predecessor(existing)
        if predecessor is not None and new_from <= predecessor.effective_from:
            raise ConflictError(
                "effective_from must be after the preceding rate's effective_from",
                context={
                    "effective_from": new_from.isoformat(),
                    "preceding_effective_from": predecessor.effective_from.isoformat(),
                },
            )

        # Shrink before grow so no two intervals overlap between statements
        moving_earlier = new_from < existing.effective_from
        if predecessor is not None and moving_earlier:
            await self._store.update(predecessor.id, {"effective_to": new_from})

        updated = await self._store.update(existing.id, dict(changes))

        if predecessor is not None and not moving_earlier:
            await self._store.update(predecessor.id, {"effective_to": new_from})

        return updated
