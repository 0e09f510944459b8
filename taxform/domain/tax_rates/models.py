"""Tax rate table.

Each row covers the half-open interval ``[effective_from, effective_to)``.
The row with ``effective_to IS NULL`` is the current rate. The table
constraints back the ledger rules at the storage level:

- positive ``rate`` and ``multiplier``
- ``effective_to`` after ``effective_from`` when set
- unique ``effective_from``
- at most one open-ended row (partial unique index)
- no overlapping intervals (gist exclusion over ``daterange``)
"""

from datetime import date
from decimal import Decimal
from typing import Final

from sqlalchemy import CheckConstraint, Date, Index, Numeric, String, func
from sqlalchemy.dialects.postgresql import ExcludeConstraint
from sqlalchemy.orm import Mapped, mapped_column

from taxform.infrastructure.database.base import BaseModel

# Column precision and scale; inputs must fit without rounding
RATE_PRECISION: Final[int] = 10
RATE_SCALE: Final[int] = 6
MULTIPLIER_PRECISION: Final[int] = 10
MULTIPLIER_SCALE: Final[int] = 4


class TaxRate(BaseModel):
    """A statutory tax rate and cost multiplier for one effective interval."""

    __tablename__ = "tax_rates"
    __table_args__ = (
        CheckConstraint("rate > 0", name="rate_positive"),
        CheckConstraint("multiplier > 0", name="multiplier_positive"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to > effective_from",
            name="interval_ordered",
        ),
    )

    rate: Mapped[Decimal] = mapped_column(
        Numeric(RATE_PRECISION, RATE_SCALE),
        nullable=False,
        doc="Tax rate as a decimal fraction, e.g. 0.0595",
    )
    multiplier: Mapped[Decimal] = mapped_column(
        Numeric(MULTIPLIER_PRECISION, MULTIPLIER_SCALE),
        nullable=False,
        doc="Cost multiplier applied with the rate, e.g. 1.12",
    )
    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        unique=True,
        doc="First day the rate applies (inclusive)",
    )
    effective_to: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        doc="Day the rate stops applying (exclusive); NULL while current",
    )
    created_by: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Subject of the user who created the rate",
    )

    @property
    def is_current(self) -> bool:
        """Whether this is the open-ended rate at the head of the ledger."""
        return self.effective_to is None

    def covers(self, day: date) -> bool:
        """Whether ``day`` falls inside this rate's effective interval."""
        return self.effective_from <= day and (
            self.effective_to is None or self.effective_to > day
        )

    def __repr__(self) -> str:
        return (
            f"<TaxRate(id={self.id}, rate={self.rate}, "
            f"effective_from={self.effective_from}, effective_to={self.effective_to})>"
        )


_table = TaxRate.__table__

Index(
    "uq_tax_rates_single_current",
    _table.c.effective_to.is_(None),
    unique=True,
    postgresql_where=_table.c.effective_to.is_(None),
)

_table.append_constraint(
    ExcludeConstraint(
        (func.daterange(_table.c.effective_from, _table.c.effective_to), "&&"),
        name="ex_tax_rates_no_overlap",
        using="gist",
    )
)
