"""Request and response bodies for the tax rate endpoints.

Rates and multipliers are ``Decimal`` in Python and JSON numbers on the wire.
Inputs must fit the table columns exactly; values that would be rounded or
overflow are rejected here instead of at the database.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from taxform.domain.tax_rates.models import (
    MULTIPLIER_PRECISION,
    MULTIPLIER_SCALE,
    RATE_PRECISION,
    RATE_SCALE,
)

JSONDecimal = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]

# Exclusive upper bounds implied by each column's precision and scale
RATE_LIMIT = 10 ** (RATE_PRECISION - RATE_SCALE)
MULTIPLIER_LIMIT = 10 ** (MULTIPLIER_PRECISION - MULTIPLIER_SCALE)


class TaxRateCreate(BaseModel):
    """Body of ``POST /api/v1/tax-rates``."""

    model_config = ConfigDict(extra="forbid")

    rate: JSONDecimal = Field(
        ...,
        gt=0,
        lt=RATE_LIMIT,
        max_digits=RATE_PRECISION,
        decimal_places=RATE_SCALE,
        examples=[0.0625],
    )
    multiplier: JSONDecimal = Field(
        ...,
        gt=0,
        lt=MULTIPLIER_LIMIT,
        max_digits=MULTIPLIER_PRECISION,
        decimal_places=MULTIPLIER_SCALE,
        examples=[1.15],
    )
    effective_from: date = Field(..., examples=["2025-01-01"])


class TaxRateUpdate(BaseModel):
    """Body of ``PATCH /api/v1/tax-rates/{rate_id}``; every field optional."""

    model_config = ConfigDict(extra="forbid")

    rate: JSONDecimal | None = Field(
        default=None,
        gt=0,
        lt=RATE_LIMIT,
        max_digits=RATE_PRECISION,
        decimal_places=RATE_SCALE,
    )
    multiplier: JSONDecimal | None = Field(
        default=None,
        gt=0,
        lt=MULTIPLIER_LIMIT,
        max_digits=MULTIPLIER_PRECISION,
        decimal_places=MULTIPLIER_SCALE,
    )
    effective_from: date | None = None


class TaxRateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    rate: JSONDecimal
    multiplier: JSONDecimal
    effective_from: date
    effective_to: date | None
    created_at: datetime | None
    created_by: str


class TaxRatesOverview(BaseModel):
    """The rate in force plus every other rate, newest first."""

    current_rate: TaxRateResponse
    previous_rates: list[TaxRateResponse]
