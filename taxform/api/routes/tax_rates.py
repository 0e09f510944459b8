"""Tax rate endpoints under ``/api/v1/tax-rates``.

Reads need ``tax:read``; creating, changing and deleting rates need
``tax:write``.
"""

import re
import uuid
from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from loguru import logger

from taxform.api.auth import require_permission
from taxform.api.constants import (
    ISO_DATE_PATTERN,
    TAX_READ_PERMISSION,
    TAX_WRITE_PERMISSION,
)
from taxform.api.dependencies import TaxRateLedgerDep
from taxform.api.schemas.errors import ErrorResponse
from taxform.api.schemas.tax_rates import (
    TaxRateCreate,
    TaxRateResponse,
    TaxRatesOverview,
    TaxRateUpdate,
)
from taxform.core.exceptions import (
    ErrorCode,
    NotFoundError,
    Severity,
    TaxformError,
    ValidationError,
)
from taxform.core.security import AuthenticatedUser

_ISO_DATE_RE = re.compile(ISO_DATE_PATTERN)

Reader = Annotated[AuthenticatedUser, Depends(require_permission(TAX_READ_PERMISSION))]
Writer = Annotated[AuthenticatedUser, Depends(require_permission(TAX_WRITE_PERMISSION))]

router = APIRouter(
    prefix="/tax-rates",
    tags=["tax-rates"],
    responses={
        status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
        status.HTTP_403_FORBIDDEN: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
    },
)


def parse_iso_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` string.

    Raises:
        ValidationError: With code ``INVALID_DATE_FORMAT`` if the shape is
            wrong or the date does not exist (e.g. 2025-02-30).
    """
    if not _ISO_DATE_RE.match(value):
        raise ValidationError(
            "Date must be in YYYY-MM-DD format",
            error_code=ErrorCode.INVALID_DATE_FORMAT,
            context={"date": value},
        )
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(
            "Date must be a valid calendar date in YYYY-MM-DD format",
            error_code=ErrorCode.INVALID_DATE_FORMAT,
            context={"date": value},
            cause=exc,
        ) from exc


def _rate_not_found(context: dict[str, str]) -> NotFoundError:
    return NotFoundError(
        "Tax rate not found",
        error_code=ErrorCode.TAX_RATE_NOT_FOUND,
        context=context,
    )


@router.get("", response_model=TaxRatesOverview)
async def list_tax_rates(_user: Reader, ledger: TaxRateLedgerDep) -> TaxRatesOverview:
    """Return the current rate and every other rate, newest first."""
    try:
        current = await ledger.get_current()
    except NotFoundError as exc:
        # An unseeded ledger is a deployment fault, not a client error
        raise TaxformError(
            ErrorCode.CURRENT_TAX_RATE_MISSING,
            "No current tax rate is configured",
            severity=Severity.CRITICAL,
            cause=exc,
        ) from exc

    all_rates = await ledger.get_all()
    return TaxRatesOverview(
        current_rate=TaxRateResponse.model_validate(current),
        previous_rates=[
            TaxRateResponse.model_validate(r) for r in all_rates if r.id != current.id
        ],
    )


@router.get(
    "/effective-on/{on_date}",
    response_model=TaxRateResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
    },
)
async def get_tax_rate_effective_on(
    on_date: str, _user: Reader, ledger: TaxRateLedgerDep
) -> TaxRateResponse:
    """Return the rate in force on ``on_date`` (``YYYY-MM-DD``)."""
    day = parse_iso_date(on_date)
    tax_rate = await ledger.get_effective_on_date(day)
    if tax_rate is None:
        raise _rate_not_found({"date": day.isoformat()})
    return TaxRateResponse.model_validate(tax_rate)


@router.get(
    "/{rate_id}",
    response_model=TaxRateResponse,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def get_tax_rate(
    rate_id: uuid.UUID, _user: Reader, ledger: TaxRateLedgerDep
) -> TaxRateResponse:
    tax_rate = await ledger.get_by_id(rate_id)
    if tax_rate is None:
        raise _rate_not_found({"rate_id": str(rate_id)})
    return TaxRateResponse.model_validate(tax_rate)


@router.post(
    "",
    response_model=TaxRateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)
async def create_tax_rate(
    body: TaxRateCreate, user: Writer, ledger: TaxRateLedgerDep
) -> TaxRateResponse:
    """Schedule a new rate; the current rate ends where the new one starts."""
    tax_rate = await ledger.create(
        actor_id=user.id,
        rate=body.rate,
        multiplier=body.multiplier,
        effective_from=body.effective_from,
    )
    logger.info("Tax rate {} created by {}", tax_rate.id, user.id)
    return TaxRateResponse.model_validate(tax_rate)


@router.patch(
    "/{rate_id}",
    response_model=TaxRateResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": ErrorResponse},
    },
)
async def update_tax_rate(
    rate_id: uuid.UUID, body: TaxRateUpdate, _user: Writer, ledger: TaxRateLedgerDep
) -> TaxRateResponse:
    """Change a rate that has not taken effect yet."""
    changes = body.model_dump(exclude_unset=True)
    tax_rate = await ledger.update(rate_id, changes)
    if tax_rate is None:
        raise _rate_not_found({"rate_id": str(rate_id)})
    return TaxRateResponse.model_validate(tax_rate)


@router.delete(
    "/{rate_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
)
async def delete_tax_rate(
    rate_id: uuid.UUID, _user: Writer, ledger: TaxRateLedgerDep
) -> Response:
    """Delete a rate that has not taken effect yet."""
    if not await ledger.delete(rate_id):
        raise _rate_not_found({"rate_id": str(rate_id)})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
