"""Project-wide fixtures for the Taxform test suite."""

import time
from collections.abc import AsyncGenerator, Callable, Generator
from datetime import date
from typing import Any

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from taxform.api.dependencies import get_tax_rate_ledger
from taxform.api.main import create_app
from taxform.core.config import get_settings
from taxform.core.context import RequestContext
from taxform.core.error_context import _get_sensitive_fields
from taxform.domain.tax_rates.ledger import TaxRateLedger
from tests.fakes import FixedClock, InMemoryTaxRateStore

TokenFactory = Callable[..., str]

TEST_TODAY = date(2024, 6, 1)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None]:
    """Give each test settings built from its own environment."""
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()
    yield
    get_settings.cache_clear()
    _get_sensitive_fields.cache_clear()


@pytest.fixture(autouse=True)
def clean_request_context() -> Generator[None]:
    """Keep correlation and user ids from leaking between tests."""
    RequestContext.clear()
    yield
    RequestContext.clear()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TEST_TODAY)


@pytest.fixture
def store() -> InMemoryTaxRateStore:
    return InMemoryTaxRateStore()


@pytest.fixture
def ledger(store: InMemoryTaxRateStore, clock: FixedClock) -> TaxRateLedger:
    return TaxRateLedger(store, clock=clock)


@pytest.fixture
def make_token() -> TokenFactory:
    """Build HS256 access tokens signed with the test secret.

    Keyword args:
        sub: Token subject.
        role: Value for ``app_metadata.role``; None omits app_metadata.
        expires_in: Seconds until expiry; negative for an expired token.
        secret: Signing key override.
        extra claims are merged into the payload.
    """

    def _make_token(
        sub: str = "user-123",
        role: str | None = "admin",
        expires_in: int = 3600,
        secret: str | None = None,
        **claims: Any,
    ) -> str:
        auth_config = get_settings().auth_config
        now = int(time.time())
        payload: dict[str, Any] = {
            "sub": sub,
            "aud": auth_config.jwt_audience,
            "iat": now,
            "exp": now + expires_in,
            "email": f"{sub}@example.com",
        }
        if role is not None:
            payload["app_metadata"] = {"role": role}
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        key = secret or auth_config.jwt_secret.get_secret_value()
        return jwt.encode(payload, key, algorithm=auth_config.jwt_algorithm)

    return _make_token


@pytest.fixture
async def api_client(
    ledger: TaxRateLedger,
) -> AsyncGenerator[AsyncClient]:
    """HTTP client for a fresh app whose ledger runs on the in-memory store."""
    app = create_app()
    app.dependency_overrides[get_tax_rate_ledger] = lambda: ledger
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers(make_token: TokenFactory) -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a user with the given role."""

    def _auth_headers(role: str | None = "admin", sub: str = "user-123") -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(sub=sub, role=role)}"}

    return _auth_headers
