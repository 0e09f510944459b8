"""Unit tests for taxform/core/security.py."""

from collections.abc import Callable

import pytest

from taxform.core.config import get_settings
from taxform.core.exceptions import UnauthorizedError
from taxform.core.security import (
    DEFAULT_ROLE,
    AuthenticatedUser,
    authenticate_token,
    decode_access_token,
    user_from_claims,
)


@pytest.mark.unit
class TestAuthenticatedUser:
    @pytest.mark.parametrize(
        ("role", "permission", "expected"),
        [
            ("admin", "tax:write", True),
            ("admin", "anything:at-all", True),
            ("vendor", "tax:read", True),
            ("vendor", "tax:write", False),
            ("vendor", "forms:write", True),
            ("readonly", "tax:read", True),
            ("readonly", "forms:write", False),
            ("unknown", "tax:read", False),
        ],
    )
    def test_has_permission(self, role: str, permission: str, expected: bool) -> None:
        assert AuthenticatedUser(id="u", role=role).has_permission(permission) is expected


@pytest.mark.unit
class TestUserFromClaims:
    def test_role_from_app_metadata(self) -> None:
        user = user_from_claims(
            {"sub": "u1", "email": "u1@example.com", "app_metadata": {"role": "ADMIN"}}
        )

        assert user == AuthenticatedUser(id="u1", role="admin", email="u1@example.com")

    @pytest.mark.parametrize(
        "claims",
        [
            {"sub": "u1"},
            {"sub": "u1", "app_metadata": None},
            {"sub": "u1", "app_metadata": {"provider": "email"}},
        ],
    )
    def test_role_defaults_to_vendor(self, claims: dict[str, object]) -> None:
        assert user_from_claims(claims).role == DEFAULT_ROLE

    def test_blank_subject_is_rejected(self) -> None:
        with pytest.raises(UnauthorizedError):
            user_from_claims({"sub": "  "})


@pytest.mark.unit
class TestDecodeAccessToken:
    def test_valid_token(self, make_token: Callable[..., str]) -> None:
        token = make_token(sub="user-9", role="readonly")

        user = authenticate_token(token, get_settings().auth_config)

        assert user.id == "user-9"
        assert user.role == "readonly"

    def test_expired_token(self, make_token: Callable[..., str]) -> None:
        token = make_token(expires_in=-3600)

        with pytest.raises(UnauthorizedError, match="expired"):
            decode_access_token(token, get_settings().auth_config)

    def test_wrong_signature(self, make_token: Callable[..., str]) -> None:
        token = make_token(secret="another-secret-that-is-long-enough-to-sign")

        with pytest.raises(UnauthorizedError) as exc_info:
            decode_access_token(token, get_settings().auth_config)

        assert exc_info.value.context["reason"] == "InvalidSignatureError"

    def test_wrong_audience(self, make_token: Callable[..., str]) -> None:
        token = make_token(aud="someone-else")

        with pytest.raises(UnauthorizedError):
            decode_access_token(token, get_settings().auth_config)

    def test_malformed_token(self) -> None:
        with pytest.raises(UnauthorizedError, match="invalid"):
            decode_access_token("not-a-jwt", get_settings().auth_config)

    def test_missing_subject(self, make_token: Callable[..., str]) -> None:
        token = make_token(sub=None)

        with pytest.raises(UnauthorizedError):
            decode_access_token(token, get_settings().auth_config)
