"""Unit tests for the bearer JWT dependency."""

import pytest

from gateway.app.api.auth import get_current_principal
from gateway.app.config import Settings
from gateway.app.errors import AuthenticationError
from tests.fakes import TEST_JWT_SECRET, make_token


@pytest.fixture
def settings() -> Settings:
    return Settings(jwt_secret=TEST_JWT_SECRET)


@pytest.mark.asyncio
async def test_valid_token(settings: Settings) -> None:
    principal = await get_current_principal(settings, authorization=f"Bearer {make_token('alice')}")

    assert principal.subject == "alice"
    assert "exp" in principal.claims


@pytest.mark.asyncio
async def test_missing_header(settings: Settings) -> None:
    with pytest.raises(AuthenticationError, match="Missing authorization header"):
        await get_current_principal(settings, authorization=None)


@pytest.mark.asyncio
@pytest.mark.parametrize("header", ["Token abc", "Bearer", "Bearer    ", "bearer abc"])
async def test_malformed_header(settings: Settings, header: str) -> None:
    with pytest.raises(AuthenticationError, match="Invalid authorization header format"):
        await get_current_principal(settings, authorization=header)


@pytest.mark.asyncio
async def test_expired_token(settings: Settings) -> None:
    token = make_token(expires_in=-60)

    with pytest.raises(AuthenticationError, match="Invalid or expired token"):
        await get_current_principal(settings, authorization=f"Bearer {token}")


@pytest.mark.asyncio
async def test_wrong_signature(settings: Settings) -> None:
    token = make_token(secret="some-other-secret")

    with pytest.raises(AuthenticationError):
        await get_current_principal(settings, authorization=f"Bearer {token}")
