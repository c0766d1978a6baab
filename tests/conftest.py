"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import pytest

from backoffice.clients.token_store import SQLiteTokenStore
from backoffice.services.token_cipher import TokenCipherService


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def cipher() -> TokenCipherService:
    return TokenCipherService(secret=_bootstrap.TEST_ENCRYPTION_KEY)


@pytest.fixture
def token_store(tmp_path, cipher: TokenCipherService) -> SQLiteTokenStore:
    return SQLiteTokenStore(str(tmp_path / "tokens.db"), cipher)
