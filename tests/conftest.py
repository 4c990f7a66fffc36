"""Root test configuration for keytally.

Provides shared fixtures:
  - memory_storage  — fresh MemoryStorageBackend (supports .fail fault injection)
  - sqlite_storage  — initialized LocalSQLiteBackend on a tmp_path file
  - app             — create_app() fast-tracked onto memory_storage (no lifespan)
  - client          — httpx.AsyncClient bound to ``app`` over ASGITransport
  - basic_auth      — builds an HTTP Basic header from an API key

Also isolates every test from any developer config in ~/.keytally and resets
the in-memory rate limiter between tests.
"""

from __future__ import annotations

import base64
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from keytally.storage.memory_backend import MemoryStorageBackend
from keytally.storage.sqlite_backend import LocalSQLiteBackend


def _basic_auth_header(api_key: str, password: str = "") -> dict[str, str]:
    token = base64.b64encode(f"{api_key}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def basic_auth():
    """Build an Authorization header carrying an API key as the Basic username."""
    return _basic_auth_header


@pytest.fixture(autouse=True)
def isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point config discovery and the default DB path into tmp_path."""
    monkeypatch.delenv("KEYTALLY_CONFIG", raising=False)
    monkeypatch.delenv("KEYTALLY_PORT", raising=False)
    monkeypatch.setenv("KEYTALLY_DB_PATH", str(tmp_path / "default.db"))
    monkeypatch.setattr(
        "keytally.config.DEFAULT_CONFIG_PATHS",
        [str(tmp_path / "no-such-config.yaml")],
    )


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests.

    Prevents test-to-test rate limit bleed where multiple tests hitting the
    same endpoint within the same minute would trigger a 429.
    """
    from keytally.auth.limiter import limiter

    limiter.reset()


@pytest.fixture
async def memory_storage() -> MemoryStorageBackend:
    backend = MemoryStorageBackend()
    await backend.initialize()
    return backend


@pytest.fixture
async def sqlite_storage(tmp_path: Path):
    backend = LocalSQLiteBackend(db_path=str(tmp_path / "keytally.db"))
    await backend.initialize()
    yield backend
    await backend.close()


@pytest.fixture
async def app(memory_storage: MemoryStorageBackend):
    """Full application with state wired directly, skipping the lifespan."""
    from keytally.config import Config
    from keytally.main import attach_services, create_app

    application = create_app()
    application.state.config = Config.defaults()
    attach_services(application, memory_storage)
    application.state.ready = True

    yield application

    await application.state.usage_tracker.drain(timeout=5)


@pytest.fixture
async def client(app):
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as http_client:
        yield http_client
