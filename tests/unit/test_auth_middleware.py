"""Unit tests for keytally/auth/middleware.py — authenticate_request.

Verifies:
  - Basic username is the API key; password is ignored
  - DENY → DenyError, ERROR → StorageError (never conflated)
  - Missing credentials are a DENY, not a framework 401 short-circuit
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from fastapi.security import HTTPBasicCredentials

from keytally.auth.keys import CredentialStore
from keytally.auth.middleware import authenticate_request, extract_api_key
from keytally.auth.validator import AccessValidator
from keytally.errors import DenyError, StorageError
from keytally.storage.memory_backend import MemoryStorageBackend


class MockRequest:
    """Minimal stand-in for a FastAPI Request carrying app.state."""

    def __init__(self, validator: AccessValidator, path: str = "/api/change-sign/1") -> None:
        self.app = SimpleNamespace(state=SimpleNamespace(access_validator=validator))
        self.url = SimpleNamespace(path=path)
        self.method = "GET"


@pytest.fixture
def store(memory_storage: MemoryStorageBackend) -> CredentialStore:
    return CredentialStore(memory_storage)


@pytest.fixture
def request_(store: CredentialStore) -> MockRequest:
    return MockRequest(AccessValidator(store))


class TestExtractApiKey:
    def test_username_is_key(self) -> None:
        creds = HTTPBasicCredentials(username="kt_abc", password="ignored")
        assert extract_api_key(creds) == "kt_abc"

    def test_none_credentials(self) -> None:
        assert extract_api_key(None) is None

    def test_empty_username(self) -> None:
        assert extract_api_key(HTTPBasicCredentials(username="", password="x")) is None


class TestAuthenticateRequest:
    async def test_allowed_key_returned(self, store, request_) -> None:
        key = await store.issue()
        creds = HTTPBasicCredentials(username=key, password="")
        assert await authenticate_request(request_, creds) == key

    async def test_password_ignored(self, store, request_) -> None:
        key = await store.issue()
        creds = HTTPBasicCredentials(username=key, password="anything at all")
        assert await authenticate_request(request_, creds) == key

    async def test_no_credentials_denied(self, request_) -> None:
        with pytest.raises(DenyError):
            await authenticate_request(request_, None)

    async def test_unknown_key_denied(self, request_) -> None:
        creds = HTTPBasicCredentials(username="bogus", password="")
        with pytest.raises(DenyError):
            await authenticate_request(request_, creds)

    async def test_revoked_key_denied(self, store, request_) -> None:
        key = await store.issue()
        await store.revoke(key)
        with pytest.raises(DenyError):
            await authenticate_request(request_, HTTPBasicCredentials(username=key, password=""))

    async def test_storage_failure_is_storage_error(
        self, store, request_, memory_storage: MemoryStorageBackend
    ) -> None:
        key = await store.issue()
        memory_storage.fail = True
        with pytest.raises(StorageError):
            await authenticate_request(request_, HTTPBasicCredentials(username=key, password=""))
