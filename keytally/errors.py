"""Exception taxonomy for keytally.

HTTP mapping (registered in keytally/main.py):
  StorageError     → 500, generic body (never "not authorized")
  GenerationError  → 500, generic body
  DenyError        → 401 with ``WWW-Authenticate: Basic``

StorageError and DenyError must never be conflated: a storage outage is a
server fault, not a statement about the caller's credential.
"""

from __future__ import annotations


class KeytallyError(Exception):
    """Base class for all keytally errors."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class StorageError(KeytallyError):
    """The durable medium is unreachable or a read/write failed.

    Raised by every StorageBackend implementation; the original driver
    exception is chained as ``__cause__``.
    """

    def __init__(self, message: str = "Storage operation failed") -> None:
        super().__init__(message)


class DenyError(KeytallyError):
    """The presented credential is absent, unknown, or revoked.

    Unknown and revoked keys deliberately share this single outcome.
    """

    def __init__(self, message: str = "Supplied token is not authorized.") -> None:
        super().__init__(message)


class GenerationError(KeytallyError):
    """A new API key could not be produced.

    Covers entropy-source failure and exhausted collision retries. No key is
    returned or persisted when this is raised.
    """

    def __init__(self, message: str = "API key generation failed") -> None:
        super().__init__(message)
