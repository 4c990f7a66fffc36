"""Storage backend factory — backend selection and initialization.

Backend selection (config.storage.backend):
  "sqlite" → LocalSQLiteBackend at config.storage.path (default)
  "memory" → MemoryStorageBackend (nothing persists across restarts)

Schema initialization happens here, once, at process start. A RuntimeError
from the SQLite version guard propagates to the FastAPI lifespan so the
process refuses to start.
"""

from __future__ import annotations

from keytally.config import Config
from keytally.storage.protocol import StorageBackend
from keytally.utils.logger import get_logger

logger = get_logger(__name__)


async def create_storage_backend(config: Config) -> StorageBackend:
    """Create and initialize the configured storage backend.

    Raises:
        RuntimeError: Incompatible SQLite schema version.
        StorageError: The database cannot be opened or initialized.
    """
    if config.storage.backend == "memory":
        return await _create_memory_backend()
    return await _create_local_sqlite_backend(config.storage.path)


async def _create_memory_backend() -> StorageBackend:
    from keytally.storage.memory_backend import MemoryStorageBackend

    backend = MemoryStorageBackend()
    await backend.initialize()
    logger.info("storage_backend_selected", backend="MemoryStorageBackend")
    return backend


async def _create_local_sqlite_backend(db_path: str) -> StorageBackend:
    from keytally.storage.sqlite_backend import LocalSQLiteBackend

    backend = LocalSQLiteBackend(db_path=db_path)
    await backend.initialize()
    logger.info(
        "storage_backend_selected",
        backend="LocalSQLiteBackend",
        db_path=backend.db_path,
    )
    return backend
