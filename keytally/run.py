"""Console entry point: ``keytally`` (or ``python -m keytally.run``).

Binds to server.host / server.port from the loaded config, then hands the
app to uvicorn. Graceful shutdown (SIGINT/SIGTERM) runs the lifespan exit,
which drains in-flight usage tasks before closing storage.
"""

from __future__ import annotations

import uvicorn

from keytally.config import load_config

# Connections beyond this get 503 from uvicorn instead of queueing.
MAX_CONCURRENT_CONNECTIONS: int = 100

ACCEPT_BACKLOG: int = 50

KEEP_ALIVE_TIMEOUT_S: int = 5


def main() -> None:
    config = load_config()
    uvicorn.run(
        "keytally.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=MAX_CONCURRENT_CONNECTIONS,
        backlog=ACCEPT_BACKLOG,
        timeout_keep_alive=KEEP_ALIVE_TIMEOUT_S,
        # Must exceed the usage drain window so uvicorn does not cut it short.
        timeout_graceful_shutdown=int(config.usage.drain_timeout_s) + 5,
    )


if __name__ == "__main__":
    main()
