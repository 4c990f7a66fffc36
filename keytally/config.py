"""keytally configuration: YAML file + environment overrides.

Search order (first existing file wins; none found means defaults):
  1. explicit ``config_path`` argument
  2. KEYTALLY_CONFIG
  3. .keytally/config.yaml in the working directory
  4. ~/.keytally/config.yaml

Environment overrides, applied whether or not a file was found:
  KEYTALLY_PORT    → server.port
  KEYTALLY_DB_PATH → storage.path

Example file::

    version: 1
    server:
      host: 127.0.0.1
      port: 8080
    storage:
      backend: sqlite          # or "memory"
      path: ~/.keytally/keytally.db
    usage:
      drain_timeout_s: 5

Any invalid input (bad YAML, missing or unknown ``version``, unknown backend,
non-integer KEYTALLY_PORT) prints a ``CONFIG ERROR`` line to stderr and
raises SystemExit(1): keytally never starts on a config it cannot trust.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Any, NoReturn, Optional

import yaml

from keytally.constants import DEFAULT_DRAIN_TIMEOUT_S
from keytally.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1
SUPPORTED_VERSIONS: frozenset[int] = frozenset({SUPPORTED_CONFIG_VERSION})

VALID_STORAGE_BACKENDS: frozenset[str] = frozenset({"sqlite", "memory"})

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080
DEFAULT_DB_PATH = "~/.keytally/keytally.db"

DEFAULT_CONFIG_PATHS = [
    ".keytally/config.yaml",
    os.path.expanduser("~/.keytally/config.yaml"),
]


def _fail(message: str) -> NoReturn:
    print(f"CONFIG ERROR: {message}", file=sys.stderr)
    raise SystemExit(1)


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class StorageConfig:
    """backend: "sqlite" (durable) or "memory" (lost on restart)."""

    backend: str = "sqlite"
    path: str = DEFAULT_DB_PATH


@dataclass
class UsageConfig:
    """drain_timeout_s bounds how long shutdown waits for usage tasks."""

    drain_timeout_s: float = DEFAULT_DRAIN_TIMEOUT_S


@dataclass
class Config:
    version: int = SUPPORTED_CONFIG_VERSION
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    path: Optional[str] = None  # file the values came from, if any

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Build a Config from parsed YAML. Unknown keys are ignored.

        Raises:
            SystemExit(1): storage.backend is not one of VALID_STORAGE_BACKENDS.
        """
        server_raw = _section(raw, "server")
        storage_raw = _section(raw, "storage")
        usage_raw = _section(raw, "usage")

        backend = storage_raw.get("backend", "sqlite")
        if backend not in VALID_STORAGE_BACKENDS:
            _fail(
                f"Invalid storage.backend: '{backend}'. "
                f"Supported values: {sorted(VALID_STORAGE_BACKENDS)}."
            )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            server=ServerConfig(
                host=server_raw.get("host", DEFAULT_HOST),
                port=server_raw.get("port", DEFAULT_PORT),
            ),
            storage=StorageConfig(
                backend=backend,
                path=storage_raw.get("path", DEFAULT_DB_PATH),
            ),
            usage=UsageConfig(
                drain_timeout_s=float(
                    usage_raw.get("drain_timeout_s", DEFAULT_DRAIN_TIMEOUT_S)
                ),
            ),
            path=path,
        )


def _section(raw: dict, name: str) -> dict[str, Any]:
    # A key present with no value ("server:") parses as None.
    return raw.get(name) or {}


def _find_config_file(config_path: Optional[str]) -> tuple[Optional[str], list[str]]:
    candidates: list[str] = []
    if config_path:
        candidates.append(config_path)
    if os.environ.get("KEYTALLY_CONFIG"):
        candidates.append(os.environ["KEYTALLY_CONFIG"])
    candidates.extend(DEFAULT_CONFIG_PATHS)

    for candidate in candidates:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            return expanded, candidates
    return None, candidates


def _read_yaml(path: str) -> dict:
    try:
        with open(path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(f"Failed to parse {path}: {exc}")
    except OSError as exc:
        _fail(f"Could not read {path}: {exc}")

    if raw is None:
        _fail(f"{path} is empty; it must start with 'version: 1'.")
    if not isinstance(raw, dict):
        _fail(f"{path} is not a YAML mapping at the top level.")

    version = raw.get("version")
    if version is None:
        _fail(f"{path} has no 'version' field; add 'version: 1'.")
    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )
    return raw


def load_config(config_path: Optional[str] = None) -> Config:
    """Locate, parse and validate the config, then apply env overrides.

    Raises:
        SystemExit(1): On any invalid config input (see module docstring).
    """
    found, searched = _find_config_file(config_path)

    if found is None:
        logger.info("config_defaults", searched=searched)
        config = Config.defaults()
    else:
        config = Config.from_dict(_read_yaml(found), path=found)
        logger.info(
            "config_loaded",
            path=found,
            version=config.version,
            storage_backend=config.storage.backend,
        )

    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "config_binds_all_interfaces",
            detail="key issuance is unauthenticated; expose only behind a trusted gateway",
        )
    if config.storage.backend == "memory":
        logger.warning(
            "config_memory_storage",
            detail="issued keys and usage events are lost on restart",
        )
    return config


def _apply_env_overrides(config: Config) -> None:
    env_port = os.environ.get("KEYTALLY_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(f"KEYTALLY_PORT is not a valid integer: '{env_port}'")

    env_db_path = os.environ.get("KEYTALLY_DB_PATH")
    if env_db_path:
        config.storage.path = env_db_path
