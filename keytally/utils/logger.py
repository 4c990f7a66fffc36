"""Structured logging for keytally (structlog).

Every log line is a single event with key/value fields. Two processors are
keytally-specific:

  - request_id comes from structlog's contextvars, bound per request by
    RequestIdMiddleware. Tasks spawned while handling a request copy the
    context, so usage-task log lines carry the same request_id.
  - mask_api_keys rewrites any string field that looks like an issued key
    (``kt_...``) to its prefix plus a few characters. Plaintext keys never
    reach the log sink even if a caller passes one by mistake.
"""

import logging
import sys

import structlog
from structlog.types import EventDict, Processor

from keytally.constants import API_KEY_PREFIX

# Characters of a key kept after the prefix when masking.
_MASK_VISIBLE_CHARS = 4


def mask_api_keys(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Replace plaintext API keys in any string field with a masked form."""
    for field, value in event_dict.items():
        if isinstance(value, str) and value.startswith(API_KEY_PREFIX):
            visible = value[: len(API_KEY_PREFIX) + _MASK_VISIBLE_CHARS]
            event_dict[field] = f"{visible}***"
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_output: JSON lines when True, coloured console output otherwise.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        mask_api_keys,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "keytally") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to every log line emitted in the current context."""
    structlog.contextvars.bind_contextvars(request_id=request_id)


def clear_request_id() -> None:
    structlog.contextvars.unbind_contextvars("request_id")


# Defaults until keytally.main reconfigures from LOG_LEVEL / JSON_LOGS.
configure_logging()
