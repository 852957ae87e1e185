"""Structured logging for price batches: structlog over stdlib logging.

Batch-scoped context (batch_id) is bound with structlog.contextvars, so two
batches running on one event loop never mix their log context. Two ledger
specific processors run before rendering:
- redact_credentials masks provider API keys wherever they appear as a field.
- render_decimals logs prices and amounts as plain decimal strings, never
  floats or Decimal reprs.
"""

import logging
from collections.abc import MutableMapping
from decimal import Decimal
from typing import Any

import structlog

REDACTED = "***"

_CREDENTIAL_FIELDS = frozenset({"api_key", "x-api-key", "credential", "authorization"})


def redact_credentials(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Mask credential-named fields, including inside a logged headers dict."""
    for key, value in event_dict.items():
        if key.lower() in _CREDENTIAL_FIELDS and value:
            event_dict[key] = REDACTED
        elif isinstance(value, dict):
            event_dict[key] = {
                k: REDACTED if str(k).lower() in _CREDENTIAL_FIELDS and v else v
                for k, v in value.items()
            }
    return event_dict


def render_decimals(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Replace Decimal values with their fixed-point string."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal):
            event_dict[key] = format(value, "f")
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "console") -> None:
    """Configure structlog and route everything to stderr.

    Args:
        log_level: stdlib level name for the root logger.
        log_format: "json" for machine-readable lines, anything else for the
            human-readable console renderer.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        redact_credentials,
        render_decimals,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if log_format.lower() == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    # stdout carries the exported rows
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a bound structlog logger with the given name."""
    return structlog.get_logger(name)
