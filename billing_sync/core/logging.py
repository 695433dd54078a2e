"""
Structured logging setup.

Every record carries ``service`` and, inside a webhook request, the
``event_id`` and ``event_type`` bound by the processor. Request bodies and
signature headers never reach the log output.
"""

from __future__ import annotations

from typing import Any

import structlog

SERVICE_NAME = "billing-sync"

REDACTED_KEYS = frozenset({"payload", "raw_body", "signature", "signature_header", "stripe_signature"})


def add_service_name(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def redact_webhook_secrets(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "[redacted]"
    return event_dict


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure structlog for the billing sync service."""
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_service_name,
        redact_webhook_secrets,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )
