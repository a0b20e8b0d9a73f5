from __future__ import annotations

import logging
from typing import Any

import structlog


def parse_level(name: str) -> int:
    return getattr(logging, name.upper(), logging.INFO)


def configure_logging(level: int = logging.INFO, *, json_logs: bool = True) -> None:
    logging.basicConfig(format="%(message)s", level=level)
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer())
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )


def get_logger(**initial_values: Any) -> structlog.BoundLogger:
    return structlog.get_logger().bind(**initial_values)


__all__ = ["configure_logging", "get_logger", "parse_level"]
