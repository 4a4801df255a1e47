"""
Logging setup.

Modules log through stdlib `logging.getLogger(__name__)`; records are
rendered by structlog (JSON, or console output at DEBUG). Everything is
written to stderr because stdout carries protocol frames in stdio mode.
"""

import logging
import sys
from typing import Any, TextIO

import structlog

NOISY_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def _renderer(console: bool) -> Any:
    if console:
        return structlog.dev.ConsoleRenderer(colors=False)
    return structlog.processors.JSONRenderer()


def configure_logging(level: str = "INFO", stream: TextIO | None = None) -> None:
    """Install a single stderr handler shared by structlog and stdlib loggers."""
    console = level == "DEBUG"

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    structlog.configure(
        processors=pre_chain + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks if not console else structlog.dev.set_exc_info,
            _renderer(console),
        ],
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level))

    for name, noisy_level in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(noisy_level)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format="console" if console else "json",
    )
