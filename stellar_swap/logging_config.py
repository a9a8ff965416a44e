"""
Structured logging configuration using structlog.

Modules log through stdlib ``logging.getLogger(__name__)``; every record is
rendered by structlog and stamped with the active Stellar network. While a
transaction is being driven, ``transaction_context`` adds its id and kind.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from .config import settings


QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "stellar_sdk")


def _network_stamp(network: str) -> Processor:
    def stamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("network", network)
        return event_dict

    return stamp


def _renderer(log_format: str, level: int) -> Processor:
    fmt = log_format.lower()
    if fmt == "console" or (fmt == "auto" and level == logging.DEBUG):
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    network: Optional[str] = None,
) -> None:
    """Configure structlog and route stdlib logging through it.

    Args:
        log_level: Override log level (default: settings.log_level)
        log_format: "json", "console" or "auto" (console at DEBUG, JSON otherwise)
        network: Network name stamped on each record (default: settings.network)
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)
    renderer = _renderer(log_format or settings.log_format, level)

    shared: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        _network_stamp((network or settings.network).upper()),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if isinstance(renderer, structlog.processors.JSONRenderer):
        shared.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=[*shared, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


@contextmanager
def transaction_context(tx_id: str, kind: str, **extra: Any) -> Iterator[None]:
    """Bind a transaction's id and kind to every log record emitted inside the block.

    Tasks created inside the block (background confirmations) inherit the binding.
    """
    with structlog.contextvars.bound_contextvars(tx_id=tx_id, tx_kind=kind, **extra):
        yield
