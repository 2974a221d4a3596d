import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Literal

from opentelemetry import trace

from .config import ServiceSettings


_PLACEHOLDER = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | trace_id=%(trace_id)s span_id=%(span_id)s "
    "actor=%(actor_id)s | %(message)s"
)

# Only read by the log filter; ledger attribution always uses the explicit actor argument.
_LOG_ACTOR: ContextVar[str | None] = ContextVar("stockledger_log_actor", default=None)


def _format_trace_id(value: int, length: int) -> str:
    return format(value, f"0{length}x")


@contextmanager
def actor_log_context(actor_id: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``actor_id``."""

    token = _LOG_ACTOR.set(actor_id)
    try:
        yield
    finally:
        _LOG_ACTOR.reset(token)


class LedgerContextFilter(logging.Filter):
    """Populate trace/span identifiers and the acting user on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        span = trace.get_current_span()
        span_context = span.get_span_context() if span is not None else None
        if span_context is not None and span_context.is_valid:
            record.trace_id = _format_trace_id(span_context.trace_id, 32)
            record.span_id = _format_trace_id(span_context.span_id, 16)
        else:
            record.trace_id = _PLACEHOLDER
            record.span_id = _PLACEHOLDER
        record.actor_id = _LOG_ACTOR.get() or _PLACEHOLDER
        return True


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging level and format."""

    logging_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = settings.log_level
    logging.basicConfig(level=logging_level, format=_LOG_FORMAT)
    root_logger = logging.getLogger()
    existing_filter = next(
        (f for f in root_logger.filters if isinstance(f, LedgerContextFilter)),
        None,
    )
    context_filter = existing_filter or LedgerContextFilter()
    if existing_filter is None:
        root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        if not any(isinstance(f, LedgerContextFilter) for f in handler.filters):
            handler.addFilter(context_filter)
