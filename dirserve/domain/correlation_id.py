"""Request correlation ID management using contextvars."""

import contextvars
import logging
import uuid
from typing import Any, MutableMapping, Optional

ROOT_LOGGER_NAME = "dirserve"

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Return a fresh UUID4 string used to tag one request."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Return the correlation ID bound to the running context, if any."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    """Bind a correlation ID to the running context."""
    _correlation_id_var.set(correlation_id)


def clear_correlation_id() -> None:
    """Unbind the correlation ID from the running context."""
    _correlation_id_var.set(None)


def component_for(logger_name: str) -> str:
    """Strip the project prefix from a logger name."""
    prefix = f"{ROOT_LOGGER_NAME}."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix) :]
    return logger_name


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Adds ``correlation_id`` and ``component`` to every record it emits."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        correlation_id = get_correlation_id()
        extra["correlation_id"] = correlation_id if correlation_id is not None else "-"
        extra["component"] = component_for(self.logger.name)
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(component: str) -> CorrelationLoggerAdapter:
    """Return an adapter for ``dirserve.<component>``."""
    return CorrelationLoggerAdapter(
        logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}"), {}
    )
