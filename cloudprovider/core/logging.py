"""Structured JSON logging for the provider plugin.

Two correlation fields are attached to every record: ``request_id`` (one per
lifecycle call from the host engine) and ``server_id`` (the server being
created, reconciled or deleted, once it is known). Reconciliation steps and
remote client calls log through the standard ``logging`` module and pick
both up without passing them around.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from cloudprovider.config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
server_id_var: ContextVar[str] = ContextVar("server_id", default="-")

_NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


@contextmanager
def bind_server_id(server_id: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``server_id``."""
    token = server_id_var.set(server_id)
    try:
        yield
    finally:
        server_id_var.reset(token)


class _CorrelationFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        # An explicit extra={"server_id": ...} wins over the bound one
        if not hasattr(record, "server_id"):
            record.server_id = server_id_var.get()
        return True


class _ProviderJsonFormatter(JsonFormatter):
    """JSON formatter that stamps each record with the plugin's identity."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("service", settings.app_name)
        log_record.setdefault("version", settings.app_version)
        log_record.setdefault("env", settings.env)
        log_record.setdefault("backend", "mock" if settings.use_mock_cloud else "remote")


def configure_logging() -> None:
    """Install the JSON handler on the root logger.

    Called once from create_app. Levels used across the plugin:
        DEBUG   - remote reads, status polls, retry attempts (settings.debug=True)
        INFO    - every link/unlink, power transition and lifecycle call
        WARNING - tolerated not-found unlinks, conflict retries, 4xx answers
        ERROR   - aborted reconciliations, unhandled exceptions
    """
    handler = logging.StreamHandler()
    handler.setFormatter(
        _ProviderJsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s %(request_id)s %(server_id)s",
            datefmt="%Y-%m-%dT%H:%M:%SZ",
        )
    )
    handler.addFilter(_CorrelationFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if settings.debug else logging.INFO)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
