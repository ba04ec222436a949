"""
JSON log lines for relaycdn.

Everything goes through one stdout handler on the root logger; uvicorn and
APScheduler loggers are stripped of their own handlers and propagate there.

relaycdn's own records always carry the request context keys below, ``null``
when the call site did not pass them with ``extra=``, so quota denials,
ticket issuance and relays can be grouped by ``client_id`` downstream.
"""

import logging
import logging.config
import os

from pythonjsonlogger.json import JsonFormatter

SERVICE_NAME = "relaycdn"
CONTEXT_FIELDS = ("client_id", "pathname", "url")
RENAMED_FIELDS = {"asctime": "timestamp", "levelname": "level", "name": "logger"}


class RelayJsonFormatter(JsonFormatter):
    def __init__(self, *args, environment: str | None = None, **kwargs):
        kwargs.setdefault("rename_fields", dict(RENAMED_FIELDS))
        kwargs.setdefault(
            "static_fields",
            {
                "service": SERVICE_NAME,
                "environment": environment or os.getenv("ENVIRONMENT", "production"),
            },
        )
        super().__init__(*args, **kwargs)

    def add_fields(self, log_record: dict, record: logging.LogRecord, message_dict: dict) -> None:
        super().add_fields(log_record, record, message_dict)
        if record.name == SERVICE_NAME or record.name.startswith(SERVICE_NAME + "."):
            for field in CONTEXT_FIELDS:
                log_record.setdefault(field, None)


def setup_logging(level: str | None = None, environment: str | None = None) -> None:
    """Install JSON logging; ``level`` falls back to LOG_LEVEL, then INFO."""
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": RelayJsonFormatter,
                    "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    "datefmt": "%Y-%m-%dT%H:%M:%S",
                    "environment": environment,
                },
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "json",
                    "stream": "ext://sys.stdout",
                },
            },
            "root": {"handlers": ["stdout"], "level": log_level},
            "loggers": {
                SERVICE_NAME: {"level": log_level},
                "uvicorn": {"handlers": [], "propagate": True},
                "uvicorn.error": {"handlers": [], "propagate": True},
                "uvicorn.access": {"handlers": [], "propagate": True},
                "apscheduler": {"handlers": [], "level": "WARNING", "propagate": True},
            },
        }
    )
