"""Centralized logging configuration with correlation and session ID support."""

import logging
import os
import sys
from contextvars import ContextVar
from pythonjsonlogger import jsonlogger

correlation_id_var: ContextVar[str] = ContextVar('correlation_id', default='')
session_id_var: ContextVar[str] = ContextVar('session_id', default='')


class CorrelationIdFilter(logging.Filter):
    """Adds correlation_id and session_id to all log records"""

    def filter(self, record):
        record.correlation_id = correlation_id_var.get('')
        record.session_id = session_id_var.get('')
        return True


def setup_logging(service_name: str) -> None:
    """Sets up JSON logging with correlation ID support"""
    logger = logging.getLogger()
    logger.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    logger.handlers = []

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(name)s %(levelname)s %(correlation_id)s %(session_id)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'name': 'logger',
            'levelname': 'level',
        },
        static_fields={'service': service_name}
    )

    json_handler.setFormatter(formatter)
    json_handler.addFilter(CorrelationIdFilter())
    logger.addHandler(json_handler)
    logging.info(f"{service_name} logging configured with JSON format and correlation ID support")


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    return correlation_id_var.get('')


def set_session_id(session_id: str) -> None:
    session_id_var.set(session_id)
