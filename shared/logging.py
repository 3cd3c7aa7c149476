"""
Shared logging configuration for the Claim Assignment Service.
"""

import re
import sys
import logging
import time
from typing import Any, Dict, Optional
from contextvars import ContextVar

import structlog

# Context variables for claim correlation
message_id_var: ContextVar[Optional[str]] = ContextVar('message_id', default=None)
claim_id_var: ContextVar[Optional[str]] = ContextVar('claim_id', default=None)
process_id_var: ContextVar[Optional[str]] = ContextVar('process_id', default=None)

_CREDENTIALS_PATTERN = re.compile(r"//[^/@]*:[^/@]*@")


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Configure structured logging for a service."""

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_service_context,
            add_correlation_context,
            add_timestamp,
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # aiormq is chatty at INFO during reconnects
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to log events."""
    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict["service"] = logger_name.split(".")[0]

    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add claim correlation context to log events."""
    message_id = message_id_var.get()
    if message_id:
        event_dict.setdefault("message_id", message_id)

    claim_id = claim_id_var.get()
    if claim_id:
        event_dict.setdefault("claim_id", claim_id)

    process_id = process_id_var.get()
    if process_id:
        event_dict.setdefault("process_id", process_id)

    return event_dict


def add_timestamp(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add high-precision timestamp to log events."""
    event_dict["timestamp"] = time.time()
    return event_dict


def set_message_context(message_id: Optional[str] = None,
                        claim_id: Optional[str] = None,
                        process_id: Optional[str] = None):
    """Bind the identifiers of the message being processed."""
    if message_id:
        message_id_var.set(message_id)
    if claim_id:
        claim_id_var.set(claim_id)
    if process_id:
        process_id_var.set(process_id)


def clear_context():
    """Clear all context variables."""
    message_id_var.set(None)
    claim_id_var.set(None)
    process_id_var.set(None)


def mask_url(url: Optional[str]) -> Optional[str]:
    """Hide the user:password part of a broker or database URL."""
    if not url:
        return url
    return _CREDENTIALS_PATTERN.sub("//***:***@", url)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)
