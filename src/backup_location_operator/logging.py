"""Structured logging configuration for the Backup Location Operator."""

import json
import logging
import os
import sys
from typing import Any

SECRET_FIELDS = {
    "access_key_id",
    "secret_access_key",
    "session_token",
    "client_secret",
    "storage_account_key",
    "private_key",
    "password",
}


def setup_structured_logging() -> None:
    """Configure structured JSON logging."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **kwargs: Any,
) -> None:
    """Log a structured resource event."""
    log_data = {
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        "event": event,
        "reason": reason,
        "message": message,
    }
    log_data.update(sanitize_secrets(kwargs))
    logger.log(level, json.dumps(log_data, default=str))


def sanitize_secrets(log_data: dict[str, Any]) -> dict[str, Any]:
    """Remove secret fields from log data."""
    sanitized = log_data.copy()
    for field in SECRET_FIELDS:
        if field in sanitized:
            sanitized[field] = "***REDACTED***"
    return sanitized
