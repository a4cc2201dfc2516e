"""Utility functions for the Backup Location Operator."""

from .cache import TTLCache, make_cache_key
from .conditions import (
    set_bucket_created_condition,
    set_bucket_creation_failed_condition,
    set_bucket_ready_condition,
    set_reconciled_condition,
    update_condition,
)
from .events import emit_event
from .retry import RetryConfig, with_retry
from .secrets import decode_secret_data, read_secret

__all__ = [
    "update_condition",
    "set_bucket_created_condition",
    "set_bucket_ready_condition",
    "set_bucket_creation_failed_condition",
    "set_reconciled_condition",
    "emit_event",
    "read_secret",
    "decode_secret_data",
    "TTLCache",
    "make_cache_key",
    "RetryConfig",
    "with_retry",
]
