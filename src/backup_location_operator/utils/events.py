"""Utilities for emitting Kubernetes events."""

from __future__ import annotations

from typing import Any

import kopf

from ..constants import (
    EVENT_REASON_ANNOTATION_PARSE_FAILED,
    EVENT_REASON_BSL_DELETED,
    EVENT_REASON_BSL_RECONCILED,
    EVENT_REASON_BUCKET_CREATED,
    EVENT_REASON_BUCKET_DELETED,
    EVENT_REASON_BUCKET_RETAINED,
    EVENT_REASON_RECONCILE_FAILED,
    EVENT_REASON_RECONCILE_STARTED,
    EVENT_REASON_VALIDATE_FAILED,
    EVENT_REASON_VALIDATE_SUCCEEDED,
)


def emit_event(
    body: dict[str, Any],
    reason: str,
    message: str,
    type_: str = "Normal",
) -> None:
    """Emit a Kubernetes event.

    Args:
        body: Resource body (or metadata with name, namespace and uid)
        reason: Event reason
        message: Event message
        type_: Event type (Normal or Warning)
    """
    kopf.event(
        body,
        reason=reason,
        message=message,
        type=type_,
    )


def emit_reconcile_started(body: dict[str, Any]) -> None:
    """Emit reconcile started event."""
    emit_event(body, EVENT_REASON_RECONCILE_STARTED, "Reconciliation started")


def emit_reconcile_failed(body: dict[str, Any], message: str) -> None:
    """Emit reconcile failed event."""
    emit_event(body, EVENT_REASON_RECONCILE_FAILED, message, type_="Warning")


def emit_validate_succeeded(body: dict[str, Any]) -> None:
    emit_event(body, EVENT_REASON_VALIDATE_SUCCEEDED, "Validation succeeded")


def emit_validate_failed(body: dict[str, Any], message: str) -> None:
    emit_event(body, EVENT_REASON_VALIDATE_FAILED, message, type_="Warning")


def emit_bucket_created(body: dict[str, Any], bucket_name: str) -> None:
    emit_event(body, EVENT_REASON_BUCKET_CREATED, f"Bucket {bucket_name} created")


def emit_bucket_deleted(body: dict[str, Any], bucket_name: str) -> None:
    emit_event(body, EVENT_REASON_BUCKET_DELETED, f"Bucket {bucket_name} deleted")


def emit_bucket_retained(body: dict[str, Any], bucket_name: str) -> None:
    emit_event(body, EVENT_REASON_BUCKET_RETAINED, f"Bucket {bucket_name} retained, delete annotation not set")


def emit_annotation_parse_failed(body: dict[str, Any], annotation: str, value: str) -> None:
    """Emit a warning for a delete annotation that is not a boolean."""
    emit_event(
        body,
        EVENT_REASON_ANNOTATION_PARSE_FAILED,
        f"unable to parse annotation {annotation}={value!r}, use \"true\" or \"false\"",
        type_="Warning",
    )


def emit_bsl_reconciled(body: dict[str, Any], bsl_name: str, action: str) -> None:
    emit_event(body, EVENT_REASON_BSL_RECONCILED, f"BackupStorageLocation {bsl_name} {action}")


def emit_bsl_deleted(body: dict[str, Any], bsl_name: str) -> None:
    emit_event(body, EVENT_REASON_BSL_DELETED, f"BackupStorageLocation {bsl_name} deleted")
