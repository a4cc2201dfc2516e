"""Utilities for managing Kubernetes conditions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..constants import (
    COND_BUCKET_READY,
    COND_RECONCILED,
    REASON_BUCKET_CREATED,
    REASON_BUCKET_CREATION_FAILED,
    REASON_BUCKET_DELETION_FAILED,
    REASON_BUCKET_READY,
    REASON_RECONCILE_COMPLETE,
    REASON_RECONCILE_ERROR,
)


def update_condition(
    conditions: list[dict[str, Any]],
    condition_type: str,
    status: str,
    reason: str,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Update or add a condition to the conditions list.

    Args:
        conditions: List of existing conditions
        condition_type: Type of condition
        status: Status of condition ("True", "False", "Unknown")
        reason: Reason for the condition
        message: Human-readable message
        observed_generation: Generation when condition was observed

    Returns:
        Updated list of conditions
    """
    now = datetime.now(timezone.utc).isoformat()
    conditions = list(conditions)

    existing_idx = None
    for idx, cond in enumerate(conditions):
        if cond.get("type") == condition_type:
            existing_idx = idx
            break

    new_condition = {
        "type": condition_type,
        "status": status,
        "reason": reason,
        "message": message,
        "lastTransitionTime": now,
    }

    if observed_generation is not None:
        new_condition["observedGeneration"] = observed_generation

    if existing_idx is not None:
        existing = conditions[existing_idx]
        # Only update lastTransitionTime if status changed
        if existing.get("status") == status:
            new_condition["lastTransitionTime"] = existing.get("lastTransitionTime", now)
        conditions[existing_idx] = new_condition
    else:
        conditions.append(new_condition)

    return conditions


def set_bucket_created_condition(
    conditions: list[dict[str, Any]],
    bucket_name: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set BucketReady=True after the bucket was created by this reconcile."""
    return update_condition(
        conditions,
        COND_BUCKET_READY,
        "True",
        REASON_BUCKET_CREATED,
        f"Bucket {bucket_name} has been created successfully",
        observed_generation,
    )


def set_bucket_ready_condition(
    conditions: list[dict[str, Any]],
    bucket_name: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set BucketReady=True for a bucket that already existed."""
    return update_condition(
        conditions,
        COND_BUCKET_READY,
        "True",
        REASON_BUCKET_READY,
        f"Bucket {bucket_name} is available and ready for use",
        observed_generation,
    )


def set_bucket_creation_failed_condition(
    conditions: list[dict[str, Any]],
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set BucketReady=False after a failed create."""
    return update_condition(
        conditions,
        COND_BUCKET_READY,
        "False",
        REASON_BUCKET_CREATION_FAILED,
        message,
        observed_generation,
    )


def set_bucket_deletion_failed_condition(
    conditions: list[dict[str, Any]],
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set BucketReady=False after a failed delete."""
    return update_condition(
        conditions,
        COND_BUCKET_READY,
        "False",
        REASON_BUCKET_DELETION_FAILED,
        message,
        observed_generation,
    )


def set_reconciled_condition(
    conditions: list[dict[str, Any]],
    status: bool,
    message: str,
    observed_generation: int | None = None,
) -> list[dict[str, Any]]:
    """Set the Reconciled condition on the parent resource."""
    return update_condition(
        conditions,
        COND_RECONCILED,
        "True" if status else "False",
        REASON_RECONCILE_COMPLETE if status else REASON_RECONCILE_ERROR,
        message,
        observed_generation,
    )
