"""Validation that applies to the whole list of backup location intents."""

from __future__ import annotations

from typing import Iterable

from ..exceptions import LocationValidationError
from ..models import LocationIntent


def validate_intents(intents: Iterable[LocationIntent], backup_images: bool = True) -> None:
    """Validate a batch of intents belonging to one parent.

    Checks, in order per intent: a non-empty name must not be only whitespace,
    non-empty names must be unique, and a prefix is required when image backup
    is enabled. The first failure is raised.

    Raises:
        LocationValidationError: On the first invalid intent
    """
    seen: set[str] = set()
    for intent in intents:
        if intent.name:
            if not intent.name.strip():
                raise LocationValidationError("BSL name cannot be empty or whitespace")
            if intent.name in seen:
                raise LocationValidationError(f"duplicate BSL name: {intent.name}")
            seen.add(intent.name)

        if backup_images and not intent.prefix:
            raise LocationValidationError(
                "BackupLocation must have velero or cloudstorage prefix when backupImages is not set to false"
            )
