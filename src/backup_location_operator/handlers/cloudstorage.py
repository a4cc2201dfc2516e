"""Handler for the CloudStorage CRD: provisions and optionally deletes the cloud bucket."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Any, Callable

import kopf

from ..builders.descriptor import create_descriptor_from_object
from ..constants import ANNOTATION_DELETE_BUCKET, API_GROUP_VERSION, KIND_CLOUD_STORAGE
from ..credentials.files import CredentialFileCache
from ..credentials.resolver import CredentialResolver
from ..exceptions import BucketOperationError, ResolutionError, UnsupportedProviderError
from ..models import BucketDescriptor
from ..services.bucket.base import BucketClient, CredentialLoader, new_bucket_client
from ..tracing import trace_span
from ..utils.conditions import (
    set_bucket_created_condition,
    set_bucket_creation_failed_condition,
    set_bucket_deletion_failed_condition,
    set_bucket_ready_condition,
)
from ..utils.events import (
    emit_annotation_parse_failed,
    emit_bucket_created,
    emit_bucket_deleted,
    emit_bucket_retained,
    emit_validate_succeeded,
)
from .base import BaseHandler
from .shared import get_core_client, make_credential_loader

_TRUE_VALUES = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_VALUES = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_bool(value: str) -> bool:
    """Parse a boolean the way Kubernetes tooling spells them.

    Raises:
        ValueError: If the value is not one of the accepted spellings
    """
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {value!r}")


class CloudStorageHandler(BaseHandler):
    """Handler for CloudStorage resources."""

    def __init__(
        self,
        client_factory: Callable[[BucketDescriptor, CredentialLoader], BucketClient] = new_bucket_client,
    ):
        super().__init__(KIND_CLOUD_STORAGE)
        self.client_factory = client_factory
        self.credential_files = CredentialFileCache()

    def bucket_client(self, descriptor: BucketDescriptor) -> BucketClient:
        resolver = CredentialResolver(get_core_client())
        return self.client_factory(descriptor, make_credential_loader(resolver, self.credential_files))

    def delete_requested(self, body: dict[str, Any], meta: dict[str, Any]) -> bool:
        """Read the delete annotation.

        Raises:
            kopf.TemporaryError: If the annotation is not a boolean
        """
        value = (meta.get("annotations") or {}).get(ANNOTATION_DELETE_BUCKET)
        if value is None:
            return False
        try:
            return parse_bool(value)
        except ValueError as e:
            self.log_warning(meta, f"Unable to parse annotation {ANNOTATION_DELETE_BUCKET}={value!r}",
                             reason="UnableToParseAnnotation")
            emit_annotation_parse_failed(body, ANNOTATION_DELETE_BUCKET, value)
            raise kopf.TemporaryError(
                f"unable to parse annotation {ANNOTATION_DELETE_BUCKET}: {value!r}", delay=30
            ) from e

    def _descriptor(self, body: dict[str, Any], meta: dict[str, Any]) -> BucketDescriptor:
        try:
            descriptor = create_descriptor_from_object(body)
        except UnsupportedProviderError as e:
            self.handle_validation_error(body, meta, e)
        if not descriptor.bucket:
            self.handle_validation_error(body, meta, ValueError("spec.name (bucket name) is required"))
        return descriptor

    def reconcile(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Ensure the bucket described by a CloudStorage exists."""
        name = meta.get("name", "unknown")

        with trace_span("reconcile_cloudstorage", kind=KIND_CLOUD_STORAGE, attributes={"cloudstorage.name": name}):
            self.delete_requested(body, meta)
            descriptor = self._descriptor(body, meta)
            emit_validate_succeeded(body)

            conditions = status.get("conditions", [])
            generation = meta.get("generation")
            try:
                bucket_client = self.bucket_client(descriptor)
                if bucket_client.exists():
                    conditions = set_bucket_ready_condition(conditions, descriptor.bucket, generation)
                    self.log_info(meta, f"Bucket {descriptor.bucket} already exists",
                                  reason="BucketReady", bucket_name=descriptor.bucket)
                else:
                    bucket_client.create()
                    conditions = set_bucket_created_condition(conditions, descriptor.bucket, generation)
                    emit_bucket_created(body, descriptor.bucket)
                    self.log_info(meta, f"Created bucket {descriptor.bucket}",
                                  reason="BucketCreated", bucket_name=descriptor.bucket,
                                  provider=descriptor.provider.value)
            except (BucketOperationError, ResolutionError) as e:
                self.handle_reconciliation_error(
                    body, meta, status, patch, e,
                    condition_fn=lambda conds, msg: set_bucket_creation_failed_condition(conds, msg, generation),
                )

            self.update_resource_status(patch, meta, True, {
                "name": descriptor.bucket,
                "lastSynced": datetime.now(timezone.utc).isoformat(),
                "conditions": conditions,
            })

    def delete(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Delete the bucket when the delete annotation is true, then release the finalizer."""
        name = meta.get("name", "unknown")
        namespace = meta.get("namespace", "default")
        self.log_info(meta, f"CloudStorage {name} is being deleted", event="deletion", reason="Deletion")

        if not self.delete_requested(body, meta):
            bucket_name = (body.get("spec") or {}).get("name", name)
            self.log_info(meta, f"Retaining bucket {bucket_name}, {ANNOTATION_DELETE_BUCKET} is not true",
                          reason="BucketRetained", bucket_name=bucket_name)
            emit_bucket_retained(body, bucket_name)
            self.remove_finalizer(meta, patch)
            return

        descriptor = self._descriptor(body, meta)
        with trace_span("delete_cloudstorage", kind=KIND_CLOUD_STORAGE, attributes={"bucket.name": descriptor.bucket}):
            try:
                self.bucket_client(descriptor).delete()
            except (BucketOperationError, ResolutionError) as e:
                self.handle_reconciliation_error(
                    body, meta, status, patch, e,
                    condition_fn=lambda conds, msg: set_bucket_deletion_failed_condition(
                        conds, msg, meta.get("generation")
                    ),
                )

        emit_bucket_deleted(body, descriptor.bucket)
        self.log_info(meta, f"Deleted bucket {descriptor.bucket}", reason="BucketDeleted", bucket_name=descriptor.bucket)
        self.credential_files.invalidate(namespace, name)
        self.remove_finalizer(meta, patch)


# Global handler instance
_handler = CloudStorageHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_CLOUD_STORAGE)
@kopf.on.update(API_GROUP_VERSION, KIND_CLOUD_STORAGE)
@kopf.on.resume(API_GROUP_VERSION, KIND_CLOUD_STORAGE)
@kopf.timer(API_GROUP_VERSION, KIND_CLOUD_STORAGE, interval=int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")))
def handle_cloudstorage(
    body: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle CloudStorage resource reconciliation."""
    if meta.get("deletionTimestamp"):
        return
    _handler.ensure_finalizer(meta, patch)
    _handler.reconcile_with_metrics(body, meta, lambda: _handler.reconcile(body, meta, status, patch))


@kopf.on.delete(API_GROUP_VERSION, KIND_CLOUD_STORAGE)
def handle_cloudstorage_delete(
    body: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle CloudStorage resource deletion."""
    _handler.delete(body, meta, status, patch)
