"""Google Cloud Storage bucket lifecycle client."""

from __future__ import annotations

import logging
import re
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from itertools import islice
from typing import Any

import google.auth
from google.api_core.exceptions import GoogleAPICallError, NotFound
from google.cloud import storage

from ...builders.config import gcs_location
from ...constants import GCS_DELETE_BATCH_SIZE, GCS_WORKER_COUNT
from ...exceptions import BucketOperationError, CredentialError
from ...models import BucketDescriptor, GCPCredential, Provider
from ...utils.errors import sanitize_exception
from ...utils.retry import RetryConfig, is_network_error, is_retryable_status
from ..bucket.base import BaseBucketClient, ClientCredentials

logger = logging.getLogger(__name__)

STORAGE_SCOPES = ["https://www.googleapis.com/auth/devstorage.full_control"]
MAX_LABEL_LENGTH = 63

_LABEL_INVALID_RE = re.compile(r"[^a-z0-9_-]")
_EDGE_RE = re.compile(r"^[a-z0-9].*[a-z0-9]$")
_CHARSET_RE = re.compile(r"^[a-z0-9._-]+$")
_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")


def validate_bucket_name(name: str) -> None:
    """Validate GCS bucket naming rules.

    Raises:
        BucketOperationError: If the name breaks a rule
    """
    if len(name) < 3 or len(name) > 63:
        raise BucketOperationError("bucket name must be between 3 and 63 characters", "validate", name)
    if not _EDGE_RE.match(name):
        raise BucketOperationError("bucket name must start and end with a letter or number", "validate", name)
    if not _CHARSET_RE.match(name):
        raise BucketOperationError(
            "bucket name can only contain lowercase letters, numbers, hyphens, underscores, and dots",
            "validate",
            name,
        )
    if ".." in name:
        raise BucketOperationError("bucket name cannot contain consecutive dots", "validate", name)
    if _IPV4_RE.match(name):
        raise BucketOperationError("bucket name cannot be in IP address format", "validate", name)


def sanitize_label(value: str) -> str:
    """Lower-case, replace characters GCS labels reject with '_', truncate to 63."""
    return _LABEL_INVALID_RE.sub("_", value.lower())[:MAX_LABEL_LENGTH]


def tags_to_labels(tags: dict[str, str]) -> dict[str, str]:
    return {sanitize_label(key): sanitize_label(value) for key, value in tags.items()}


def _delete_blob(blob: Any) -> None:
    try:
        blob.delete()
    except NotFound:
        pass


def build_storage_client(credentials: ClientCredentials) -> storage.Client:
    """Create a GCS client from a service account key or external account (WIF) config."""
    credential = credentials.credential
    if not isinstance(credential, GCPCredential):
        raise CredentialError(f"expected GCP credentials, got {type(credential).__name__}")
    google_credentials, _ = google.auth.load_credentials_from_dict(credential.raw, scopes=STORAGE_SCOPES)
    return storage.Client(project=credential.project_id, credentials=google_credentials)


class GCPBucketClient(BaseBucketClient):
    """GCS lifecycle operations for one CloudStorage."""

    provider = Provider.GCP

    def __init__(
        self,
        descriptor: BucketDescriptor,
        credentials: ClientCredentials,
        retry_config: RetryConfig | None = None,
        storage_client: Any = None,
    ) -> None:
        super().__init__(descriptor, retry_config)
        credential = credentials.credential
        self.project_id = credential.project_id if isinstance(credential, GCPCredential) else ""
        self.client = storage_client if storage_client is not None else build_storage_client(credentials)

    def is_retryable(self, error: Exception) -> bool:
        if isinstance(error, GoogleAPICallError):
            return is_retryable_status(error.code)
        return is_network_error(error)

    def exists(self) -> bool:
        return self._run("exists", self._exists)

    def create(self) -> bool:
        return self._run("create", self._create)

    def delete(self) -> bool:
        return self._run("delete", self._delete)

    def _exists(self) -> bool:
        try:
            bucket = self._retry(lambda: self.client.get_bucket(self.bucket))
        except NotFound:
            return False
        except GoogleAPICallError as e:
            raise BucketOperationError(
                f"unable to determine bucket {self.bucket} status: {sanitize_exception(e)}",
                "exists",
                self.bucket,
                e.code,
                self.is_retryable(e),
            ) from e

        self._apply_labels(bucket)
        return True

    def _apply_labels(self, bucket: Any) -> None:
        labels = tags_to_labels(self.descriptor.tags)
        if not labels:
            return
        current = dict(bucket.labels or {})
        merged = {**current, **labels}
        if merged == current:
            return
        bucket.labels = merged
        try:
            bucket.patch()
        except GoogleAPICallError as e:
            raise BucketOperationError(
                f"error updating bucket labels: {sanitize_exception(e)}", "tag", self.bucket, e.code
            ) from e
        logger.info(f"Updated labels on GCS bucket {self.bucket}")

    def _create(self) -> bool:
        validate_bucket_name(self.bucket)

        bucket = self.client.bucket(self.bucket)
        bucket.labels = tags_to_labels(self.descriptor.tags)
        storage_class = self.descriptor.config.get("storageClass")
        if storage_class:
            bucket.storage_class = storage_class

        location = gcs_location(self.descriptor)
        try:
            self._retry(lambda: self.client.create_bucket(bucket, project=self.project_id, location=location))
        except GoogleAPICallError as e:
            if e.code == 409:
                logger.info(f"GCS bucket {self.bucket} already exists")
                return True
            raise self._translate(e, "create") from e
        logger.info(f"Created GCS bucket {self.bucket} in {location}")
        return True

    def _delete(self) -> bool:
        try:
            bucket = self._retry(lambda: self.client.get_bucket(self.bucket))
        except NotFound:
            return True
        except GoogleAPICallError as e:
            raise self._translate(e, "delete") from e

        self._delete_objects(bucket)

        try:
            self._retry(bucket.delete)
        except GoogleAPICallError as e:
            if e.code == 404:
                return True
            raise self._translate(e, "delete") from e
        logger.info(f"Deleted GCS bucket {self.bucket}")
        return True

    def _delete_objects(self, bucket: Any) -> None:
        """Delete every object in the bucket, one bounded batch at a time; the first failure aborts."""
        deleted = 0
        blobs = iter(self.client.list_blobs(bucket))
        with ThreadPoolExecutor(max_workers=GCS_WORKER_COUNT) as pool:
            while True:
                try:
                    batch = list(islice(blobs, GCS_DELETE_BATCH_SIZE))
                except GoogleAPICallError as e:
                    raise BucketOperationError(
                        f"error listing objects: {sanitize_exception(e)}", "delete", self.bucket
                    ) from e
                if not batch:
                    break

                futures = {pool.submit(_delete_blob, blob): blob.name for blob in batch}
                done, pending = wait(futures, return_when=FIRST_EXCEPTION)
                for future in done:
                    error = future.exception()
                    if error is None:
                        continue
                    for other in pending:
                        other.cancel()
                    raise BucketOperationError(
                        f"failed to delete object {futures[future]}: {sanitize_exception(error)}",
                        "delete",
                        self.bucket,
                    ) from error
                deleted += len(batch)

        if deleted:
            logger.info(f"Deleted {deleted} objects from GCS bucket {self.bucket}")

    def _translate(self, error: GoogleAPICallError, operation: str) -> BucketOperationError:
        code = error.code
        if code == 409:
            message = f"bucket '{self.bucket}' already exists globally"
        elif code == 404:
            message = f"bucket '{self.bucket}' not found"
        elif code == 401:
            message = "authentication failed: check service account key"
        elif code == 403:
            message = "permission denied: check service account permissions for project"
        elif code == 429:
            message = "rate limit exceeded: too many requests"
        elif code == 400:
            message = "invalid request: check bucket name and configuration"
        elif code:
            message = f"gcs error during {operation}: {error.message} (HTTP {code})"
        else:
            message = f"failed to {operation} bucket '{self.bucket}': {sanitize_exception(error)}"
        return BucketOperationError(message, operation, self.bucket, code, self.is_retryable(error))
