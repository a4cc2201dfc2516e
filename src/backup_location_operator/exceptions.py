"""Exception hierarchy for the Backup Location Operator."""

from __future__ import annotations


class LocationValidationError(ValueError):
    """A backup location intent is missing or contradicting required fields."""


class ResolutionError(ValueError):
    """A backup location could not be resolved into a concrete configuration."""


class ResourceNotFoundError(ResolutionError):
    """A referenced Kubernetes resource does not exist."""

    def __init__(self, kind: str, name: str, namespace: str, message: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        super().__init__(message or f"failed to get {kind} {name}: not found in namespace {namespace}")


class CredentialError(ResolutionError):
    """A credential secret is missing, malformed, or lacks the expected keys."""


class UnsupportedProviderError(ResolutionError):
    """The requested provider is not one of aws, azure or gcp."""


class BucketOperationError(Exception):
    """A bucket lifecycle call against a cloud provider failed."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        bucket: str | None = None,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.bucket = bucket
        self.status_code = status_code
        self.retryable = retryable


class RetryExhaustedError(BucketOperationError):
    """A retryable operation kept failing until its retries were exhausted."""

    def __init__(self, retries: int, last_error: Exception) -> None:
        super().__init__(f"operation failed after {retries} retries: {last_error}")
        self.retries = retries
        self.last_error = last_error
