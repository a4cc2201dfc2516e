"""Bucket lifecycle interface shared by the provider clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol, TypeVar

from ... import metrics
from ...exceptions import BucketOperationError, RetryExhaustedError
from ...models import BucketDescriptor, NormalizedCredential, Provider
from ...tracing import trace_span
from ...utils.retry import RetryConfig, with_retry

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class BucketClient(Protocol):
    """Idempotent lifecycle operations on the bucket a CloudStorage describes."""

    def exists(self) -> bool:
        """Check whether the bucket exists."""
        ...

    def create(self) -> bool:
        """Create the bucket; an already existing bucket owned by the caller counts as success."""
        ...

    def delete(self) -> bool:
        """Delete the bucket and its contents; a missing bucket counts as success."""
        ...


@dataclass
class ClientCredentials:
    """Credentials a provider client is built from.

    Attributes:
        credential: Parsed credential for the provider
        secret_data: Decoded data of the secret the credential came from
        credentials_file: Shared credentials file, when the SDK reads one
    """

    credential: NormalizedCredential
    secret_data: dict[str, bytes] = field(default_factory=dict)
    credentials_file: str | None = None


CredentialLoader = Callable[[BucketDescriptor], ClientCredentials]


class BaseBucketClient:
    """Retry, metrics and tracing plumbing for the provider clients."""

    provider: Provider

    def __init__(self, descriptor: BucketDescriptor, retry_config: RetryConfig | None = None) -> None:
        self.descriptor = descriptor
        self.retry_config = retry_config or RetryConfig.from_env()

    @property
    def bucket(self) -> str:
        return self.descriptor.bucket

    def is_retryable(self, error: Exception) -> bool:
        raise NotImplementedError

    def _retry(self, fn: Callable[[], _T]) -> _T:
        """Run one provider call under the retry policy."""
        return with_retry(fn, self.is_retryable, self.retry_config, on_retry=self._on_retry)

    def _on_retry(self, attempt: int, error: Exception) -> None:
        metrics.bucket_operation_retries_total.labels(provider=self.provider.value).inc()
        logger.info(f"Retrying {self.provider.value} call for bucket {self.bucket} (attempt {attempt}): {error}")

    def _run(self, operation: str, fn: Callable[[], bool]) -> bool:
        """Run a lifecycle operation, recording its outcome."""
        with trace_span(
            f"bucket_{operation}",
            attributes={"provider": self.provider.value, "bucket": self.bucket},
        ):
            try:
                result = fn()
            except BucketOperationError as e:
                if isinstance(e, RetryExhaustedError):
                    e.operation = operation
                    e.bucket = self.bucket
                metrics.bucket_operations_total.labels(
                    provider=self.provider.value, operation=operation, result="error"
                ).inc()
                raise
            metrics.bucket_operations_total.labels(
                provider=self.provider.value, operation=operation, result="success"
            ).inc()
            return result


def new_bucket_client(
    descriptor: BucketDescriptor,
    credential_loader: CredentialLoader,
    retry_config: RetryConfig | None = None,
) -> BucketClient:
    """Build the lifecycle client for a descriptor's provider.

    Args:
        descriptor: Parsed CloudStorage
        credential_loader: Returns the credentials for the descriptor
        retry_config: Backoff parameters (defaults to the BUCKET_RETRY_* environment)

    Raises:
        BucketOperationError: If the provider has no client
    """
    from ..aws.client import AWSBucketClient
    from ..azure.client import AzureBucketClient
    from ..gcp.client import GCPBucketClient

    factories: dict[Provider, Callable[..., BucketClient]] = {
        Provider.AWS: AWSBucketClient,
        Provider.AZURE: AzureBucketClient,
        Provider.GCP: GCPBucketClient,
    }
    factory = factories.get(descriptor.provider)
    if factory is None:
        raise BucketOperationError(f"unsupported bucket provider: {descriptor.provider}")
    return factory(descriptor, credential_loader(descriptor), retry_config=retry_config)
