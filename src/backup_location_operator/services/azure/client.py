"""Azure Blob Storage container lifecycle client."""

from __future__ import annotations

import logging
import os
import re
from typing import Any

from azure.core.credentials import AzureNamedKeyCredential
from azure.core.exceptions import (
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError as AzureResourceNotFoundError,
    ServiceRequestError,
)
from azure.identity import ClientSecretCredential, DefaultAzureCredential, WorkloadIdentityCredential
from azure.storage.blob import BlobServiceClient

from ...constants import DEFAULT_AZURE_TOKEN_FILE
from ...credentials.azure import storage_account_name
from ...exceptions import BucketOperationError, CredentialError
from ...models import AzureAuthMethod, AzureCredential, BucketDescriptor, Provider
from ...utils.errors import sanitize_exception
from ...utils.retry import TERMINAL_STATUS_CODES, RetryConfig, is_network_error, is_retryable_status
from ..bucket.base import BaseBucketClient, ClientCredentials

logger = logging.getLogger(__name__)

_CONTAINER_NAME_RE = re.compile(r"^[a-z0-9-]+$")
_ACCOUNT_NAME_RE = re.compile(r"^[a-z0-9]+$")

MAX_TAGS = 50
MAX_TAG_KEY_LENGTH = 512
MAX_TAG_VALUE_LENGTH = 256

_RETRYABLE_CODES = frozenset({"InternalError", "ServerBusy", "OperationTimedOut"})
_TERMINAL_CODES = frozenset({
    "ContainerNotFound",
    "ContainerAlreadyExists",
    "AuthenticationFailed",
    "AuthorizationFailed",
    "AuthorizationFailure",
    "InvalidResourceName",
    "AccountNotFound",
})


def validate_container_name(name: str) -> None:
    """Validate Azure container naming rules.

    Raises:
        BucketOperationError: If the name breaks a rule
    """
    if len(name) < 3 or len(name) > 63:
        raise BucketOperationError("invalid container name: container name must be between 3 and 63 characters")
    if not name[0].isalnum():
        raise BucketOperationError("invalid container name: container name must start with a letter or number")
    if not _CONTAINER_NAME_RE.match(name):
        raise BucketOperationError(
            "invalid container name: container name can only contain lowercase letters, numbers, and hyphens"
        )
    if "--" in name:
        raise BucketOperationError("invalid container name: container name cannot contain consecutive hyphens")


def validate_storage_account_name(name: str) -> None:
    if len(name) < 3 or len(name) > 24:
        raise BucketOperationError(
            "invalid storage account name: storage account name must be between 3 and 24 characters"
        )
    if not _ACCOUNT_NAME_RE.match(name):
        raise BucketOperationError(
            "invalid storage account name: storage account name can only contain lowercase letters and numbers"
        )


def validate_tags(tags: dict[str, str]) -> None:
    """Check Azure tag count and length limits."""
    if len(tags) > MAX_TAGS:
        raise BucketOperationError(f"invalid tags: too many tags: Azure supports maximum {MAX_TAGS} tags per resource")
    for key, value in tags.items():
        if not key or len(key) > MAX_TAG_KEY_LENGTH:
            raise BucketOperationError(
                f"invalid tags: tag name '{key}' must be between 1 and {MAX_TAG_KEY_LENGTH} characters"
            )
        if len(value) > MAX_TAG_VALUE_LENGTH:
            raise BucketOperationError(
                f"invalid tags: tag value for '{key}' must be {MAX_TAG_VALUE_LENGTH} characters or less"
            )


def service_url(account: str) -> str:
    return f"https://{account}.blob.core.windows.net/"


def _error_code(error: Exception) -> str:
    return str(getattr(error, "error_code", "") or "")


def build_token_credential(credential: AzureCredential, account: str) -> Any:
    """Build the azure-identity (or shared key) credential for the detected auth method.

    Raises:
        CredentialError: If workload identity lacks tenant or client id
    """
    method = credential.auth_method
    if method == AzureAuthMethod.SHARED_KEY:
        return AzureNamedKeyCredential(account, credential.storage_account_key)

    if method == AzureAuthMethod.WORKLOAD_IDENTITY:
        if not credential.tenant_id or not credential.client_id:
            raise CredentialError("missing AZURE_TENANT_ID or AZURE_CLIENT_ID in azurekey")
        token_file = (
            credential.federated_token_file
            or os.getenv("AZURE_FEDERATED_TOKEN_FILE")
            or DEFAULT_AZURE_TOKEN_FILE
        )
        return WorkloadIdentityCredential(
            tenant_id=credential.tenant_id,
            client_id=credential.client_id,
            token_file_path=token_file,
        )

    if method == AzureAuthMethod.SERVICE_PRINCIPAL:
        return ClientSecretCredential(
            tenant_id=credential.tenant_id,
            client_id=credential.client_id,
            client_secret=credential.client_secret,
        )

    return DefaultAzureCredential()


def resolve_account(descriptor: BucketDescriptor, credentials: ClientCredentials) -> str:
    """Storage account for the container: secret, then azurekey blob, then config, then the parsed credential."""
    try:
        return storage_account_name(credentials.secret_data, descriptor.config)
    except CredentialError:
        credential = credentials.credential
        if isinstance(credential, AzureCredential) and credential.storage_account:
            return credential.storage_account
        raise


class AzureBucketClient(BaseBucketClient):
    """Container lifecycle operations for one CloudStorage."""

    provider = Provider.AZURE

    def __init__(
        self,
        descriptor: BucketDescriptor,
        credentials: ClientCredentials,
        retry_config: RetryConfig | None = None,
        service_client: Any = None,
    ) -> None:
        super().__init__(descriptor, retry_config)
        self.credentials = credentials
        self._service_client = service_client

    @property
    def service_client(self) -> Any:
        if self._service_client is None:
            account = resolve_account(self.descriptor, self.credentials)
            validate_storage_account_name(account)
            credential = self.credentials.credential
            if not isinstance(credential, AzureCredential):
                raise CredentialError(
                    f"expected Azure credentials for {self.descriptor.name}, got {type(credential).__name__}"
                )
            self._service_client = BlobServiceClient(
                account_url=service_url(account),
                credential=build_token_credential(credential, account),
            )
        return self._service_client

    def is_retryable(self, error: Exception) -> bool:
        code = _error_code(error)
        if code in _TERMINAL_CODES:
            return False
        if isinstance(error, ServiceRequestError):
            return True
        if isinstance(error, HttpResponseError):
            if error.status_code in TERMINAL_STATUS_CODES:
                return False
            if is_retryable_status(error.status_code):
                return True
            if code in _RETRYABLE_CODES:
                return True
        return is_network_error(error)

    def exists(self) -> bool:
        return self._run("exists", self._exists)

    def create(self) -> bool:
        return self._run("create", self._create)

    def delete(self) -> bool:
        return self._run("delete", self._delete)

    def _container(self) -> Any:
        validate_container_name(self.bucket)
        try:
            return self.service_client.get_container_client(self.bucket)
        except CredentialError as e:
            raise BucketOperationError(f"failed to create Azure client: {e}", bucket=self.bucket) from e

    def _exists(self) -> bool:
        container = self._container()
        try:
            self._retry(container.get_container_properties)
        except AzureResourceNotFoundError as e:
            if _error_code(e) in ("", "ContainerNotFound"):
                return False
            raise self._translate(e, "exists") from e
        except HttpResponseError as e:
            raise self._translate(e, "exists") from e
        return True

    def _create(self) -> bool:
        container = self._container()
        validate_tags(self.descriptor.tags)
        if self._exists():
            logger.info(f"Container {self.bucket} already exists")
            return True

        try:
            self._retry(lambda: container.create_container(metadata=dict(self.descriptor.tags) or None))
        except ResourceExistsError as e:
            if _error_code(e) in ("", "ContainerAlreadyExists"):
                return True
            raise self._translate(e, "create") from e
        except HttpResponseError as e:
            raise self._translate(e, "create") from e
        logger.info(f"Created Azure container {self.bucket}")
        return True

    def _delete(self) -> bool:
        container = self._container()
        try:
            self._retry(container.delete_container)
        except AzureResourceNotFoundError:
            return True
        except HttpResponseError as e:
            if _error_code(e) in ("ContainerNotFound", "AccountNotFound"):
                return True
            raise self._translate(e, "delete") from e
        logger.info(f"Deleted Azure container {self.bucket}")
        return True

    def _translate(self, error: HttpResponseError, operation: str) -> BucketOperationError:
        code = _error_code(error)
        if code == "AuthenticationFailed" or isinstance(error, ClientAuthenticationError):
            message = "authentication failed: check credentials"
        elif code in ("AuthorizationFailed", "AuthorizationFailure"):
            message = "authorization failed: check permissions"
        elif code == "AccountNotFound":
            message = "storage account not found"
        elif code == "InvalidResourceName":
            message = f"invalid container name: {self.bucket}"
        else:
            message = f"failed to {operation} container '{self.bucket}': {sanitize_exception(error)}"
        return BucketOperationError(
            message,
            operation,
            self.bucket,
            getattr(error, "status_code", None),
            self.is_retryable(error),
        )
