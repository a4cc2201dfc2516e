"""AWS S3 bucket lifecycle client."""

from __future__ import annotations

import logging
import re
from typing import Any

import boto3
import botocore.session
from botocore import UNSIGNED
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectionError as BotoConnectionError

from ...constants import AWS_GLOBAL_REGION
from ...exceptions import BucketOperationError, CredentialError
from ...models import AWSCredential, BucketDescriptor, Provider
from ...utils.errors import sanitize_exception
from ...utils.retry import RetryConfig, is_network_error, is_retryable_status
from ..bucket.base import BaseBucketClient, ClientCredentials

logger = logging.getLogger(__name__)

_BUCKET_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")
_IPV4_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+$")

MAX_TAGS = 50
MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256

_NOT_FOUND_CODES = frozenset({"404", "NoSuchBucket", "NotFound"})
_RETRYABLE_CODES = frozenset({"SlowDown", "InternalError", "ServiceUnavailable", "RequestTimeout"})
_DELETE_BATCH_SIZE = 1000


def validate_bucket_name(name: str) -> None:
    """Validate S3 bucket naming rules.

    Raises:
        BucketOperationError: If the name breaks a rule
    """
    if len(name) < 3 or len(name) > 63:
        raise BucketOperationError("bucket name must be between 3 and 63 characters", "validate", name)
    if not _BUCKET_NAME_RE.match(name):
        raise BucketOperationError(
            "bucket name must start and end with a letter or number and contain only "
            "lowercase letters, numbers, dots and hyphens",
            "validate",
            name,
        )
    if ".." in name:
        raise BucketOperationError("bucket name cannot contain consecutive dots", "validate", name)
    if _IPV4_RE.match(name):
        raise BucketOperationError("bucket name cannot be in IP address format", "validate", name)


def validate_tags(tags: dict[str, str]) -> None:
    """Check S3 tag count and length limits."""
    if len(tags) > MAX_TAGS:
        raise BucketOperationError(f"too many tags: S3 supports maximum {MAX_TAGS} tags per bucket")
    for key, value in tags.items():
        if not key or len(key) > MAX_TAG_KEY_LENGTH:
            raise BucketOperationError(f"tag key '{key}' must be between 1 and {MAX_TAG_KEY_LENGTH} characters")
        if len(value) > MAX_TAG_VALUE_LENGTH:
            raise BucketOperationError(f"tag value for '{key}' must be {MAX_TAG_VALUE_LENGTH} characters or less")


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


def _status_code(error: ClientError) -> int | None:
    return error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _is_not_found(error: ClientError) -> bool:
    return _status_code(error) == 404 or _error_code(error) in _NOT_FOUND_CODES


def bucket_region(descriptor: BucketDescriptor) -> str:
    return descriptor.region or descriptor.config.get("region", "")


def build_s3_client(descriptor: BucketDescriptor, credentials: ClientCredentials) -> Any:
    """Create a boto3 S3 client from the CloudStorage and its credentials.

    A shared credentials file is used when one was materialized (required for
    web identity profiles); otherwise static keys are passed directly.
    """
    credential = credentials.credential
    if not isinstance(credential, AWSCredential):
        raise CredentialError(f"expected AWS credentials for {descriptor.name}, got {type(credential).__name__}")
    region = bucket_region(descriptor) or credential.region or None
    config = descriptor.config

    if credentials.credentials_file:
        core_session = botocore.session.Session()
        core_session.set_config_variable("credentials_file", credentials.credentials_file)
        session = boto3.Session(botocore_session=core_session, profile_name=credential.profile, region_name=region)
    else:
        session = boto3.Session(
            aws_access_key_id=credential.access_key_id,
            aws_secret_access_key=credential.secret_access_key,
            aws_session_token=credential.session_token,
            region_name=region,
        )

    path_style = config.get("s3ForcePathStyle", "").lower() == "true"
    insecure = config.get("insecureSkipTLSVerify", "").lower() == "true"
    client_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "path" if path_style else "auto"},
    )
    return session.client(
        "s3",
        endpoint_url=config.get("s3Url") or None,
        config=client_config,
        verify=not insecure,
    )


def discover_bucket_region(bucket: str) -> str | None:
    """Look up the region of an S3 bucket with an anonymous HEAD request.

    Returns:
        The region from the x-amz-bucket-region header, or None when it cannot be determined
    """
    s3 = boto3.client("s3", region_name=AWS_GLOBAL_REGION, config=Config(signature_version=UNSIGNED))
    try:
        response = s3.head_bucket(Bucket=bucket)
    except ClientError as e:
        response = e.response
    except BotoCoreError as e:
        logger.debug(f"Unable to discover region of bucket {bucket}: {e}")
        return None
    headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
    return headers.get("x-amz-bucket-region") or None


class AWSBucketClient(BaseBucketClient):
    """S3 lifecycle operations for one CloudStorage."""

    provider = Provider.AWS

    def __init__(
        self,
        descriptor: BucketDescriptor,
        credentials: ClientCredentials,
        retry_config: RetryConfig | None = None,
        s3_client: Any = None,
    ) -> None:
        super().__init__(descriptor, retry_config)
        self.client = s3_client if s3_client is not None else build_s3_client(descriptor, credentials)

    def is_retryable(self, error: Exception) -> bool:
        if isinstance(error, ClientError):
            return is_retryable_status(_status_code(error)) or _error_code(error) in _RETRYABLE_CODES
        if isinstance(error, BotoConnectionError):
            return True
        return is_network_error(error)

    def exists(self) -> bool:
        return self._run("exists", self._exists)

    def create(self) -> bool:
        return self._run("create", self._create)

    def delete(self) -> bool:
        return self._run("delete", self._delete)

    def _exists(self) -> bool:
        try:
            self._retry(lambda: self.client.head_bucket(Bucket=self.bucket))
        except ClientError as e:
            if _is_not_found(e):
                return False
            raise self._translate(e, "exists") from e
        return True

    def _create(self) -> bool:
        validate_bucket_name(self.bucket)
        validate_tags(self.descriptor.tags)

        params: dict[str, Any] = {"Bucket": self.bucket}
        region = bucket_region(self.descriptor)
        if region and region != AWS_GLOBAL_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            self._retry(lambda: self.client.create_bucket(**params))
            logger.info(f"Created S3 bucket {self.bucket} in {region or AWS_GLOBAL_REGION}")
        except ClientError as e:
            if _error_code(e) != "BucketAlreadyOwnedByYou":
                raise self._translate(e, "create") from e
            logger.info(f"S3 bucket {self.bucket} already exists and is owned by this account")

        if self.descriptor.tags:
            tag_set = [{"Key": k, "Value": v} for k, v in self.descriptor.tags.items()]
            try:
                self._retry(lambda: self.client.put_bucket_tagging(Bucket=self.bucket, Tagging={"TagSet": tag_set}))
            except ClientError as e:
                raise self._translate(e, "tag") from e
        return True

    def _delete(self) -> bool:
        try:
            self._empty_bucket()
            self._retry(lambda: self.client.delete_bucket(Bucket=self.bucket))
        except ClientError as e:
            if _is_not_found(e):
                return True
            raise self._translate(e, "delete") from e
        logger.info(f"Deleted S3 bucket {self.bucket}")
        return True

    def _empty_bucket(self) -> None:
        """Delete every object version and delete marker in the bucket."""
        paginator = self.client.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=self.bucket):
            keys = [
                {"Key": item["Key"], "VersionId": item["VersionId"]}
                for item in page.get("Versions", []) + page.get("DeleteMarkers", [])
            ]
            for start in range(0, len(keys), _DELETE_BATCH_SIZE):
                batch = keys[start:start + _DELETE_BATCH_SIZE]
                response = self._retry(
                    lambda: self.client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch, "Quiet": True})
                )
                errors = response.get("Errors", [])
                if errors:
                    first = errors[0]
                    raise BucketOperationError(
                        f"failed to delete object {first.get('Key')}: {first.get('Message', first.get('Code'))}",
                        "delete",
                        self.bucket,
                    )

    def _translate(self, error: ClientError, operation: str) -> BucketOperationError:
        code = _error_code(error)
        status = _status_code(error)
        if code == "BucketAlreadyExists":
            message = f"bucket '{self.bucket}' already exists globally"
        elif code in ("InvalidAccessKeyId", "SignatureDoesNotMatch") or status == 401:
            message = "authentication failed: check access key credentials"
        elif code == "AccessDenied" or status == 403:
            message = f"permission denied: check IAM permissions for bucket '{self.bucket}'"
        elif code == "BucketNotEmpty":
            message = f"bucket '{self.bucket}' is not empty"
        else:
            message = f"failed to {operation} bucket '{self.bucket}': {sanitize_exception(error)}"
        return BucketOperationError(message, operation, self.bucket, status, self.is_retryable(error))
