"""Tests for the provider bucket lifecycle clients."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from azure.core.exceptions import (
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError as AzureResourceNotFoundError,
    ServiceRequestError,
)
from botocore.exceptions import ClientError
from google.api_core import exceptions as gexc

from backup_location_operator.exceptions import BucketOperationError, CredentialError, RetryExhaustedError
from backup_location_operator.models import (
    AWSCredential,
    AzureAuthMethod,
    AzureCredential,
    BucketDescriptor,
    GCPCredential,
    Provider,
)
from backup_location_operator.services.aws.client import AWSBucketClient, build_s3_client, validate_bucket_name
from backup_location_operator.services.azure.client import (
    AzureBucketClient,
    build_token_credential,
    resolve_account,
    validate_container_name,
)
from backup_location_operator.services.bucket.base import ClientCredentials, new_bucket_client
from backup_location_operator.services.gcp.client import (
    GCPBucketClient,
    build_storage_client,
    sanitize_label,
    tags_to_labels,
)
from backup_location_operator.utils.retry import RetryConfig

FAST_RETRY = RetryConfig(max_retries=2, initial_delay=0, max_delay=0, jitter_fraction=0)


def _descriptor(provider: Provider, bucket: str = "my-bucket", **kwargs) -> BucketDescriptor:
    return BucketDescriptor(name="cs", namespace="openshift-adp", bucket=bucket, provider=provider, **kwargs)


def _client_error(code: str, status: int, operation: str = "HeadBucket") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, operation)


def _azure_error(cls=HttpResponseError, code: str = "", status: int | None = None):
    error = cls(message=code or "azure error")
    error.error_code = code
    error.status_code = status
    return error


def _aws(descriptor: BucketDescriptor | None = None) -> tuple[AWSBucketClient, MagicMock]:
    s3 = MagicMock()
    credentials = ClientCredentials(credential=AWSCredential(profile="default"))
    return AWSBucketClient(descriptor or _descriptor(Provider.AWS), credentials, FAST_RETRY, s3_client=s3), s3


def _azure(descriptor: BucketDescriptor | None = None) -> tuple[AzureBucketClient, MagicMock]:
    service = MagicMock()
    container = service.get_container_client.return_value
    credentials = ClientCredentials(credential=AzureCredential(storage_account="acct"))
    client = AzureBucketClient(
        descriptor or _descriptor(Provider.AZURE), credentials, FAST_RETRY, service_client=service
    )
    return client, container


def _gcp(descriptor: BucketDescriptor | None = None) -> tuple[GCPBucketClient, MagicMock]:
    storage_client = MagicMock()
    credentials = ClientCredentials(credential=GCPCredential(type="service_account", project_id="proj"))
    client = GCPBucketClient(
        descriptor or _descriptor(Provider.GCP), credentials, FAST_RETRY, storage_client=storage_client
    )
    return client, storage_client


class TestAWSBucketClient:
    """Test cases for AWSBucketClient."""

    def test_exists(self):
        client, s3 = _aws()
        assert client.exists() is True
        s3.head_bucket.assert_called_once_with(Bucket="my-bucket")

    def test_not_exists(self):
        client, s3 = _aws()
        s3.head_bucket.side_effect = _client_error("404", 404)
        assert client.exists() is False

    def test_exists_retries_throttling(self):
        client, s3 = _aws()
        s3.head_bucket.side_effect = [_client_error("SlowDown", 503), {}]

        assert client.exists() is True
        assert s3.head_bucket.call_count == 2

    def test_exists_retry_exhausted(self):
        client, s3 = _aws()
        s3.head_bucket.side_effect = _client_error("ServiceUnavailable", 503)

        with pytest.raises(RetryExhaustedError) as exc_info:
            client.exists()

        assert s3.head_bucket.call_count == 3
        assert exc_info.value.operation == "exists"
        assert exc_info.value.bucket == "my-bucket"

    def test_access_denied_not_retried(self):
        client, s3 = _aws()
        s3.head_bucket.side_effect = _client_error("AccessDenied", 403)

        with pytest.raises(BucketOperationError, match="permission denied"):
            client.exists()
        assert s3.head_bucket.call_count == 1

    def test_create_with_location_constraint_and_tags(self):
        client, s3 = _aws(_descriptor(Provider.AWS, region="eu-west-1", tags={"team": "backup"}))

        assert client.create() is True

        s3.create_bucket.assert_called_once_with(
            Bucket="my-bucket", CreateBucketConfiguration={"LocationConstraint": "eu-west-1"}
        )
        s3.put_bucket_tagging.assert_called_once_with(
            Bucket="my-bucket", Tagging={"TagSet": [{"Key": "team", "Value": "backup"}]}
        )

    def test_create_in_us_east_1_has_no_constraint(self):
        client, s3 = _aws(_descriptor(Provider.AWS, region="us-east-1"))
        client.create()
        s3.create_bucket.assert_called_once_with(Bucket="my-bucket")

    def test_create_already_owned(self):
        client, s3 = _aws()
        s3.create_bucket.side_effect = _client_error("BucketAlreadyOwnedByYou", 409, "CreateBucket")
        assert client.create() is True

    def test_create_twice(self):
        client, s3 = _aws(_descriptor(Provider.AWS, region="us-east-1"))
        s3.create_bucket.side_effect = [{}, _client_error("BucketAlreadyOwnedByYou", 409, "CreateBucket")]

        assert client.create() is True
        assert client.create() is True
        assert s3.create_bucket.call_count == 2

    def test_non_aws_credential_rejected(self):
        credentials = ClientCredentials(credential=GCPCredential(type="service_account", project_id="proj"))
        with pytest.raises(CredentialError, match="expected AWS credentials for cs, got GCPCredential"):
            build_s3_client(_descriptor(Provider.AWS), credentials)

    def test_create_taken_globally(self):
        client, s3 = _aws()
        s3.create_bucket.side_effect = _client_error("BucketAlreadyExists", 409, "CreateBucket")

        with pytest.raises(BucketOperationError, match="already exists globally"):
            client.create()

    def test_create_invalid_name(self):
        client, s3 = _aws(_descriptor(Provider.AWS, bucket="Invalid_Name"))
        with pytest.raises(BucketOperationError):
            client.create()
        s3.create_bucket.assert_not_called()

    def test_delete_empties_versions_first(self):
        client, s3 = _aws()
        s3.get_paginator.return_value.paginate.return_value = [{
            "Versions": [{"Key": "a", "VersionId": "1"}],
            "DeleteMarkers": [{"Key": "b", "VersionId": "2"}],
        }]
        s3.delete_objects.return_value = {}

        assert client.delete() is True

        s3.delete_objects.assert_called_once_with(
            Bucket="my-bucket",
            Delete={"Objects": [{"Key": "a", "VersionId": "1"}, {"Key": "b", "VersionId": "2"}], "Quiet": True},
        )
        s3.delete_bucket.assert_called_once_with(Bucket="my-bucket")

    def test_delete_missing_bucket(self):
        client, s3 = _aws()
        s3.get_paginator.return_value.paginate.side_effect = _client_error("NoSuchBucket", 404, "ListObjectVersions")
        assert client.delete() is True
        s3.delete_bucket.assert_not_called()

    def test_delete_object_errors(self):
        client, s3 = _aws()
        s3.get_paginator.return_value.paginate.return_value = [{"Versions": [{"Key": "a", "VersionId": "1"}]}]
        s3.delete_objects.return_value = {"Errors": [{"Key": "a", "Message": "denied"}]}

        with pytest.raises(BucketOperationError, match="failed to delete object a: denied"):
            client.delete()

    @pytest.mark.parametrize("name", ["ab", "-bucket", "bucket..name", "192.168.1.1", "UPPER"])
    def test_invalid_bucket_names(self, name):
        with pytest.raises(BucketOperationError):
            validate_bucket_name(name)


class TestAzureBucketClient:
    """Test cases for AzureBucketClient."""

    def test_exists(self):
        client, container = _azure()
        assert client.exists() is True
        container.get_container_properties.assert_called_once()

    def test_not_exists(self):
        client, container = _azure()
        container.get_container_properties.side_effect = _azure_error(
            AzureResourceNotFoundError, "ContainerNotFound", 404
        )
        assert client.exists() is False

    def test_create(self):
        client, container = _azure(_descriptor(Provider.AZURE, tags={"team": "backup"}))
        container.get_container_properties.side_effect = _azure_error(AzureResourceNotFoundError, "", 404)

        assert client.create() is True
        container.create_container.assert_called_once_with(metadata={"team": "backup"})

    def test_create_existing_container_skips(self):
        client, container = _azure()
        assert client.create() is True
        container.create_container.assert_not_called()

    def test_create_race_already_exists(self):
        client, container = _azure()
        container.get_container_properties.side_effect = _azure_error(AzureResourceNotFoundError, "", 404)
        container.create_container.side_effect = _azure_error(ResourceExistsError, "ContainerAlreadyExists", 409)
        assert client.create() is True

    def test_server_busy_is_retried(self):
        client, container = _azure()
        container.get_container_properties.side_effect = [_azure_error(code="ServerBusy", status=503), {}]

        assert client.exists() is True
        assert container.get_container_properties.call_count == 2

    def test_create_twice(self):
        client, container = _azure()
        container.get_container_properties.side_effect = [_azure_error(AzureResourceNotFoundError, "", 404), {}]

        assert client.create() is True
        assert client.create() is True
        container.create_container.assert_called_once()

    def test_terminal_status_with_network_word_is_not_retried(self):
        service = MagicMock()
        container = service.get_container_client.return_value
        error = HttpResponseError(
            message="The value for one of the HTTP headers is not in the correct format. QueryParameterName: timeout"
        )
        error.status_code = 400
        container.get_container_properties.side_effect = error
        client = AzureBucketClient(
            _descriptor(Provider.AZURE),
            ClientCredentials(credential=AzureCredential(storage_account="acct")),
            RetryConfig(max_retries=3, initial_delay=0, max_delay=0, jitter_fraction=0),
            service_client=service,
        )

        with pytest.raises(BucketOperationError) as exc_info:
            client.exists()

        assert not isinstance(exc_info.value, RetryExhaustedError)
        assert container.get_container_properties.call_count == 1

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 409])
    def test_terminal_statuses_are_not_retryable(self, status):
        client, _ = _azure()
        assert client.is_retryable(_azure_error(code="", status=status)) is False

    def test_non_azure_credential_rejected(self):
        client = AzureBucketClient(
            _descriptor(Provider.AZURE, config={"storageAccount": "acct"}),
            ClientCredentials(credential=AWSCredential(profile="default")),
            FAST_RETRY,
        )
        with pytest.raises(CredentialError, match="expected Azure credentials for cs, got AWSCredential"):
            client.service_client

    def test_service_request_error_is_retried(self):
        client, _ = _azure()
        assert client.is_retryable(ServiceRequestError("connection reset")) is True

    def test_authentication_failure(self):
        client, container = _azure()
        container.get_container_properties.side_effect = _azure_error(code="AuthenticationFailed", status=403)

        with pytest.raises(BucketOperationError, match="authentication failed: check credentials"):
            client.exists()
        assert container.get_container_properties.call_count == 1

    def test_delete_missing_container(self):
        client, container = _azure()
        container.delete_container.side_effect = _azure_error(AzureResourceNotFoundError, "ContainerNotFound", 404)
        assert client.delete() is True

    def test_delete_missing_account(self):
        client, container = _azure()
        container.delete_container.side_effect = _azure_error(code="AccountNotFound", status=404)
        assert client.delete() is True

    @pytest.mark.parametrize("name", ["ab", "-container", "Container", "con--tainer", "con_tainer"])
    def test_invalid_container_names(self, name):
        with pytest.raises(BucketOperationError, match="invalid container name"):
            validate_container_name(name)

    def test_too_many_tags(self):
        tags = {f"k{i}": "v" for i in range(51)}
        client, container = _azure(_descriptor(Provider.AZURE, tags=tags))

        with pytest.raises(BucketOperationError, match="invalid tags: too many tags"):
            client.create()
        container.create_container.assert_not_called()

    def test_resolve_account_falls_back_to_credential(self):
        credentials = ClientCredentials(credential=AzureCredential(storage_account="fromcred"))
        assert resolve_account(_descriptor(Provider.AZURE), credentials) == "fromcred"

    def test_shared_key_credential(self):
        credential = AzureCredential(storage_account_key="key", auth_method=AzureAuthMethod.SHARED_KEY)
        token = build_token_credential(credential, "acct")
        assert token.named_key.name == "acct"

    def test_workload_identity_requires_ids(self):
        credential = AzureCredential(auth_method=AzureAuthMethod.WORKLOAD_IDENTITY, client_id="c")
        with pytest.raises(CredentialError, match="missing AZURE_TENANT_ID or AZURE_CLIENT_ID"):
            build_token_credential(credential, "acct")

    def test_workload_identity_token_file(self, monkeypatch):
        monkeypatch.delenv("AZURE_FEDERATED_TOKEN_FILE", raising=False)
        credential = AzureCredential(auth_method=AzureAuthMethod.WORKLOAD_IDENTITY, client_id="c", tenant_id="t")

        with patch("backup_location_operator.services.azure.client.WorkloadIdentityCredential") as wic:
            build_token_credential(credential, "acct")

        wic.assert_called_once_with(
            tenant_id="t",
            client_id="c",
            token_file_path="/var/run/secrets/openshift/serviceaccount/token",
        )


class TestGCPBucketClient:
    """Test cases for GCPBucketClient."""

    def test_exists_applies_labels(self):
        client, storage_client = _gcp(_descriptor(Provider.GCP, tags={"Team": "Backup Ops"}))
        bucket = storage_client.get_bucket.return_value
        bucket.labels = {"existing": "x"}

        assert client.exists() is True

        assert bucket.labels == {"existing": "x", "team": "backup_ops"}
        bucket.patch.assert_called_once()

    def test_exists_labels_unchanged(self):
        client, storage_client = _gcp(_descriptor(Provider.GCP, tags={"team": "backup"}))
        bucket = storage_client.get_bucket.return_value
        bucket.labels = {"team": "backup"}

        client.exists()

        bucket.patch.assert_not_called()

    def test_not_exists(self):
        client, storage_client = _gcp()
        storage_client.get_bucket.side_effect = gexc.NotFound("no bucket")
        assert client.exists() is False

    def test_exists_other_error(self):
        client, storage_client = _gcp()
        storage_client.get_bucket.side_effect = gexc.Forbidden("denied")

        with pytest.raises(BucketOperationError, match="unable to determine bucket my-bucket status"):
            client.exists()

    def test_exists_retries_unavailable(self):
        client, storage_client = _gcp()
        storage_client.get_bucket.side_effect = [gexc.ServiceUnavailable("busy"), MagicMock(labels={})]

        assert client.exists() is True
        assert storage_client.get_bucket.call_count == 2

    def test_create_defaults_location(self):
        client, storage_client = _gcp(_descriptor(Provider.GCP, config={"storageClass": "NEARLINE"}))

        assert client.create() is True

        bucket = storage_client.bucket.return_value
        assert bucket.storage_class == "NEARLINE"
        storage_client.create_bucket.assert_called_once_with(bucket, project="proj", location="us-central1")

    def test_create_conflict_is_success(self):
        client, storage_client = _gcp()
        storage_client.create_bucket.side_effect = gexc.Conflict("exists")
        assert client.create() is True

    def test_create_forbidden(self):
        client, storage_client = _gcp()
        storage_client.create_bucket.side_effect = gexc.Forbidden("nope")

        with pytest.raises(BucketOperationError, match="permission denied"):
            client.create()

    def test_delete_removes_objects_then_bucket(self):
        client, storage_client = _gcp()
        blobs = []
        for name in ("a", "b", "c"):
            blob = MagicMock()
            blob.name = name
            blobs.append(blob)
        storage_client.list_blobs.return_value = blobs
        bucket = storage_client.get_bucket.return_value

        assert client.delete() is True

        for blob in blobs:
            blob.delete.assert_called_once()
        bucket.delete.assert_called_once()

    def test_delete_missing_object_is_ignored(self):
        client, storage_client = _gcp()
        blob = MagicMock()
        blob.name = "gone"
        blob.delete.side_effect = gexc.NotFound("gone")
        storage_client.list_blobs.return_value = [blob]

        assert client.delete() is True

    def test_delete_object_failure_aborts(self):
        client, storage_client = _gcp()
        blob = MagicMock()
        blob.name = "locked"
        blob.delete.side_effect = gexc.Forbidden("retention policy")
        storage_client.list_blobs.return_value = [blob]
        bucket = storage_client.get_bucket.return_value

        with pytest.raises(BucketOperationError, match="failed to delete object locked"):
            client.delete()
        bucket.delete.assert_not_called()

    def test_delete_runs_in_bounded_batches(self):
        client, storage_client = _gcp()
        listed = []
        listed_at_delete = {}

        def list_blobs(_bucket):
            for i in range(250):
                blob = MagicMock()
                blob.name = f"obj-{i}"
                blob.delete.side_effect = lambda name=blob.name: listed_at_delete.__setitem__(name, len(listed))
                listed.append(blob)
                yield blob

        storage_client.list_blobs.side_effect = list_blobs

        assert client.delete() is True

        assert len(listed_at_delete) == 250
        assert max(listed_at_delete[f"obj-{i}"] for i in range(100)) == 100
        assert max(listed_at_delete[f"obj-{i}"] for i in range(100, 200)) == 200
        storage_client.get_bucket.return_value.delete.assert_called_once()

    def test_delete_failure_stops_listing(self):
        client, storage_client = _gcp()
        listed = []

        def list_blobs(_bucket):
            for i in range(1000):
                blob = MagicMock()
                blob.name = f"obj-{i}"
                if i == 5:
                    blob.delete.side_effect = gexc.Forbidden("retention policy")
                listed.append(blob)
                yield blob

        storage_client.list_blobs.side_effect = list_blobs
        bucket = storage_client.get_bucket.return_value

        with pytest.raises(BucketOperationError, match="failed to delete object obj-5"):
            client.delete()

        assert len(listed) == 100
        bucket.delete.assert_not_called()

    def test_non_gcp_credential_rejected(self):
        credentials = ClientCredentials(credential=AWSCredential(profile="default"))
        with pytest.raises(CredentialError, match="expected GCP credentials, got AWSCredential"):
            build_storage_client(credentials)

    def test_delete_missing_bucket(self):
        client, storage_client = _gcp()
        storage_client.get_bucket.side_effect = gexc.NotFound("gone")
        assert client.delete() is True
        storage_client.list_blobs.assert_not_called()

    def test_label_sanitizing(self):
        assert sanitize_label("Team Name!") == "team_name_"
        assert len(sanitize_label("x" * 100)) == 63
        assert tags_to_labels({"A.B": "C"}) == {"a_b": "c"}


class TestNewBucketClient:
    """Test cases for new_bucket_client."""

    def test_dispatches_on_provider(self):
        loader = MagicMock(return_value=ClientCredentials(credential=GCPCredential(type="service_account", project_id="p")))
        descriptor = _descriptor(Provider.GCP)

        with patch("backup_location_operator.services.gcp.client.build_storage_client") as build:
            bucket_client = new_bucket_client(descriptor, loader, FAST_RETRY)

        assert isinstance(bucket_client, GCPBucketClient)
        loader.assert_called_once_with(descriptor)
        build.assert_called_once()
