"""Tests for the CloudStorage handler."""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock, patch

import kopf
import pytest

from backup_location_operator.constants import ANNOTATION_DELETE_BUCKET, FINALIZER
from backup_location_operator.credentials.resolver import LoadedSecret
from backup_location_operator.exceptions import BucketOperationError, CredentialError
from backup_location_operator.handlers.cloudstorage import CloudStorageHandler, parse_bool
from backup_location_operator.handlers.shared import creation_secret, make_credential_loader
from backup_location_operator.models import AWSCredential, BucketDescriptor, Provider, SecretKeySelector


def _body(annotation: str | None = None, provider: str = "aws", bucket: str = "my-bucket") -> dict[str, Any]:
    meta: dict[str, Any] = {
        "name": "cs",
        "namespace": "openshift-adp",
        "uid": "uid-1",
        "generation": 2,
        "finalizers": [FINALIZER],
    }
    if annotation is not None:
        meta["annotations"] = {ANNOTATION_DELETE_BUCKET: annotation}
    return {
        "apiVersion": "oadp.openshift.io/v1alpha1",
        "kind": "CloudStorage",
        "metadata": meta,
        "spec": {"name": bucket, "provider": provider},
    }


def _reasons(conditions: list[dict[str, Any]]) -> list[str]:
    return [condition["reason"] for condition in conditions]


@pytest.fixture
def bucket_client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def handler(bucket_client):
    factory = MagicMock(return_value=bucket_client)
    with patch("backup_location_operator.handlers.cloudstorage.get_core_client"), patch("kopf.event") as event:
        h = CloudStorageHandler(client_factory=factory)
        h.event = event
        yield h
        h.credential_files.clear()


class TestParseBool:
    """Test cases for parse_bool."""

    @pytest.mark.parametrize("value", ["1", "t", "T", "TRUE", "true", "True"])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "f", "F", "FALSE", "false", "False"])
    def test_false(self, value):
        assert parse_bool(value) is False

    @pytest.mark.parametrize("value", ["yes", "", "tRUE", "on"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_bool(value)


class TestCloudStorageReconcile:
    """Test cases for CloudStorageHandler.reconcile."""

    def test_existing_bucket_is_ready(self, handler, bucket_client):
        bucket_client.exists.return_value = True
        body = _body()
        patch_obj = kopf.Patch()

        handler.reconcile(body, body["metadata"], {}, patch_obj)

        bucket_client.create.assert_not_called()
        assert patch_obj.status["name"] == "my-bucket"
        assert patch_obj.status["observedGeneration"] == 2
        assert "lastSynced" in patch_obj.status
        assert _reasons(patch_obj.status["conditions"]) == ["BucketReady"]
        assert patch_obj.status["conditions"][0]["message"] == "Bucket my-bucket is available and ready for use"

    def test_missing_bucket_is_created(self, handler, bucket_client):
        bucket_client.exists.return_value = False
        body = _body()
        patch_obj = kopf.Patch()

        handler.reconcile(body, body["metadata"], {}, patch_obj)

        bucket_client.create.assert_called_once()
        assert _reasons(patch_obj.status["conditions"]) == ["BucketCreated"]
        reasons = [call.kwargs["reason"] for call in handler.event.call_args_list]
        assert "BucketCreated" in reasons

    def test_descriptor_passed_to_factory(self, handler, bucket_client):
        body = _body(provider="velero.io/gcp")

        handler.reconcile(body, body["metadata"], {}, kopf.Patch())

        descriptor = handler.client_factory.call_args.args[0]
        assert descriptor.provider == Provider.GCP
        assert descriptor.bucket == "my-bucket"

    def test_create_failure_sets_condition_and_requeues(self, handler, bucket_client):
        bucket_client.exists.return_value = False
        bucket_client.create.side_effect = BucketOperationError("bucket 'my-bucket' already exists globally")
        body = _body()
        patch_obj = kopf.Patch()

        with pytest.raises(kopf.TemporaryError, match="already exists globally"):
            handler.reconcile(body, body["metadata"], {}, patch_obj)

        condition = patch_obj.status["conditions"][0]
        assert condition["reason"] == "BucketCreationFailed"
        assert condition["status"] == "False"
        assert "already exists globally" in condition["message"]

    def test_credential_failure_requeues(self, handler):
        handler.client_factory.side_effect = CredentialError("failed to get secret cloud-credentials")
        body = _body()

        with pytest.raises(kopf.TemporaryError):
            handler.reconcile(body, body["metadata"], {}, kopf.Patch())

    def test_unsupported_provider_is_permanent(self, handler):
        body = _body(provider="ibm")

        with pytest.raises(kopf.PermanentError, match="unsupported CloudStorage provider"):
            handler.reconcile(body, body["metadata"], {}, kopf.Patch())
        handler.client_factory.assert_not_called()

    def test_empty_bucket_name_is_permanent(self, handler):
        body = _body(bucket="")

        with pytest.raises(kopf.PermanentError):
            handler.reconcile(body, body["metadata"], {}, kopf.Patch())

    def test_invalid_annotation_requeues(self, handler):
        body = _body(annotation="maybe")

        with pytest.raises(kopf.TemporaryError):
            handler.reconcile(body, body["metadata"], {}, kopf.Patch())

        handler.client_factory.assert_not_called()
        warning = handler.event.call_args
        assert warning.kwargs["reason"] == "UnableToParseAnnotation"
        assert warning.kwargs["type"] == "Warning"


class TestCloudStorageDelete:
    """Test cases for CloudStorageHandler.delete."""

    def test_without_annotation_retains_bucket(self, handler, bucket_client):
        body = _body()
        patch_obj = kopf.Patch()

        handler.delete(body, body["metadata"], {}, patch_obj)

        handler.client_factory.assert_not_called()
        assert patch_obj.metadata["finalizers"] is None
        reasons = [call.kwargs["reason"] for call in handler.event.call_args_list]
        assert "BucketRetained" in reasons

    def test_false_annotation_retains_bucket(self, handler, bucket_client):
        body = _body(annotation="false")
        patch_obj = kopf.Patch()

        handler.delete(body, body["metadata"], {}, patch_obj)

        bucket_client.delete.assert_not_called()
        assert patch_obj.metadata["finalizers"] is None

    def test_true_annotation_deletes_bucket(self, handler, bucket_client):
        body = _body(annotation="TRUE")
        patch_obj = kopf.Patch()

        handler.delete(body, body["metadata"], {}, patch_obj)

        bucket_client.delete.assert_called_once()
        assert patch_obj.metadata["finalizers"] is None
        reasons = [call.kwargs["reason"] for call in handler.event.call_args_list]
        assert "BucketDeleted" in reasons

    def test_other_finalizers_kept(self, handler, bucket_client):
        body = _body(annotation="true")
        body["metadata"]["finalizers"] = [FINALIZER, "other"]
        patch_obj = kopf.Patch()

        handler.delete(body, body["metadata"], {}, patch_obj)

        assert patch_obj.metadata["finalizers"] == ["other"]

    def test_invalid_annotation_keeps_finalizer(self, handler, bucket_client):
        body = _body(annotation="nope")
        patch_obj = kopf.Patch()

        with pytest.raises(kopf.TemporaryError):
            handler.delete(body, body["metadata"], {}, patch_obj)

        bucket_client.delete.assert_not_called()
        assert "finalizers" not in patch_obj.metadata

    def test_delete_failure_keeps_finalizer(self, handler, bucket_client):
        bucket_client.delete.side_effect = BucketOperationError("failed to delete object a: denied")
        body = _body(annotation="true")
        patch_obj = kopf.Patch()

        with pytest.raises(kopf.TemporaryError):
            handler.delete(body, body["metadata"], {}, patch_obj)

        assert "finalizers" not in patch_obj.metadata
        assert _reasons(patch_obj.status["conditions"]) == ["BucketDeletionFailed"]

    def test_unsupported_provider_keeps_finalizer(self, handler):
        body = _body(annotation="true", provider="ibm")
        patch_obj = kopf.Patch()

        with pytest.raises(kopf.PermanentError):
            handler.delete(body, body["metadata"], {}, patch_obj)

        assert "finalizers" not in patch_obj.metadata


class TestCredentialLoader:
    """Test cases for the shared credential loader."""

    def _descriptor(self, **kwargs) -> BucketDescriptor:
        return BucketDescriptor(name="cs", namespace="openshift-adp", bucket="b", provider=Provider.AWS, **kwargs)

    def test_default_creation_secret(self):
        assert creation_secret(self._descriptor()) == SecretKeySelector("cloud-credentials", "cloud")
        custom = SecretKeySelector("mine", "aws")
        assert creation_secret(self._descriptor(creation_secret=custom)) == custom
        assert creation_secret(self._descriptor(creation_secret=SecretKeySelector("", ""))).name == "cloud-credentials"

    def test_static_keys_need_no_file(self):
        resolver = MagicMock()
        secret = LoadedSecret("cloud-credentials", "openshift-adp", {"cloud": b"x"}, {}, "7")
        resolver.resolve.return_value = (AWSCredential(profile="default", access_key_id="AKIA"), secret)
        files = MagicMock()

        credentials = make_credential_loader(resolver, files)(self._descriptor())

        assert credentials.credentials_file is None
        assert credentials.secret_data == {"cloud": b"x"}
        files.get_path.assert_not_called()

    def test_web_identity_materializes_file(self):
        resolver = MagicMock()
        secret = LoadedSecret("cloud-credentials", "openshift-adp", {"cloud": b"[default]\nrole_arn=r\n"}, {}, "7")
        credential = AWSCredential(profile="default", role_arn="r", web_identity_token_file="/token")
        resolver.resolve.return_value = (credential, secret)
        files = MagicMock()
        files.get_path.return_value = "/tmp/creds"

        credentials = make_credential_loader(resolver, files)(self._descriptor())

        assert credentials.credentials_file == "/tmp/creds"
        files.get_path.assert_called_once_with("openshift-adp", "cs", "7", b"[default]\nrole_arn=r\n")
