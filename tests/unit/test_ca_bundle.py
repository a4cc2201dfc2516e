"""Tests for CA bundle aggregation."""

from __future__ import annotations

import datetime
from unittest.mock import MagicMock

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from kubernetes import client

from backup_location_operator.models import Provider, ResolvedLocation
from backup_location_operator.reconcile.ca_bundle import (
    CABundleAggregator,
    CertificateError,
    validate_pem_certificate,
)

PARENT = {
    "apiVersion": "oadp.openshift.io/v1alpha1",
    "kind": "DataProtectionApplication",
    "metadata": {"name": "dpa", "namespace": "openshift-adp", "uid": "uid-1"},
}


def make_certificate(common_name: str) -> bytes:
    """Self-signed PEM certificate for tests."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(key, hashes.SHA256())
    )
    return certificate.public_bytes(serialization.Encoding.PEM)


@pytest.fixture(scope="module")
def cert_a() -> bytes:
    return make_certificate("ca-a")


@pytest.fixture(scope="module")
def cert_b() -> bytes:
    return make_certificate("ca-b")


def _location(name: str, ca_cert: bytes | None, provider: Provider = Provider.AWS) -> ResolvedLocation:
    return ResolvedLocation(name=name, provider=provider, bucket="b", ca_cert=ca_cert)


def _missing_config_map(core_api: MagicMock) -> None:
    core_api.read_namespaced_config_map.side_effect = client.exceptions.ApiException(status=404)


class TestValidatePemCertificate:
    """Test cases for validate_pem_certificate."""

    def test_valid(self, cert_a):
        validate_pem_certificate(cert_a)

    def test_chain(self, cert_a, cert_b):
        assert len(validate_pem_certificate(cert_a + cert_b)) == 2

    def test_valid_certificate_followed_by_malformed_block(self, cert_a):
        pem = cert_a + b"-----BEGIN CERTIFICATE-----\n!!!not base64!!!\n-----END CERTIFICATE-----\n"
        with pytest.raises(CertificateError, match="malformed base64"):
            validate_pem_certificate(pem)

    def test_valid_certificate_followed_by_bad_der(self, cert_a):
        pem = cert_a + b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n"
        with pytest.raises(CertificateError, match="failed to parse certificate"):
            validate_pem_certificate(pem)

    def test_no_pem_block(self):
        with pytest.raises(CertificateError, match="no valid PEM block found"):
            validate_pem_certificate(b"not a certificate")

    def test_not_a_certificate(self):
        key = ec.generate_private_key(ec.SECP256R1())
        pem = key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        with pytest.raises(CertificateError, match="PEM block is not a certificate"):
            validate_pem_certificate(pem)

    def test_garbage_der(self):
        pem = b"-----BEGIN CERTIFICATE-----\nAAAA\n-----END CERTIFICATE-----\n"
        with pytest.raises(CertificateError, match="failed to parse certificate"):
            validate_pem_certificate(pem)


class TestCABundleAggregator:
    """Test cases for CABundleAggregator."""

    def test_collect_dedups_in_order(self, cert_a, cert_b):
        aggregator = CABundleAggregator(MagicMock())
        certs = aggregator.collect([
            _location("one", cert_b),
            _location("two", cert_a),
            _location("three", cert_b),
            _location("four", None),
        ])
        assert certs == [cert_b, cert_a]

    def test_collect_skips_excluded_providers(self, cert_a):
        aggregator = CABundleAggregator(MagicMock())
        assert aggregator.collect([_location("az", cert_a, Provider.AZURE)]) == []

    def test_collect_skips_invalid(self, cert_a):
        aggregator = CABundleAggregator(MagicMock())
        certs = aggregator.collect([_location("bad", b"garbage"), _location("good", cert_a)])
        assert certs == [cert_a]

    def test_collect_rejects_bundle_with_malformed_block(self, cert_a):
        aggregator = CABundleAggregator(MagicMock())
        bad = cert_a + b"-----BEGIN CERTIFICATE-----\n!!!not base64!!!\n-----END CERTIFICATE-----\n"
        assert aggregator.collect([_location("bad", bad)]) == []

    def test_no_certificates_and_no_config_map(self):
        core_api = MagicMock()
        _missing_config_map(core_api)
        aggregator = CABundleAggregator(core_api)

        assert aggregator.aggregate([_location("one", None)], PARENT) == ""
        core_api.create_namespaced_config_map.assert_not_called()
        core_api.delete_namespaced_config_map.assert_not_called()

    def test_no_certificates_deletes_stale_config_map(self):
        core_api = MagicMock()
        existing = MagicMock()
        existing.metadata.labels = {
            "app.kubernetes.io/instance": "dpa",
            "app.kubernetes.io/component": "ca-bundle",
        }
        core_api.read_namespaced_config_map.return_value = existing
        aggregator = CABundleAggregator(core_api)

        assert aggregator.aggregate([_location("one", None)], PARENT) == ""
        core_api.delete_namespaced_config_map.assert_called_once_with(
            name="velero-ca-bundle", namespace="openshift-adp"
        )
        core_api.patch_namespaced_config_map.assert_not_called()

    def test_no_certificates_keeps_foreign_config_map(self):
        core_api = MagicMock()
        existing = MagicMock()
        existing.metadata.labels = {"app.kubernetes.io/instance": "other-dpa"}
        core_api.read_namespaced_config_map.return_value = existing
        aggregator = CABundleAggregator(core_api)

        assert aggregator.aggregate([_location("one", None)], PARENT) == ""
        core_api.delete_namespaced_config_map.assert_not_called()

    def test_creates_config_map(self, cert_a, cert_b):
        core_api = MagicMock()
        _missing_config_map(core_api)
        aggregator = CABundleAggregator(core_api)

        name = aggregator.aggregate([_location("one", cert_a), _location("two", cert_b)], PARENT)

        assert name == "velero-ca-bundle"
        body = core_api.create_namespaced_config_map.call_args.kwargs["body"]
        bundle = body["data"]["ca-bundle.pem"]
        assert bundle == cert_a.decode() + cert_b.decode()
        assert bundle.endswith("\n")
        assert body["metadata"]["labels"]["app.kubernetes.io/component"] == "ca-bundle"
        assert body["metadata"]["ownerReferences"][0]["uid"] == "uid-1"

    def test_unchanged_config_map_is_not_patched(self, cert_a):
        core_api = MagicMock()
        aggregator = CABundleAggregator(core_api)
        existing = MagicMock()
        existing.data = {"ca-bundle.pem": cert_a.decode()}
        existing.metadata.labels = {
            "app.kubernetes.io/name": "velero",
            "app.kubernetes.io/instance": "dpa",
            "app.kubernetes.io/managed-by": "oadp-operator",
            "app.kubernetes.io/component": "ca-bundle",
            "openshift.io/oadp": "True",
        }
        core_api.read_namespaced_config_map.return_value = existing

        aggregator.aggregate([_location("one", cert_a)], PARENT)

        core_api.patch_namespaced_config_map.assert_not_called()
        core_api.create_namespaced_config_map.assert_not_called()

    def test_changed_config_map_is_patched(self, cert_a, cert_b):
        core_api = MagicMock()
        aggregator = CABundleAggregator(core_api)
        existing = MagicMock()
        existing.data = {"ca-bundle.pem": cert_a.decode()}
        existing.metadata.labels = {"extra": "kept"}
        core_api.read_namespaced_config_map.return_value = existing

        aggregator.aggregate([_location("one", cert_b)], PARENT)

        body = core_api.patch_namespaced_config_map.call_args.kwargs["body"]
        assert body["data"]["ca-bundle.pem"] == cert_b.decode()
        assert body["metadata"]["labels"]["extra"] == "kept"

    def test_read_errors_propagate(self, cert_a):
        core_api = MagicMock()
        core_api.read_namespaced_config_map.side_effect = client.exceptions.ApiException(status=403)
        aggregator = CABundleAggregator(core_api)

        with pytest.raises(client.exceptions.ApiException):
            aggregator.aggregate([_location("one", cert_a)], PARENT)
