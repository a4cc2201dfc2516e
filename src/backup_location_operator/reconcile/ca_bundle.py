"""Aggregation of per-location CA certificates into one ConfigMap."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, Iterable

from cryptography import x509
from kubernetes import client

from .. import metrics
from ..builders.labels import ca_bundle_labels, owner_reference
from ..constants import (
    CA_BUNDLE_CONFIG_MAP,
    CA_BUNDLE_FILE_NAME,
    FIELD_MANAGER,
    LABEL_APP_COMPONENT,
    LABEL_APP_INSTANCE,
    LABEL_VALUE_COMPONENT_CA_BUNDLE,
)
from ..models import Provider, ResolvedLocation

logger = logging.getLogger(__name__)

# Providers whose Velero plugin does not read the shared bundle
EXCLUDED_PROVIDERS = frozenset({Provider.AZURE})

_PEM_BLOCK = re.compile(
    r"-----BEGIN (?P<type>[A-Z0-9 ]+)-----\s*(?P<body>.*?)\s*-----END (?P=type)-----",
    re.DOTALL,
)


class CertificateError(ValueError):
    """A CA certificate is not a well-formed PEM certificate."""


def _is_base64(body: str) -> bool:
    try:
        return bool(base64.b64decode("".join(body.split()), validate=True))
    except (binascii.Error, ValueError):
        return False


def validate_pem_certificate(data: bytes | None) -> list[x509.Certificate]:
    """Check that data holds only PEM encoded X.509 certificates.

    Every block must decode; one bad block rejects the whole input.

    Returns:
        The parsed certificates, in order

    Raises:
        CertificateError: If no PEM block is present, a block is not a
            certificate, a block body is not base64, or a certificate does not parse
    """
    data = data or b""
    blocks = _PEM_BLOCK.findall(data.decode("utf-8", errors="replace"))
    if not blocks:
        raise CertificateError("no valid PEM block found")
    for block_type, body in blocks:
        if block_type != "CERTIFICATE":
            raise CertificateError("PEM block is not a certificate")
        if not _is_base64(body):
            raise CertificateError("no valid PEM block found: malformed base64 in certificate block")

    try:
        certificates = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        raise CertificateError(f"failed to parse certificate: {e}") from e
    if len(certificates) != len(blocks):
        raise CertificateError(
            f"failed to parse certificate: {len(blocks)} PEM blocks but {len(certificates)} certificates"
        )
    return certificates


class CABundleAggregator:
    """Writes the distinct CA certificates of all locations into the velero-ca-bundle ConfigMap."""

    def __init__(self, core_api: client.CoreV1Api, excluded: Iterable[Provider] = EXCLUDED_PROVIDERS) -> None:
        self.core_api = core_api
        self.excluded = frozenset(excluded)

    def collect(self, locations: Iterable[ResolvedLocation]) -> list[bytes]:
        """Return the valid, distinct certificates in encounter order."""
        unique: list[bytes] = []
        for location in locations:
            if not location.ca_cert:
                continue
            if location.provider in self.excluded:
                logger.info(
                    f"Skipping CA certificate of location {location.name}: "
                    f"provider {location.provider.value} does not use the shared bundle"
                )
                continue
            try:
                validate_pem_certificate(location.ca_cert)
            except CertificateError as e:
                logger.warning(f"Ignoring invalid CA certificate of location {location.name}: {e}")
                continue
            if location.ca_cert not in unique:
                unique.append(location.ca_cert)
        return unique

    def aggregate(self, locations: Iterable[ResolvedLocation], parent: dict[str, Any]) -> str:
        """Build and write the bundle.

        Args:
            locations: Resolved locations of the parent
            parent: Parent resource body, used for labels and the owner reference

        Returns:
            The ConfigMap name, or "" when no location carries a certificate (a
            bundle left from an earlier pass is then deleted)
        """
        certificates = self.collect(locations)
        metrics.ca_bundle_certificates.set(len(certificates))
        namespace = parent.get("metadata", {}).get("namespace", "")
        parent_name = parent.get("metadata", {}).get("name", "")
        if not certificates:
            self._remove_stale(namespace, parent_name)
            return ""

        bundle = "\n".join(cert.decode("utf-8").strip("\n") for cert in certificates) + "\n"
        labels = ca_bundle_labels(parent_name)
        self._write(namespace, bundle, labels, owner_reference(parent))
        return CA_BUNDLE_CONFIG_MAP

    def _remove_stale(self, namespace: str, parent_name: str) -> None:
        """Delete a bundle this parent wrote earlier once no location carries a certificate."""
        try:
            existing = self.core_api.read_namespaced_config_map(name=CA_BUNDLE_CONFIG_MAP, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return
            raise

        labels = existing.metadata.labels or {}
        if labels.get(LABEL_APP_INSTANCE) != parent_name or labels.get(LABEL_APP_COMPONENT) != (
            LABEL_VALUE_COMPONENT_CA_BUNDLE
        ):
            logger.debug(f"Leaving ConfigMap {namespace}/{CA_BUNDLE_CONFIG_MAP}: not written for {parent_name}")
            return

        try:
            self.core_api.delete_namespaced_config_map(name=CA_BUNDLE_CONFIG_MAP, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise
        logger.info(f"Deleted CA bundle ConfigMap {namespace}/{CA_BUNDLE_CONFIG_MAP}: no CA certificates remain")

    def _write(self, namespace: str, bundle: str, labels: dict[str, str], owner: dict[str, Any]) -> None:
        data = {CA_BUNDLE_FILE_NAME: bundle}
        try:
            existing = self.core_api.read_namespaced_config_map(name=CA_BUNDLE_CONFIG_MAP, namespace=namespace)
        except client.exceptions.ApiException as e:
            if e.status != 404:
                raise
            body = {
                "apiVersion": "v1",
                "kind": "ConfigMap",
                "metadata": {
                    "name": CA_BUNDLE_CONFIG_MAP,
                    "namespace": namespace,
                    "labels": labels,
                    "ownerReferences": [owner],
                },
                "data": data,
            }
            self.core_api.create_namespaced_config_map(namespace=namespace, body=body, field_manager=FIELD_MANAGER)
            logger.info(f"Created CA bundle ConfigMap {namespace}/{CA_BUNDLE_CONFIG_MAP}")
            return

        current_labels = dict(existing.metadata.labels or {})
        merged_labels = {**current_labels, **labels}
        if (existing.data or {}) == data and merged_labels == current_labels:
            logger.debug(f"CA bundle ConfigMap {namespace}/{CA_BUNDLE_CONFIG_MAP} is up to date")
            return

        patch_body = {"metadata": {"labels": merged_labels, "ownerReferences": [owner]}, "data": data}
        self.core_api.patch_namespaced_config_map(
            name=CA_BUNDLE_CONFIG_MAP,
            namespace=namespace,
            body=patch_body,
            field_manager=FIELD_MANAGER,
        )
        logger.info(f"Updated CA bundle ConfigMap {namespace}/{CA_BUNDLE_CONFIG_MAP}")
