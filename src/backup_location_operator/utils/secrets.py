"""Utilities for reading and patching Kubernetes secrets."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from kubernetes import client

from ..constants import FIELD_MANAGER
from ..exceptions import ResourceNotFoundError


def read_secret(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
) -> Any:
    """Read a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret

    Returns:
        The V1Secret object

    Raises:
        ResourceNotFoundError: If the secret does not exist
    """
    try:
        return api.read_namespaced_secret(name=secret_name, namespace=namespace)
    except client.exceptions.ApiException as e:
        if e.status == 404:
            raise ResourceNotFoundError(
                "Secret",
                secret_name,
                namespace,
                f"failed to get secret {secret_name} in namespace {namespace}: not found",
            ) from e
        raise


def decode_secret_data(secret: Any) -> dict[str, bytes]:
    """Decode the data of a secret into raw bytes.

    The Kubernetes client returns base64 strings; bytes are passed through unchanged.
    """
    result: dict[str, bytes] = {}
    for key, value in (secret.data or {}).items():
        if value is None:
            result[key] = b""
        elif isinstance(value, bytes):
            result[key] = value
        else:
            try:
                result[key] = base64.b64decode(value, validate=True)
            except (binascii.Error, ValueError):
                result[key] = value.encode("utf-8")
    return result


def secret_labels(secret: Any) -> dict[str, str]:
    metadata = getattr(secret, "metadata", None)
    return dict(getattr(metadata, "labels", None) or {})


def secret_resource_version(secret: Any) -> str:
    metadata = getattr(secret, "metadata", None)
    return getattr(metadata, "resource_version", None) or ""


def patch_secret_value(
    api: client.CoreV1Api,
    namespace: str,
    secret_name: str,
    key: str,
    value: str,
) -> None:
    """Replace one key of a Kubernetes secret.

    Args:
        api: Kubernetes API client
        namespace: Namespace of the secret
        secret_name: Name of the secret
        key: Key to replace
        value: New plain-text value (base64 encoded on the wire)
    """
    body = {"data": {key: base64.b64encode(value.encode("utf-8")).decode("utf-8")}}
    api.patch_namespaced_secret(
        name=secret_name,
        namespace=namespace,
        body=body,
        field_manager=FIELD_MANAGER,
    )
