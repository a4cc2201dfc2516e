"""Builders turning custom resource bodies into the resolution data model."""

from __future__ import annotations

import base64
import binascii
from typing import Any

from ..exceptions import LocationValidationError
from ..models import BucketDescriptor, BucketRef, InlineSpec, LocationIntent, Provider, SecretKeySelector


def _string_map(values: dict[str, Any] | None) -> dict[str, str]:
    result: dict[str, str] = {}
    for key, value in (values or {}).items():
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        elif value is None:
            result[key] = ""
        else:
            result[key] = str(value)
    return result


def decode_ca_cert(value: Any) -> bytes | None:
    """Decode a caCert field: raw bytes, PEM text, or base64 as serialized by the API server."""
    if not value:
        return None
    if isinstance(value, bytes):
        return value
    text = str(value)
    if text.lstrip().startswith("-----BEGIN"):
        return text.encode("utf-8")
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return text.encode("utf-8")


def create_descriptor_from_object(obj: dict[str, Any]) -> BucketDescriptor:
    """Create a BucketDescriptor from a CloudStorage object.

    Args:
        obj: CloudStorage custom object (metadata and spec)

    Returns:
        Parsed descriptor

    Raises:
        UnsupportedProviderError: If spec.provider is not aws, azure or gcp
    """
    meta = obj.get("metadata", {})
    spec = obj.get("spec", {})

    return BucketDescriptor(
        name=meta.get("name", ""),
        namespace=meta.get("namespace", ""),
        bucket=spec.get("name", ""),
        provider=Provider.parse(spec.get("provider")),
        region=spec.get("region", "") or "",
        config=_string_map(spec.get("config")),
        tags=_string_map(spec.get("tags")),
        creation_secret=SecretKeySelector.from_spec(spec.get("creationSecret")),
        enable_shared_config=spec.get("enableSharedConfig"),
        resource_version=meta.get("resourceVersion", ""),
        annotations=dict(meta.get("annotations") or {}),
    )


def create_intent_from_spec(entry: dict[str, Any]) -> LocationIntent:
    """Create a LocationIntent from one entry of spec.backupLocations.

    Raises:
        LocationValidationError: If the entry sets both sources or neither
        UnsupportedProviderError: If an inline spec names an unknown provider
    """
    velero = entry.get("velero")
    cloud_storage = entry.get("cloudStorage")
    name = entry.get("name", "") or ""

    if velero and cloud_storage:
        raise LocationValidationError("a bsl has both velero and cloudstorage configured")
    if not velero and not cloud_storage:
        raise LocationValidationError("a bsl must have velero or cloudstorage configured")

    if velero:
        object_storage = velero.get("objectStorage", {}) or {}
        return LocationIntent(
            name=name,
            spec=InlineSpec(
                provider=Provider.parse(velero.get("provider")),
                bucket=object_storage.get("bucket", "") or "",
                prefix=object_storage.get("prefix", "") or "",
                config=_string_map(velero.get("config")),
                credential=SecretKeySelector.from_spec(velero.get("credential")),
                default=bool(velero.get("default", False)),
                ca_cert=decode_ca_cert(object_storage.get("caCert")),
                access_mode=velero.get("accessMode"),
                backup_sync_period=velero.get("backupSyncPeriod"),
                validation_frequency=velero.get("validationFrequency"),
            ),
        )

    ref = cloud_storage.get("cloudStorageRef", {}) or {}
    return LocationIntent(
        name=name,
        spec=BucketRef(
            cloud_storage_ref=ref.get("name", "") or "",
            config=_string_map(cloud_storage.get("config")),
            credential=SecretKeySelector.from_spec(cloud_storage.get("credential")),
            prefix=cloud_storage.get("prefix", "") or "",
            default=bool(cloud_storage.get("default", False)),
            backup_sync_period=cloud_storage.get("backupSyncPeriod"),
            ca_cert=decode_ca_cert(cloud_storage.get("caCert")),
        ),
    )


def create_intents_from_spec(spec: dict[str, Any]) -> list[LocationIntent]:
    """Parse every entry of spec.backupLocations, in order."""
    return [create_intent_from_spec(entry) for entry in spec.get("backupLocations", []) or []]
