"""Provider-native configuration for backup storage locations."""

from __future__ import annotations

from typing import Callable, Mapping

from ..constants import DEFAULT_GCS_LOCATION
from ..models import BucketDescriptor, Provider

AWS_CONFIG_KEYS = frozenset({
    "region",
    "profile",
    "s3ForcePathStyle",
    "s3Url",
    "checksumAlgorithm",
    "enableSharedConfig",
    "insecureSkipTLSVerify",
    "kmsKeyId",
    "signatureVersion",
    "publicUrl",
    "serverSideEncryption",
})
AZURE_CONFIG_KEYS = frozenset({
    "resourceGroup",
    "storageAccount",
    "subscriptionId",
    "storageAccountKeyEnvVar",
    "useAAD",
    "region",
})
GCP_CONFIG_KEYS = frozenset({"project", "snapshotLocation", "serviceAccount", "kmsKeyName"})


def _aws_derived(descriptor: BucketDescriptor) -> dict[str, str]:
    derived: dict[str, str] = {}
    if descriptor.region:
        derived["region"] = descriptor.region
    if descriptor.enable_shared_config:
        derived["enableSharedConfig"] = "true"
    return derived


def _azure_derived(descriptor: BucketDescriptor) -> dict[str, str]:
    derived: dict[str, str] = {}
    if descriptor.region:
        derived["region"] = descriptor.region
    return derived


def _gcp_derived(descriptor: BucketDescriptor) -> dict[str, str]:
    # GCS location is a bucket property, not a location config key
    return {}


_DERIVERS: dict[Provider, Callable[[BucketDescriptor], dict[str, str]]] = {
    Provider.AWS: _aws_derived,
    Provider.AZURE: _azure_derived,
    Provider.GCP: _gcp_derived,
}


def pin_aws_defaults(config: dict[str, str]) -> dict[str, str]:
    """Pin ``checksumAlgorithm`` to an empty string when the user did not set it."""
    config.setdefault("checksumAlgorithm", "")
    return config


def map_provider_config(
    descriptor: BucketDescriptor,
    overrides: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Build the provider-native config for a location backed by a CloudStorage.

    Layers, lowest precedence first: the descriptor's own config, values derived
    from descriptor fields (region, shared-config flag), then the location's
    explicit overrides. Pure and idempotent.

    Args:
        descriptor: Parsed CloudStorage
        overrides: Config keys set explicitly on the location

    Returns:
        Flattened config map
    """
    config: dict[str, str] = dict(descriptor.config)
    config.update(_DERIVERS[descriptor.provider](descriptor))
    config.update(overrides or {})

    if descriptor.provider == Provider.AWS:
        pin_aws_defaults(config)
    return config


NATIVE_CONFIG_KEYS: dict[Provider, frozenset[str]] = {
    Provider.AWS: AWS_CONFIG_KEYS,
    Provider.AZURE: AZURE_CONFIG_KEYS,
    Provider.GCP: GCP_CONFIG_KEYS,
}


def unknown_config_keys(provider: Provider, config: Mapping[str, str]) -> list[str]:
    """Keys the provider's Velero plugin does not document; they are kept but worth a log line."""
    return sorted(key for key in config if key not in NATIVE_CONFIG_KEYS[provider])


def gcs_location(descriptor: BucketDescriptor) -> str:
    """GCS bucket location: the descriptor region, defaulting to us-central1."""
    return descriptor.region or DEFAULT_GCS_LOCATION
