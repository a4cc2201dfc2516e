"""Data model for backup location resolution."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from .exceptions import UnsupportedProviderError


class Provider(str, Enum):
    """Supported object storage providers."""

    AWS = "aws"
    AZURE = "azure"
    GCP = "gcp"

    @classmethod
    def parse(cls, value: str | None) -> Provider:
        """Parse a provider name, accepting Velero plugin names such as ``velero.io/aws``.

        Raises:
            UnsupportedProviderError: If the value names no supported provider
        """
        normalized = (value or "").strip().lower()
        if normalized.startswith("velero.io/"):
            normalized = normalized[len("velero.io/"):]
        for provider in cls:
            if provider.value == normalized:
                return provider
        raise UnsupportedProviderError(f"unsupported CloudStorage provider: {value}")


class LocationSource(str, Enum):
    """Which of the two possible sources a location intent uses."""

    INLINE = "velero"
    BUCKET_REF = "cloudStorage"


class AzureAuthMethod(str, Enum):
    SHARED_KEY = "shared_key"
    WORKLOAD_IDENTITY = "workload_identity"
    SERVICE_PRINCIPAL = "service_principal"
    DEFAULT = "default"


@dataclass(frozen=True)
class SecretKeySelector:
    """Reference to one key of a Secret in the same namespace."""

    name: str
    key: str

    @classmethod
    def from_spec(cls, spec: dict[str, Any] | None) -> SecretKeySelector | None:
        if not spec:
            return None
        return cls(name=spec.get("name") or "", key=spec.get("key") or "")

    def to_spec(self) -> dict[str, str]:
        return {"name": self.name, "key": self.key}


@dataclass
class BucketDescriptor:
    """A parsed CloudStorage resource describing one cloud bucket or container."""

    name: str
    namespace: str
    bucket: str
    provider: Provider
    region: str = ""
    config: dict[str, str] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    creation_secret: SecretKeySelector | None = None
    enable_shared_config: bool | None = None
    resource_version: str = ""
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InlineSpec:
    """A complete Velero BackupStorageLocation spec declared inline."""

    source: ClassVar[LocationSource] = LocationSource.INLINE

    provider: Provider
    bucket: str
    prefix: str = ""
    config: dict[str, str] = field(default_factory=dict)
    credential: SecretKeySelector | None = None
    default: bool = False
    ca_cert: bytes | None = None
    access_mode: str | None = None
    backup_sync_period: str | None = None
    validation_frequency: str | None = None


@dataclass(frozen=True)
class BucketRef:
    """A reference to a CloudStorage resource plus local overrides."""

    source: ClassVar[LocationSource] = LocationSource.BUCKET_REF

    cloud_storage_ref: str
    config: dict[str, str] = field(default_factory=dict)
    credential: SecretKeySelector | None = None
    prefix: str = ""
    default: bool = False
    backup_sync_period: str | None = None
    ca_cert: bytes | None = None


LocationSpec = Union[InlineSpec, BucketRef]


@dataclass(frozen=True)
class LocationIntent:
    """One user-declared backup storage location, before resolution."""

    name: str
    spec: LocationSpec

    @property
    def source(self) -> LocationSource:
        return self.spec.source

    @property
    def prefix(self) -> str:
        return self.spec.prefix


@dataclass
class ResolvedLocation:
    """A merged, provider-normalized backup storage location."""

    name: str
    provider: Provider
    bucket: str
    prefix: str = ""
    ca_cert: bytes | None = None
    credential: SecretKeySelector | None = None
    config: dict[str, str] = field(default_factory=dict)
    default: bool = False
    access_mode: str | None = None
    backup_sync_period: str | None = None
    validation_frequency: str | None = None

    def to_bsl_spec(self) -> dict[str, Any]:
        """Render the Velero BackupStorageLocation spec for this location."""
        object_storage: dict[str, Any] = {"bucket": self.bucket}
        if self.prefix:
            object_storage["prefix"] = self.prefix
        if self.ca_cert:
            object_storage["caCert"] = base64.b64encode(self.ca_cert).decode("utf-8")

        spec: dict[str, Any] = {
            "provider": self.provider.value,
            "objectStorage": object_storage,
            "default": self.default,
        }
        if self.config:
            spec["config"] = dict(self.config)
        if self.credential is not None:
            spec["credential"] = self.credential.to_spec()
        if self.access_mode:
            spec["accessMode"] = self.access_mode
        if self.backup_sync_period:
            spec["backupSyncPeriod"] = self.backup_sync_period
        if self.validation_frequency:
            spec["validationFrequency"] = self.validation_frequency
        return spec


@dataclass
class AWSCredential:
    """Normalized AWS credentials from an ini profile."""

    profile: str
    access_key_id: str | None = None
    secret_access_key: str | None = None
    session_token: str | None = None
    role_arn: str | None = None
    web_identity_token_file: str | None = None
    region: str | None = None

    @property
    def is_sts(self) -> bool:
        return bool(self.role_arn and self.web_identity_token_file)


@dataclass
class AzureCredential:
    """Normalized Azure credentials from a KEY=VALUE blob or individual keys."""

    subscription_id: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    resource_group: str = ""
    storage_account: str = ""
    storage_account_key: str = ""
    federated_token_file: str = ""
    cloud_name: str = ""
    auth_method: AzureAuthMethod = AzureAuthMethod.DEFAULT


@dataclass
class GCPCredential:
    """Normalized GCP service account or workload identity federation credentials."""

    type: str
    project_id: str
    client_email: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_wif(self) -> bool:
        return self.type == "external_account"


NormalizedCredential = Union[AWSCredential, AzureCredential, GCPCredential]
