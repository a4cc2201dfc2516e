"""Resolution of backup location intents into provider-normalized locations."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from kubernetes import client

from ..builders.config import map_provider_config, pin_aws_defaults, unknown_config_keys
from ..builders.descriptor import create_descriptor_from_object
from ..constants import (
    API_GROUP,
    API_VERSION,
    DEFAULT_CREDENTIAL_KEY,
    DEFAULT_CREDENTIAL_SECRET,
    KIND_CLOUD_STORAGE,
    PLURAL_CLOUD_STORAGE,
)
from ..credentials.resolver import CredentialResolver, describe_credential
from ..exceptions import LocationValidationError, ResourceNotFoundError
from ..models import (
    BucketDescriptor,
    BucketRef,
    InlineSpec,
    LocationIntent,
    Provider,
    ResolvedLocation,
    SecretKeySelector,
)

logger = logging.getLogger(__name__)

RegionDiscoverer = Callable[[str], Optional[str]]


def _is_true(value: str | None) -> bool:
    return (value or "").strip().lower() == "true"


class ConfigResolver:
    """Merges a location's inline spec or CloudStorage reference into one ResolvedLocation."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        credential_resolver: CredentialResolver,
        no_secret: bool = False,
        backup_images: bool = True,
        region_discoverer: RegionDiscoverer | None = None,
    ) -> None:
        """Initialize the resolver.

        Args:
            custom_api: Kubernetes CustomObjectsApi used to read CloudStorage objects
            credential_resolver: Resolver used to read and parse credential secrets
            no_secret: The no-secret feature flag; credentials become optional
            backup_images: Whether image backup is enabled on the parent
            region_discoverer: Looks up an S3 bucket's region, None if it cannot
        """
        self.custom_api = custom_api
        self.credential_resolver = credential_resolver
        self.no_secret = no_secret
        self.backup_images = backup_images
        self.region_discoverer = region_discoverer

    def get_descriptor(self, name: str, namespace: str) -> BucketDescriptor:
        """Fetch and parse a CloudStorage.

        Raises:
            ResourceNotFoundError: If the CloudStorage does not exist
        """
        try:
            obj = self.custom_api.get_namespaced_custom_object(
                group=API_GROUP,
                version=API_VERSION,
                namespace=namespace,
                plural=PLURAL_CLOUD_STORAGE,
                name=name,
            )
        except client.exceptions.ApiException as e:
            if e.status == 404:
                raise ResourceNotFoundError(
                    KIND_CLOUD_STORAGE, name, namespace, f"failed to get CloudStorage {name}: not found"
                ) from e
            raise
        return create_descriptor_from_object(obj)

    def resolve(self, intent: LocationIntent, namespace: str) -> ResolvedLocation:
        """Resolve one intent.

        Args:
            intent: Location intent
            namespace: Namespace of the parent resource

        Returns:
            The merged, validated location

        Raises:
            LocationValidationError: On incomplete provider configuration
            ResolutionError: When a referenced resource is missing or a credential is malformed
        """
        descriptor: BucketDescriptor | None = None
        if isinstance(intent.spec, InlineSpec):
            location = self._from_inline(intent.name, intent.spec)
            explicit_credential = intent.spec.credential
        elif isinstance(intent.spec, BucketRef):
            descriptor = self._descriptor_for(intent.spec, namespace)
            location = self._from_bucket_ref(intent.name, intent.spec, descriptor)
            explicit_credential = intent.spec.credential
        else:
            raise LocationValidationError("a bsl must have velero or cloudstorage configured")

        location.credential = self._select_credential(explicit_credential, descriptor)
        if location.credential is not None and not self.no_secret:
            self._check_credential(location, location.credential, namespace)

        self._check_provider_config(location)

        extra = unknown_config_keys(location.provider, location.config)
        if extra:
            logger.debug(f"Location {location.name or '<unnamed>'} carries non-native config keys: {extra}")
        return location

    def _descriptor_for(self, ref: BucketRef, namespace: str) -> BucketDescriptor:
        if not ref.cloud_storage_ref:
            raise LocationValidationError("CloudStorage reference is required")
        return self.get_descriptor(ref.cloud_storage_ref, namespace)

    def _from_inline(self, name: str, spec: InlineSpec) -> ResolvedLocation:
        config = dict(spec.config)
        if spec.provider == Provider.AWS:
            pin_aws_defaults(config)
        return ResolvedLocation(
            name=name,
            provider=spec.provider,
            bucket=spec.bucket,
            prefix=spec.prefix,
            ca_cert=spec.ca_cert,
            config=config,
            default=spec.default,
            access_mode=spec.access_mode,
            backup_sync_period=spec.backup_sync_period,
            validation_frequency=spec.validation_frequency,
        )

    def _from_bucket_ref(self, name: str, ref: BucketRef, descriptor: BucketDescriptor) -> ResolvedLocation:
        return ResolvedLocation(
            name=name,
            provider=descriptor.provider,
            bucket=descriptor.bucket,
            prefix=ref.prefix,
            ca_cert=ref.ca_cert,
            config=map_provider_config(descriptor, ref.config),
            default=ref.default,
            backup_sync_period=ref.backup_sync_period,
        )

    def _select_credential(
        self,
        explicit: SecretKeySelector | None,
        descriptor: BucketDescriptor | None,
    ) -> SecretKeySelector | None:
        if explicit is not None:
            if not explicit.name or not explicit.key:
                owner = "CloudStorage" if descriptor is not None else "BackupLocation"
                raise LocationValidationError(f"Secret key specified in {owner} cannot be empty")
            return explicit

        if self.no_secret:
            return None

        if descriptor is not None and descriptor.creation_secret is not None:
            if descriptor.creation_secret.name and descriptor.creation_secret.key:
                return descriptor.creation_secret

        return SecretKeySelector(name=DEFAULT_CREDENTIAL_SECRET, key=DEFAULT_CREDENTIAL_KEY)

    def _check_credential(self, location: ResolvedLocation, selector: SecretKeySelector, namespace: str) -> None:
        credential, secret = self.credential_resolver.resolve(namespace, selector, location.provider, location.config)
        logger.debug(f"Resolved {describe_credential(credential)} for location {location.name or '<unnamed>'}")
        self.credential_resolver.patch_sts_secret(secret, selector, location.provider, location.config)

    def _check_provider_config(self, location: ResolvedLocation) -> None:
        if location.provider == Provider.AWS:
            self._check_aws(location)
        elif location.provider == Provider.AZURE:
            for key, label in (("resourceGroup", "resourceGroup"), ("storageAccount", "storageAccount")):
                if key in location.config and not location.config[key].strip():
                    raise LocationValidationError(
                        f"no {label} specified for Azure backupstoragelocation {location.name}"
                    )
        elif location.provider == Provider.GCP:
            if not location.bucket:
                raise LocationValidationError("bucket name for GCP backupstoragelocation cannot be empty")

    def _check_aws(self, location: ResolvedLocation) -> None:
        if location.config.get("region"):
            return
        missing = LocationValidationError(
            "region for AWS backupstoragelocation not automatically discoverable. "
            "Please set the region in the backupstoragelocation config"
        )
        if _is_true(location.config.get("s3ForcePathStyle")):
            raise missing
        if not self.backup_images:
            return
        if location.bucket and self._discover_region(location.bucket):
            return
        raise missing

    def _discover_region(self, bucket: str) -> str | None:
        if self.region_discoverer is None:
            return None
        return self.region_discoverer(bucket)
