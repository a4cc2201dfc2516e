"""Reconciliation of a parent's backup locations into Velero BackupStorageLocations."""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from kubernetes import client

from .. import metrics
from ..builders.descriptor import create_intents_from_spec
from ..builders.labels import bsl_labels, owned_bsl_selector, owner_reference
from ..constants import (
    FEATURE_FLAG_NO_SECRET,
    FIELD_MANAGER,
    KIND_BACKUP_STORAGE_LOCATION,
    PLURAL_BACKUP_STORAGE_LOCATION,
    VELERO_API_GROUP,
    VELERO_API_GROUP_VERSION,
    VELERO_API_VERSION,
)
from ..credentials.resolver import CredentialResolver
from ..exceptions import LocationValidationError, ResolutionError
from ..models import ResolvedLocation
from ..tracing import trace_span
from .ca_bundle import CABundleAggregator
from .resolver import ConfigResolver, RegionDiscoverer
from .validation import validate_intents

logger = logging.getLogger(__name__)

ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_UNCHANGED = "unchanged"
ACTION_DELETED = "deleted"


def default_bsl_name(parent_name: str, index: int) -> str:
    """Name given to the unnamed location at ``index`` (zero based)."""
    return f"{parent_name}-{index + 1}"


def feature_flags(spec: dict[str, Any]) -> list[str]:
    velero = ((spec.get("configuration") or {}).get("velero") or {})
    return list(velero.get("featureFlags") or [])


def backup_images_enabled(spec: dict[str, Any]) -> bool:
    """Image backup is on unless spec.backupImages is explicitly false."""
    return spec.get("backupImages") is not False


@dataclass
class ReconcileResult:
    """Outcome of one reconcile of a parent."""

    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    ca_bundle: str = ""
    errors: list[str] = field(default_factory=list)

    @property
    def bsl_names(self) -> list[str]:
        return sorted(self.created + self.updated + self.unchanged)

    def record(self, name: str, action: str) -> None:
        getattr(self, action).append(name)


class ReconcileOrchestrator:
    """Resolves every location of a parent and writes the matching BackupStorageLocations."""

    def __init__(
        self,
        custom_api: client.CustomObjectsApi,
        core_api: client.CoreV1Api,
        credential_resolver: CredentialResolver | None = None,
        ca_aggregator: CABundleAggregator | None = None,
        region_discoverer: RegionDiscoverer | None = None,
        continue_on_error: bool = False,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            custom_api: API used for CloudStorage and BackupStorageLocation objects
            core_api: API used for secrets and the CA bundle ConfigMap
            credential_resolver: Credential resolver (built from core_api if omitted)
            ca_aggregator: CA bundle writer (built from core_api if omitted)
            region_discoverer: S3 bucket region lookup used when no region is configured
            continue_on_error: Keep resolving the remaining locations after a failure
        """
        self.custom_api = custom_api
        self.core_api = core_api
        self.credential_resolver = credential_resolver or CredentialResolver(core_api)
        self.ca_aggregator = ca_aggregator or CABundleAggregator(core_api)
        self.region_discoverer = region_discoverer
        self.continue_on_error = continue_on_error

    def reconcile(self, parent: dict[str, Any]) -> ReconcileResult:
        """Reconcile all backup locations of a parent resource.

        Args:
            parent: Parent resource body (apiVersion, kind, metadata, spec)

        Returns:
            Names written, left alone and deleted, plus the CA bundle name

        Raises:
            LocationValidationError: If the location list is invalid
            ResolutionError: If a location cannot be resolved and continue_on_error is off
            client.exceptions.ApiException: On Kubernetes API failures
        """
        meta = parent.get("metadata", {})
        spec = parent.get("spec", {}) or {}
        parent_name = meta.get("name", "")
        namespace = meta.get("namespace", "")

        with trace_span("reconcile_backup_locations", attributes={"parent": parent_name, "namespace": namespace}):
            intents = create_intents_from_spec(spec)
            backup_images = backup_images_enabled(spec)
            validate_intents(intents, backup_images)

            resolver = ConfigResolver(
                self.custom_api,
                self.credential_resolver,
                no_secret=FEATURE_FLAG_NO_SECRET in feature_flags(spec),
                backup_images=backup_images,
                region_discoverer=self.region_discoverer,
            )

            result = ReconcileResult()
            desired: set[str] = set()
            locations: list[ResolvedLocation] = []
            for index, intent in enumerate(intents):
                name = intent.name or default_bsl_name(parent_name, index)
                desired.add(name)
                try:
                    location = resolver.resolve(intent, namespace)
                except (LocationValidationError, ResolutionError) as e:
                    if not self.continue_on_error:
                        raise
                    logger.warning(f"Skipping backup location {name}: {e}")
                    result.errors.append(f"{name}: {e}")
                    continue
                location.name = name
                locations.append(location)

            for location in locations:
                action = self.apply_location(location, parent)
                result.record(location.name, action)
                metrics.bsl_writes_total.labels(action=action).inc()

            for name in self.delete_stale(namespace, parent_name, desired):
                result.record(name, ACTION_DELETED)
                metrics.bsl_writes_total.labels(action=ACTION_DELETED).inc()

            result.ca_bundle = self.ca_aggregator.aggregate(locations, parent)
            return result

    def apply_location(self, location: ResolvedLocation, parent: dict[str, Any]) -> str:
        """Create or update the BackupStorageLocation for one location.

        The ``default`` field of an existing object is never overwritten; it is
        only taken from the location when the object is first created.

        Returns:
            One of "created", "updated" or "unchanged"
        """
        meta = parent.get("metadata", {})
        namespace = meta.get("namespace", "")
        labels = bsl_labels(location.name, meta.get("name", ""))
        owner = owner_reference(parent)
        target_spec = location.to_bsl_spec()

        existing = self._get_bsl(namespace, location.name)
        if existing is None:
            body = {
                "apiVersion": VELERO_API_GROUP_VERSION,
                "kind": KIND_BACKUP_STORAGE_LOCATION,
                "metadata": {
                    "name": location.name,
                    "namespace": namespace,
                    "labels": labels,
                    "ownerReferences": [owner],
                },
                "spec": target_spec,
            }
            self._call("create_bsl", lambda: self.custom_api.create_namespaced_custom_object(
                group=VELERO_API_GROUP,
                version=VELERO_API_VERSION,
                namespace=namespace,
                plural=PLURAL_BACKUP_STORAGE_LOCATION,
                body=body,
                field_manager=FIELD_MANAGER,
            ))
            logger.info(f"Created BackupStorageLocation {namespace}/{location.name}")
            return ACTION_CREATED

        existing_spec = existing.get("spec", {}) or {}
        target_spec["default"] = bool(existing_spec.get("default", False))

        existing_meta = existing.get("metadata", {})
        current_labels = dict(existing_meta.get("labels") or {})
        merged_labels = {**current_labels, **labels}
        owners = list(existing_meta.get("ownerReferences") or [])
        has_owner = any(ref.get("uid") == owner["uid"] for ref in owners)

        if existing_spec == target_spec and merged_labels == current_labels and has_owner:
            logger.debug(f"BackupStorageLocation {namespace}/{location.name} is up to date")
            return ACTION_UNCHANGED

        updated = copy.deepcopy(existing)
        updated["spec"] = target_spec
        updated["metadata"]["labels"] = merged_labels
        if not has_owner:
            updated["metadata"]["ownerReferences"] = owners + [owner]

        self._call("update_bsl", lambda: self.custom_api.replace_namespaced_custom_object(
            group=VELERO_API_GROUP,
            version=VELERO_API_VERSION,
            namespace=namespace,
            plural=PLURAL_BACKUP_STORAGE_LOCATION,
            name=location.name,
            body=updated,
            field_manager=FIELD_MANAGER,
        ))
        logger.info(f"Updated BackupStorageLocation {namespace}/{location.name}")
        return ACTION_UPDATED

    def delete_stale(self, namespace: str, parent_name: str, desired: set[str]) -> list[str]:
        """Delete BackupStorageLocations owned by the parent that are no longer declared."""
        listing = self._call("list_bsl", lambda: self.custom_api.list_namespaced_custom_object(
            group=VELERO_API_GROUP,
            version=VELERO_API_VERSION,
            namespace=namespace,
            plural=PLURAL_BACKUP_STORAGE_LOCATION,
            label_selector=owned_bsl_selector(parent_name),
        ))

        deleted: list[str] = []
        for item in listing.get("items", []):
            name = item.get("metadata", {}).get("name", "")
            if not name or name in desired:
                continue
            try:
                self._call("delete_bsl", lambda: self.custom_api.delete_namespaced_custom_object(
                    group=VELERO_API_GROUP,
                    version=VELERO_API_VERSION,
                    namespace=namespace,
                    plural=PLURAL_BACKUP_STORAGE_LOCATION,
                    name=name,
                ))
            except client.exceptions.ApiException as e:
                if e.status != 404:
                    raise
            logger.info(f"Deleted stale BackupStorageLocation {namespace}/{name}")
            deleted.append(name)
        return deleted

    def _get_bsl(self, namespace: str, name: str) -> dict[str, Any] | None:
        try:
            return self._call("get_bsl", lambda: self.custom_api.get_namespaced_custom_object(
                group=VELERO_API_GROUP,
                version=VELERO_API_VERSION,
                namespace=namespace,
                plural=PLURAL_BACKUP_STORAGE_LOCATION,
                name=name,
            ))
        except client.exceptions.ApiException as e:
            if e.status == 404:
                return None
            raise

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        start_time = time.time()
        try:
            response = fn()
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="success").inc()
            return response
        except Exception:
            metrics.api_call_total.labels(api_type="k8s", operation=operation, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.api_call_duration_seconds.labels(api_type="k8s", operation=operation).observe(duration)
