"""Handler for the DataProtectionApplication CRD: keeps its BackupStorageLocations in sync."""

from __future__ import annotations

import os
from typing import Any, Callable

import kopf
from kubernetes import client

from ..constants import API_GROUP_VERSION, KIND_DATA_PROTECTION_APPLICATION
from ..exceptions import LocationValidationError, ResolutionError
from ..reconcile.orchestrator import ACTION_UNCHANGED, ReconcileOrchestrator, ReconcileResult
from ..services.aws.client import discover_bucket_region
from ..utils.conditions import set_reconciled_condition
from ..utils.errors import sanitize_exception
from ..utils.events import emit_bsl_deleted, emit_bsl_reconciled
from .base import BaseHandler
from .shared import get_core_client, get_k8s_client


def _default_orchestrator() -> ReconcileOrchestrator:
    return ReconcileOrchestrator(
        get_k8s_client(),
        get_core_client(),
        region_discoverer=discover_bucket_region,
        continue_on_error=os.getenv("CONTINUE_ON_LOCATION_ERROR", "false").lower() == "true",
    )


class DataProtectionHandler(BaseHandler):
    """Handler for DataProtectionApplication resources."""

    def __init__(self, orchestrator_factory: Callable[[], ReconcileOrchestrator] = _default_orchestrator):
        super().__init__(KIND_DATA_PROTECTION_APPLICATION)
        self.orchestrator_factory = orchestrator_factory

    def _emit_result(self, body: dict[str, Any], result: ReconcileResult) -> None:
        for action in ("created", "updated"):
            for name in getattr(result, action):
                emit_bsl_reconciled(body, name, action)
        for name in result.deleted:
            emit_bsl_deleted(body, name)

    def reconcile(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
    ) -> None:
        """Reconcile the parent's backup locations and report them on its status."""
        generation = meta.get("generation")

        def failed_condition(conditions: list[dict[str, Any]], message: str) -> list[dict[str, Any]]:
            return set_reconciled_condition(conditions, False, message, generation)

        try:
            result = self.orchestrator_factory().reconcile(body)
        except LocationValidationError as e:
            patch.status["conditions"] = failed_condition(status.get("conditions", []), sanitize_exception(e))
            self.handle_validation_error(body, meta, e)
        except (ResolutionError, client.exceptions.ApiException) as e:
            self.handle_reconciliation_error(body, meta, status, patch, e, condition_fn=failed_condition)

        self._emit_result(body, result)
        self.log_info(
            meta,
            f"Reconciled {len(result.bsl_names)} BackupStorageLocations "
            f"({len(result.created)} created, {len(result.updated)} updated, "
            f"{len(result.unchanged)} {ACTION_UNCHANGED}, {len(result.deleted)} deleted)",
            reason="Reconciled",
        )

        message = "Reconcile complete"
        if result.errors:
            message = "Reconciled with errors: " + "; ".join(result.errors)
            self.log_warning(meta, message, reason="PartialReconcile")

        conditions = set_reconciled_condition(
            status.get("conditions", []), not result.errors, message, generation
        )
        self.update_resource_status(patch, meta, not result.errors, {
            "conditions": conditions,
            "backupStorageLocations": result.bsl_names,
            "caBundleConfigMap": result.ca_bundle,
        })


# Global handler instance
_handler = DataProtectionHandler()


@kopf.on.create(API_GROUP_VERSION, KIND_DATA_PROTECTION_APPLICATION)
@kopf.on.update(API_GROUP_VERSION, KIND_DATA_PROTECTION_APPLICATION)
@kopf.on.resume(API_GROUP_VERSION, KIND_DATA_PROTECTION_APPLICATION)
@kopf.timer(
    API_GROUP_VERSION,
    KIND_DATA_PROTECTION_APPLICATION,
    interval=int(os.getenv("RECONCILE_INTERVAL_SECONDS", "300")),
)
def handle_data_protection_application(
    body: dict[str, Any],
    meta: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """Handle DataProtectionApplication reconciliation.

    Owned BackupStorageLocations and the CA bundle carry owner references, so
    Kubernetes garbage collection removes them with the parent.
    """
    if meta.get("deletionTimestamp"):
        return
    _handler.reconcile_with_metrics(body, meta, lambda: _handler.reconcile(body, meta, status, patch))
