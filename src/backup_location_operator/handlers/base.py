"""Base handler class with functionality shared by the CRD handlers."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import kopf

from .. import metrics
from ..constants import CONTROLLER_NAME, FINALIZER
from ..logging import log_resource_event
from ..utils.errors import sanitize_exception
from ..utils.events import emit_reconcile_failed, emit_reconcile_started, emit_validate_failed


class BaseHandler:
    """Base class for CRD handlers: structured logs, metrics, finalizers and status."""

    def __init__(self, kind: str):
        """Initialize base handler.

        Args:
            kind: The Kubernetes resource kind (e.g., "CloudStorage")
        """
        self.kind = kind
        self.logger = logging.getLogger(__name__)

    def _get_resource_context(self, meta: dict[str, Any]) -> dict[str, Any]:
        return {
            "name": meta.get("name", "unknown"),
            "namespace": meta.get("namespace", "default"),
            "uid": meta.get("uid", "unknown"),
        }

    def _log(
        self,
        level: int,
        meta: dict[str, Any],
        message: str,
        event: str,
        reason: str,
        **kwargs: Any,
    ) -> None:
        ctx = self._get_resource_context(meta)
        log_resource_event(
            self.logger,
            controller=CONTROLLER_NAME,
            resource_kind=self.kind,
            resource_name=ctx["name"],
            namespace=ctx["namespace"],
            uid=ctx["uid"],
            event=event,
            reason=reason,
            message=message,
            level=level,
            **kwargs,
        )

    def log_info(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "info",
        reason: str = "Info",
        **kwargs: Any,
    ) -> None:
        """Log an info-level structured message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            event: Event type (default: "info")
            reason: Reason for the event (default: "Info")
            **kwargs: Additional fields to include in the log
        """
        self._log(logging.INFO, meta, message, event, reason, **kwargs)

    def log_warning(
        self,
        meta: dict[str, Any],
        message: str,
        event: str = "warning",
        reason: str = "Warning",
        **kwargs: Any,
    ) -> None:
        """Log a warning-level structured message."""
        self._log(logging.WARNING, meta, message, event, reason, **kwargs)

    def log_error(
        self,
        meta: dict[str, Any],
        message: str,
        error: Exception | None = None,
        event: str = "error",
        reason: str = "Error",
        **kwargs: Any,
    ) -> None:
        """Log an error-level structured message.

        Args:
            meta: Kubernetes resource metadata
            message: Log message
            error: Optional exception, included sanitized
            event: Event type (default: "error")
            reason: Reason for the event (default: "Error")
            **kwargs: Additional fields to include in the log
        """
        log_data = kwargs.copy()
        if error is not None:
            log_data["error"] = sanitize_exception(error)
            log_data["error_type"] = type(error).__name__
        self._log(logging.ERROR, meta, message, event, reason, **log_data)

    def handle_validation_error(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        error: Exception,
    ) -> None:
        """Report an invalid resource and stop retrying it.

        Raises:
            kopf.PermanentError: Always; the periodic timer re-checks the resource
        """
        error_msg = sanitize_exception(error)
        self.log_error(meta, error_msg, error=error, reason="ValidationFailed")
        emit_validate_failed(body, error_msg)
        metrics.error_total.labels(kind=self.kind, error_type=type(error).__name__).inc()
        raise kopf.PermanentError(error_msg) from error

    def handle_reconciliation_error(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        status: dict[str, Any],
        patch: kopf.Patch,
        error: Exception,
        condition_fn: Callable[[list[dict[str, Any]], str], list[dict[str, Any]]] | None = None,
        delay: float = 30,
    ) -> None:
        """Record a failed reconcile on the status and ask kopf to retry later.

        Args:
            body: Resource body
            meta: Kubernetes resource metadata
            status: Resource status
            patch: Kopf patch object
            error: Exception that occurred
            condition_fn: Optional function setting a failure condition from a message
            delay: Seconds before kopf retries

        Raises:
            kopf.TemporaryError: Always
        """
        sanitized_error = sanitize_exception(error)
        self.log_error(meta, f"Reconciliation failed: {sanitized_error}", error=error, reason="ReconciliationFailed")
        emit_reconcile_failed(body, f"Reconciliation failed: {sanitized_error}")
        metrics.error_total.labels(kind=self.kind, error_type=type(error).__name__).inc()

        status_update: dict[str, Any] = {"observedGeneration": meta.get("generation", 0)}
        if condition_fn is not None:
            status_update["conditions"] = condition_fn(status.get("conditions", []), sanitized_error)
        patch.status.update(status_update)
        raise kopf.TemporaryError(sanitized_error, delay=delay) from error

    def ensure_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Ensure the operator finalizer is present."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER not in finalizers:
            finalizers.append(FINALIZER)
            patch.metadata["finalizers"] = finalizers

    def remove_finalizer(self, meta: dict[str, Any], patch: kopf.Patch) -> None:
        """Remove the operator finalizer."""
        finalizers = list(meta.get("finalizers", []))
        if FINALIZER in finalizers:
            finalizers.remove(FINALIZER)
            patch.metadata["finalizers"] = finalizers if finalizers else None

    def reconcile_with_metrics(
        self,
        body: dict[str, Any],
        meta: dict[str, Any],
        reconcile_fn: Callable[[], None],
    ) -> None:
        """Run a reconcile, recording started/success/error metrics and its duration.

        Errors already translated to kopf errors pass through unchanged.
        """
        emit_reconcile_started(body)
        metrics.reconcile_total.labels(kind=self.kind, result="started").inc()

        start_time = time.time()
        try:
            reconcile_fn()
            metrics.reconcile_total.labels(kind=self.kind, result="success").inc()
        except (kopf.PermanentError, kopf.TemporaryError):
            metrics.reconcile_total.labels(kind=self.kind, result="failed").inc()
            raise
        except Exception as e:
            sanitized_error = sanitize_exception(e)
            metrics.error_total.labels(kind=self.kind, error_type=type(e).__name__).inc()
            self.log_error(meta, "Reconciliation failed", error=e, reason="ReconciliationFailed")
            emit_reconcile_failed(body, f"Reconciliation failed: {sanitized_error}")
            metrics.reconcile_total.labels(kind=self.kind, result="error").inc()
            raise
        finally:
            duration = time.time() - start_time
            metrics.reconcile_duration_seconds.labels(kind=self.kind).observe(duration)

    def update_resource_status(
        self,
        patch: kopf.Patch,
        meta: dict[str, Any],
        ready: bool,
        status_data: dict[str, Any] | None = None,
    ) -> None:
        """Update resource status with common fields.

        Args:
            patch: Kopf patch object
            meta: Kubernetes resource metadata
            ready: Whether the resource is ready
            status_data: Additional status data to include
        """
        status_update = {
            "observedGeneration": meta.get("generation", 0),
            **(status_data or {}),
        }
        metrics.resource_status_total.labels(kind=self.kind, status="ready" if ready else "not_ready").inc()
        patch.status.update(status_update)
