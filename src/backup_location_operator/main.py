"""Main entry point for the Backup Location Operator."""

from __future__ import annotations

import logging
import os
import threading
from typing import Any

import kopf
from werkzeug.serving import make_server

from . import handlers  # noqa: F401
from . import health
from . import logging as structured_logging
from .tracing import initialize_tracing

logger = logging.getLogger(__name__)


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure the operator."""
    structured_logging.setup_structured_logging()
    initialize_tracing()

    # Annotations keep kopf progress out of the status written by handlers
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage()
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage()

    settings.posting.level = logging.WARNING
    settings.networking.request_timeout = 30.0
    settings.execution.max_workers = int(os.getenv("KOPF_MAX_WORKERS", "4"))

    # Metrics plus /healthz and /readyz
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    server = make_server("", metrics_port, health.create_combined_wsgi_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    logger.info(f"Serving metrics and health checks on port {metrics_port}")

    health.set_ready()


@kopf.on.cleanup()
def shutdown(**_: Any) -> None:
    health.set_ready(False)


def main() -> None:
    """Run the operator watching all namespaces."""
    kopf.run(clusterwide=True)
