"""Health check and metrics endpoint for the operator."""

from typing import Any

from prometheus_client import make_wsgi_app
from werkzeug.wrappers import Response

_ready = False


def set_ready(ready: bool = True) -> None:
    """Mark the operator as ready to serve /readyz."""
    global _ready
    _ready = ready


def create_combined_wsgi_app() -> Any:
    """Create a WSGI app that serves /healthz and /readyz and delegates everything else to Prometheus.

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> Any:
        path = environ.get("PATH_INFO", "")

        if path == "/healthz":
            response = Response('{"status":"ok"}', mimetype="application/json", status=200)
            return response(environ, start_response)
        if path == "/readyz":
            if _ready:
                response = Response('{"status":"ready"}', mimetype="application/json", status=200)
            else:
                response = Response('{"status":"starting"}', mimetype="application/json", status=503)
            return response(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app
