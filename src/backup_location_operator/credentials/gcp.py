"""GCP credential parsing for service account keys and workload identity federation."""

from __future__ import annotations

import json
import os
from typing import Any, Mapping

from ..exceptions import CredentialError
from ..models import GCPCredential

IMPERSONATION_URL_PREFIX = "https://iamcredentials.googleapis.com/v1/projects/-/serviceAccounts/"
IMPERSONATION_URL_SUFFIX = ":generateAccessToken"
PROJECT_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "GCP_PROJECT")


def project_id_from_impersonation_url(url: str) -> tuple[str, str]:
    """Extract the service account email and its project from an impersonation URL.

    The URL looks like ``<prefix><name>@<project>.iam.gserviceaccount.com:generateAccessToken``.

    Returns:
        Tuple of (service account email, project id)

    Raises:
        CredentialError: If the URL or the email does not have the expected shape
    """
    if not url.startswith(IMPERSONATION_URL_PREFIX) or not url.endswith(IMPERSONATION_URL_SUFFIX):
        raise CredentialError("invalid service account impersonation URL format")

    email = url[len(IMPERSONATION_URL_PREFIX):-len(IMPERSONATION_URL_SUFFIX)]
    if not email:
        raise CredentialError("invalid service account impersonation URL")

    parts = email.split("@")
    if len(parts) != 2:
        raise CredentialError("invalid service account email format")

    domain = parts[1].split(".")
    if len(domain) < 3 or domain[1] != "iam" or domain[2] != "gserviceaccount":
        raise CredentialError("invalid service account email domain")

    return email, domain[0]


def parse_gcp_credentials(
    content: str | bytes,
    config: Mapping[str, str] | None = None,
) -> GCPCredential:
    """Parse a GCP credential JSON document and determine its project.

    For ``external_account`` credentials the project comes from the impersonated
    service account email; when that cannot be derived, ``projectID`` in the
    bucket config and then the ``GOOGLE_CLOUD_PROJECT`` / ``GCP_PROJECT``
    environment variables are used.

    Raises:
        CredentialError: If the JSON is invalid, the type is unsupported, or no project resolves
    """
    try:
        raw: Any = json.loads(content)
    except (TypeError, ValueError) as e:
        raise CredentialError(f"error parsing GCP secret: {e}") from e
    if not isinstance(raw, dict):
        raise CredentialError("error parsing GCP secret: expected a JSON object")

    credential_type = raw.get("type", "")

    if credential_type == "service_account":
        project_id = raw.get("project_id") or ""
        if not project_id:
            raise CredentialError("project_id not found in service account key")
        return GCPCredential(
            type=credential_type,
            project_id=project_id,
            client_email=raw.get("client_email", ""),
            raw=raw,
        )

    if credential_type == "external_account":
        try:
            email, project_id = project_id_from_impersonation_url(
                raw.get("service_account_impersonation_url", "")
            )
        except CredentialError as e:
            project_id = _fallback_project_id(config or {})
            if not project_id:
                raise CredentialError(f"unable to determine project ID from WIF credentials: {e}") from e
            email = ""
        return GCPCredential(type=credential_type, project_id=project_id, client_email=email, raw=raw)

    raise CredentialError(f"unsupported credential type: {credential_type}")


def _fallback_project_id(config: Mapping[str, str]) -> str:
    if config.get("projectID"):
        return config["projectID"]
    for name in PROJECT_ENV_VARS:
        value = os.getenv(name)
        if value:
            return value
    return ""
