"""Azure credential parsing.

Azure secrets come in two layouts: a single field (``cloud`` or ``azurekey``)
holding newline separated ``KEY=VALUE`` pairs, or one secret key per variable.
"""

from __future__ import annotations

import os
import re
from typing import Mapping

from ..constants import AZURE_CLOUD_KEY, AZURE_KEY, LABEL_SECRET_TYPE, LABEL_VALUE_STS_CREDENTIALS
from ..exceptions import CredentialError
from ..models import AzureAuthMethod, AzureCredential

_RESOURCE_GROUP_RE = re.compile(r"^\s*AZURE_RESOURCE_GROUP\s*=")


def parse_env_blob(content: str) -> dict[str, str]:
    """Parse newline separated KEY=VALUE pairs, skipping blanks, comments and lines without '='."""
    env: dict[str, str] = {}
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        env[key.strip()] = value.strip()
    return env


def _decode(data: Mapping[str, bytes], key: str) -> str:
    value = data.get(key)
    return value.decode("utf-8").strip() if value else ""


def _blob(data: Mapping[str, bytes], preferred_key: str | None) -> str:
    candidates = [preferred_key] if preferred_key else []
    candidates += [AZURE_CLOUD_KEY, AZURE_KEY]
    for key in candidates:
        content = _decode(data, key)
        if content and "=" in content:
            return content
    return ""


def parse_azure_credentials(
    data: Mapping[str, bytes],
    key: str | None = None,
    labels: Mapping[str, str] | None = None,
) -> AzureCredential:
    """Normalize an Azure secret.

    A non-empty blob field wins over individual keys. An explicit
    ``AZURE_STORAGE_ACCOUNT`` secret key wins over the account named in the blob.

    Args:
        data: Decoded secret data
        key: Secret key referenced by the location, checked first for a blob
        labels: Secret labels, used to recognise operator-issued STS secrets

    Returns:
        Normalized Azure credential with its detected auth method
    """
    blob = _blob(data, key)
    if blob:
        env = parse_env_blob(blob)
    else:
        env = {name: _decode(data, name) for name in data}

    if not any(name.startswith("AZURE_") for name in env):
        raise CredentialError(
            f"error parsing Azure secret: no recognized keys, expected a {AZURE_CLOUD_KEY} or {AZURE_KEY} "
            "field of AZURE_*=value lines, or individual keys AZURE_STORAGE_ACCOUNT_ACCESS_KEY or "
            "AZURE_CLIENT_ID, AZURE_TENANT_ID and AZURE_CLIENT_SECRET"
        )

    storage_account = (
        _decode(data, "AZURE_STORAGE_ACCOUNT")
        or env.get("AZURE_STORAGE_ACCOUNT", "")
        or env.get("AZURE_STORAGE_ACCOUNT_ID", "")
    )

    credential = AzureCredential(
        subscription_id=env.get("AZURE_SUBSCRIPTION_ID", ""),
        tenant_id=env.get("AZURE_TENANT_ID", ""),
        client_id=env.get("AZURE_CLIENT_ID", ""),
        client_secret=env.get("AZURE_CLIENT_SECRET", ""),
        resource_group=env.get("AZURE_RESOURCE_GROUP", ""),
        storage_account=storage_account,
        storage_account_key=env.get("AZURE_STORAGE_ACCOUNT_ACCESS_KEY", "")
        or _decode(data, "AZURE_STORAGE_ACCOUNT_ACCESS_KEY"),
        federated_token_file=env.get("AZURE_FEDERATED_TOKEN_FILE", "")
        or _decode(data, "AZURE_FEDERATED_TOKEN_FILE"),
        cloud_name=env.get("AZURE_CLOUD_NAME", ""),
    )
    credential.auth_method = detect_auth_method(credential, data, labels or {})
    return credential


def is_sts_secret(labels: Mapping[str, str]) -> bool:
    return labels.get(LABEL_SECRET_TYPE) == LABEL_VALUE_STS_CREDENTIALS


def has_workload_identity(data: Mapping[str, bytes], labels: Mapping[str, str]) -> bool:
    """Check whether a secret describes Azure workload identity (federated token) credentials."""
    if is_sts_secret(labels):
        azure_key = _decode(data, AZURE_KEY)
        if azure_key:
            return all(
                name in azure_key
                for name in ("AZURE_CLIENT_ID", "AZURE_TENANT_ID", "AZURE_SUBSCRIPTION_ID")
            )

    if "AZURE_FEDERATED_TOKEN_FILE" in data or os.getenv("AZURE_FEDERATED_TOKEN_FILE"):
        return "AZURE_TENANT_ID" in data and "AZURE_CLIENT_ID" in data

    return False


def detect_auth_method(
    credential: AzureCredential,
    data: Mapping[str, bytes],
    labels: Mapping[str, str],
) -> AzureAuthMethod:
    """Pick the auth method: shared key, then workload identity, then service principal, then default chain."""
    if credential.storage_account_key:
        return AzureAuthMethod.SHARED_KEY
    if has_workload_identity(data, labels):
        return AzureAuthMethod.WORKLOAD_IDENTITY
    if credential.tenant_id and credential.client_id and credential.client_secret:
        return AzureAuthMethod.SERVICE_PRINCIPAL
    return AzureAuthMethod.DEFAULT


def storage_account_name(data: Mapping[str, bytes], config: Mapping[str, str]) -> str:
    """Resolve the storage account name.

    Precedence: the ``AZURE_STORAGE_ACCOUNT`` secret key, then the
    ``AZURE_STORAGE_ACCOUNT=`` line of the azurekey blob, then ``storageAccount``
    in the bucket config.

    Raises:
        CredentialError: If no source names an account
    """
    explicit = _decode(data, "AZURE_STORAGE_ACCOUNT")
    if explicit:
        return explicit

    azure_key = _decode(data, AZURE_KEY)
    if azure_key:
        from_blob = parse_env_blob(azure_key).get("AZURE_STORAGE_ACCOUNT", "")
        if from_blob:
            return from_blob

    from_config = config.get("storageAccount", "")
    if from_config:
        return from_config

    raise CredentialError(
        "storage account name not found in secret (AZURE_STORAGE_ACCOUNT), azurekey, or config"
    )


def patch_azure_resource_group(content: str, resource_group: str) -> str:
    """Set ``AZURE_RESOURCE_GROUP=<resource_group>`` in a KEY=VALUE blob, replacing any existing line."""
    lines = [line for line in content.splitlines() if not _RESOURCE_GROUP_RE.match(line)]
    while lines and not lines[-1].strip():
        lines.pop()
    lines.append(f"AZURE_RESOURCE_GROUP={resource_group}")
    return "\n".join(lines) + "\n"
