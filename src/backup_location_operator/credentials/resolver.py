"""Credential resolution: secret lookup, provider dispatch and STS secret patching."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from kubernetes import client

from ..constants import AZURE_KEY, DEFAULT_AWS_PROFILE, GCP_SERVICE_ACCOUNT_KEY
from ..exceptions import CredentialError
from ..models import NormalizedCredential, Provider, SecretKeySelector
from ..utils.secrets import (
    decode_secret_data,
    patch_secret_value,
    read_secret,
    secret_labels,
    secret_resource_version,
)
from .aws import parse_aws_credentials, patch_aws_region
from .azure import is_sts_secret, parse_azure_credentials, patch_azure_resource_group
from .gcp import parse_gcp_credentials

logger = logging.getLogger(__name__)


@dataclass
class LoadedSecret:
    """A credential secret as read from the cluster."""

    name: str
    namespace: str
    data: dict[str, bytes]
    labels: dict[str, str]
    resource_version: str

    @property
    def is_sts(self) -> bool:
        return is_sts_secret(self.labels)


def parse_credentials(
    secret_data: Mapping[str, bytes],
    provider: Provider,
    key: str,
    config: Mapping[str, str] | None = None,
    labels: Mapping[str, str] | None = None,
) -> NormalizedCredential:
    """Parse a provider-specific secret payload into a normalized credential.

    Args:
        secret_data: Decoded secret data
        provider: Provider the credential is for
        key: Secret key referenced by the location
        config: Location config (AWS ``profile``, GCP ``projectID``)
        labels: Secret labels

    Raises:
        CredentialError: If the payload is missing or malformed
    """
    config = config or {}

    if provider == Provider.AWS:
        if key not in secret_data:
            raise CredentialError(f"error parsing AWS secret: key {key} not found")
        profile = config.get("profile") or DEFAULT_AWS_PROFILE
        return parse_aws_credentials(secret_data[key].decode("utf-8"), profile)

    if provider == Provider.AZURE:
        return parse_azure_credentials(secret_data, key, labels)

    if provider == Provider.GCP:
        content = secret_data.get(key) or secret_data.get(GCP_SERVICE_ACCOUNT_KEY)
        if not content:
            raise CredentialError(f"error parsing GCP secret: key {key} not found")
        return parse_gcp_credentials(content, config)

    raise CredentialError(f"unsupported credential provider: {provider}")


class CredentialResolver:
    """Reads credential secrets and keeps STS secrets in step with resolved locations."""

    def __init__(self, core_api: client.CoreV1Api) -> None:
        self.core_api = core_api

    def load(self, namespace: str, secret_name: str) -> LoadedSecret:
        """Read a secret fresh from the API server.

        Raises:
            ResourceNotFoundError: If the secret does not exist
        """
        secret = read_secret(self.core_api, namespace, secret_name)
        return LoadedSecret(
            name=secret_name,
            namespace=namespace,
            data=decode_secret_data(secret),
            labels=secret_labels(secret),
            resource_version=secret_resource_version(secret),
        )

    def resolve(
        self,
        namespace: str,
        selector: SecretKeySelector,
        provider: Provider,
        config: Mapping[str, str] | None = None,
    ) -> tuple[NormalizedCredential, LoadedSecret]:
        """Load and parse the credential a location refers to."""
        secret = self.load(namespace, selector.name)
        credential = parse_credentials(secret.data, provider, selector.key, config, secret.labels)
        return credential, secret

    def patch_sts_secret(
        self,
        secret: LoadedSecret,
        selector: SecretKeySelector,
        provider: Provider,
        config: Mapping[str, str],
    ) -> bool:
        """Write the resolved region (AWS) or resource group (Azure) into an STS secret.

        Only secrets labelled as operator-issued STS credentials are touched, and
        nothing is written when the content would not change.

        Returns:
            True if the secret was patched
        """
        if not secret.is_sts:
            return False

        if provider == Provider.AWS:
            region = config.get("region", "")
            content = secret.data.get(selector.key, b"").decode("utf-8")
            if not region or not content:
                return False
            profile = config.get("profile") or DEFAULT_AWS_PROFILE
            return self._write_if_changed(secret, selector.key, content, patch_aws_region(content, profile, region))

        if provider == Provider.AZURE:
            resource_group = config.get("resourceGroup", "")
            blob_key = selector.key if secret.data.get(selector.key) else AZURE_KEY
            content = secret.data.get(blob_key, b"").decode("utf-8")
            if not resource_group or not content:
                return False
            return self._write_if_changed(
                secret, blob_key, content, patch_azure_resource_group(content, resource_group)
            )

        return False

    def _write_if_changed(self, secret: LoadedSecret, key: str, old: str, new: str) -> bool:
        if old == new:
            return False
        patch_secret_value(self.core_api, secret.namespace, secret.name, key, new)
        secret.data[key] = new.encode("utf-8")
        logger.info(f"Patched STS secret {secret.namespace}/{secret.name} key {key}")
        return True


def describe_credential(credential: Any) -> str:
    """Describe a credential for logs without exposing secret values."""
    kind = type(credential).__name__
    if hasattr(credential, "auth_method"):
        return f"{kind}(auth_method={credential.auth_method.value})"
    if hasattr(credential, "is_sts"):
        return f"{kind}(profile={credential.profile}, sts={credential.is_sts})"
    if hasattr(credential, "is_wif"):
        return f"{kind}(project={credential.project_id}, wif={credential.is_wif})"
    return kind
