"""Shared utilities for handlers."""

from __future__ import annotations

from kubernetes import client

from ..constants import AWS_CREDENTIALS_KEY, DEFAULT_CREDENTIAL_KEY, DEFAULT_CREDENTIAL_SECRET
from ..credentials.files import CredentialFileCache
from ..credentials.resolver import CredentialResolver
from ..models import AWSCredential, BucketDescriptor, SecretKeySelector
from ..services.bucket.base import ClientCredentials, CredentialLoader

_config_loaded = False


def _load_config() -> None:
    global _config_loaded
    if _config_loaded:
        return

    from kubernetes import config

    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config()
    _config_loaded = True


def get_k8s_client() -> client.CustomObjectsApi:
    """Get Kubernetes CustomObjectsApi client.

    Returns:
        CustomObjectsApi instance
    """
    _load_config()
    return client.CustomObjectsApi()


def get_core_client() -> client.CoreV1Api:
    """Get Kubernetes CoreV1Api client."""
    _load_config()
    return client.CoreV1Api()


def creation_secret(descriptor: BucketDescriptor) -> SecretKeySelector:
    """Secret holding the credentials used to manage a CloudStorage's bucket."""
    selector = descriptor.creation_secret
    if selector is not None and selector.name and selector.key:
        return selector
    return SecretKeySelector(name=DEFAULT_CREDENTIAL_SECRET, key=DEFAULT_CREDENTIAL_KEY)


def make_credential_loader(
    resolver: CredentialResolver,
    files: CredentialFileCache,
) -> CredentialLoader:
    """Build the loader bucket clients use to fetch a descriptor's credentials.

    AWS web identity profiles are handed to boto3 as a shared credentials file.
    """

    def load(descriptor: BucketDescriptor) -> ClientCredentials:
        selector = creation_secret(descriptor)
        credential, secret = resolver.resolve(descriptor.namespace, selector, descriptor.provider, descriptor.config)

        credentials_file = None
        if isinstance(credential, AWSCredential) and credential.is_sts:
            content = secret.data.get(selector.key) or secret.data.get(AWS_CREDENTIALS_KEY, b"")
            credentials_file = files.get_path(
                descriptor.namespace,
                descriptor.name,
                secret.resource_version,
                content,
            )
        return ClientCredentials(credential=credential, secret_data=secret.data, credentials_file=credentials_file)

    return load
