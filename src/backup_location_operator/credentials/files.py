"""Materialization of credential secrets as files for the cloud SDKs."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass

from ..utils.cache import TTLCache, make_cache_key

logger = logging.getLogger(__name__)


def write_credentials_file(content: bytes, prefix: str) -> str:
    """Write credential bytes to a private temp file and return its path."""
    fd, path = tempfile.mkstemp(prefix=prefix)
    try:
        os.write(fd, content)
    finally:
        os.close(fd)
    os.chmod(path, 0o600)
    return path


@dataclass(frozen=True)
class CachedCredentialFile:
    path: str
    resource_version: str


def _remove_file(entry: CachedCredentialFile) -> None:
    try:
        os.remove(entry.path)
    except FileNotFoundError:
        pass


class CredentialFileCache:
    """Credential files keyed by the owning resource, refreshed on secret rotation.

    An entry is reused only while the secret's resourceVersion is unchanged and
    the entry is younger than the TTL. Replaced and expired files are deleted.
    """

    def __init__(self, ttl: float | None = None) -> None:
        if ttl is None:
            ttl = float(os.getenv("CREDENTIAL_CACHE_TTL_SECONDS", "300"))
        self._cache: TTLCache[CachedCredentialFile] = TTLCache(ttl, on_evict=_remove_file)

    def get_path(
        self,
        namespace: str,
        name: str,
        resource_version: str,
        content: bytes,
        prefix: str = "cloudstoragesecret-",
    ) -> str:
        """Return a file holding ``content``, reusing the cached one when still current.

        Args:
            namespace: Namespace of the owning resource
            name: Name of the owning resource
            resource_version: resourceVersion of the secret the content was read from
            content: Credential bytes
            prefix: Temp file name prefix

        Returns:
            Path of the credential file
        """
        key = make_cache_key("CredentialFile", namespace, name)
        cached = self._cache.get(key)
        if (
            cached is not None
            and resource_version
            and cached.resource_version == resource_version
            and os.path.exists(cached.path)
        ):
            return cached.path

        path = write_credentials_file(content, prefix)
        self._cache.set(key, CachedCredentialFile(path=path, resource_version=resource_version))
        logger.debug(f"Materialized credentials for {namespace}/{name} at resourceVersion {resource_version}")
        return path

    def invalidate(self, namespace: str, name: str) -> None:
        self._cache.invalidate(make_cache_key("CredentialFile", namespace, name))

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
