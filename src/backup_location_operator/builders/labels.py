"""Labels and owner references for objects written on behalf of a parent."""

from __future__ import annotations

from typing import Any

from ..constants import (
    LABEL_APP_COMPONENT,
    LABEL_APP_INSTANCE,
    LABEL_APP_MANAGED_BY,
    LABEL_APP_NAME,
    LABEL_OPERATOR,
    LABEL_OWNER_NAME,
    LABEL_REGISTRY,
    LABEL_VALUE_BSL_APP,
    LABEL_VALUE_COMPONENT_BSL,
    LABEL_VALUE_COMPONENT_CA_BUNDLE,
    LABEL_VALUE_MANAGED_BY,
    LABEL_VALUE_VELERO,
)


def bsl_labels(bsl_name: str, parent_name: str) -> dict[str, str]:
    """Labels carried by every BackupStorageLocation the operator writes."""
    return {
        LABEL_APP_NAME: LABEL_VALUE_BSL_APP,
        LABEL_APP_INSTANCE: bsl_name,
        LABEL_APP_MANAGED_BY: LABEL_VALUE_MANAGED_BY,
        LABEL_APP_COMPONENT: LABEL_VALUE_COMPONENT_BSL,
        LABEL_OPERATOR: "True",
        LABEL_REGISTRY: "True",
        LABEL_OWNER_NAME: parent_name,
    }


def ca_bundle_labels(parent_name: str) -> dict[str, str]:
    """Labels carried by the CA bundle ConfigMap."""
    return {
        LABEL_APP_NAME: LABEL_VALUE_VELERO,
        LABEL_APP_INSTANCE: parent_name,
        LABEL_APP_MANAGED_BY: LABEL_VALUE_MANAGED_BY,
        LABEL_APP_COMPONENT: LABEL_VALUE_COMPONENT_CA_BUNDLE,
        LABEL_OPERATOR: "True",
    }


def owned_bsl_selector(parent_name: str) -> str:
    """Label selector matching the BackupStorageLocations written for one parent."""
    return ",".join([
        f"{LABEL_APP_COMPONENT}={LABEL_VALUE_COMPONENT_BSL}",
        f"{LABEL_APP_MANAGED_BY}={LABEL_VALUE_MANAGED_BY}",
        f"{LABEL_OWNER_NAME}={parent_name}",
    ])


def owner_reference(parent: dict[str, Any]) -> dict[str, Any]:
    """Controller owner reference pointing at the parent resource."""
    meta = parent.get("metadata", {})
    return {
        "apiVersion": parent.get("apiVersion"),
        "kind": parent.get("kind"),
        "name": meta.get("name"),
        "uid": meta.get("uid"),
        "controller": True,
        "blockOwnerDeletion": True,
    }
