#!/usr/bin/env python3
# CUI // SP-CTI
"""Keyring lookup — verify that an existing keyring is present.

ABC + 2 implementations: YAML inventory (offline) and GCP Cloud KMS.
Used when keyring_create is false to fail before Terraform runs.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from google.api_core import exceptions as gcp_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import kms

from kms_module.errors import ConfigurationError, KeyringLookupError, KeyringNotFoundError

logger = logging.getLogger("kms_module.cloud.keyring_lookup")


def _keyring_id(project: str, location: str, name: str) -> str:
    return f"projects/{project}/locations/{location}/keyRings/{name}"


class KeyringLookup(ABC):
    """Abstract base class for existing-keyring queries."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return backend identifier."""

    @abstractmethod
    def get_keyring(self, project: str, location: str, name: str) -> Dict:
        """Return {id, project, location, name} or raise KeyringNotFoundError."""


# ============================================================
# Inventory (YAML)
# ============================================================
class InventoryKeyringLookup(KeyringLookup):
    """Keyrings listed in a YAML inventory document.

    Format:
        keyrings:
          - project: my-project
            location: europe-west1
            name: test
    """

    def __init__(self, keyrings: Optional[List[Dict]] = None):
        self._index: Dict[str, Dict] = {}
        for entry in keyrings or []:
            try:
                keyring_id = _keyring_id(entry["project"], entry["location"], entry["name"])
            except (KeyError, TypeError) as exc:
                raise ConfigurationError(
                    f"Inventory keyring entry is missing {exc}", config_key="keyrings"
                ) from exc
            self._index[keyring_id] = {
                "id": keyring_id,
                "project": entry["project"],
                "location": entry["location"],
                "name": entry["name"],
            }

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "InventoryKeyringLookup":
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Inventory file not found: {path}",
                                     config_key="lookup.inventory_path")
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(f"Cannot parse inventory {path}: {exc}",
                                         config_key="lookup.inventory_path") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Inventory {path} must be a mapping with a 'keyrings' list",
                                     config_key="keyrings")
        keyrings = data.get("keyrings") or []
        if not isinstance(keyrings, list):
            raise ConfigurationError(f"Inventory {path}: 'keyrings' must be a list",
                                     config_key="keyrings")
        logger.debug("Loaded keyring inventory from %s", path)
        return cls(keyrings)

    @property
    def backend_name(self) -> str:
        return "inventory"

    def get_keyring(self, project: str, location: str, name: str) -> Dict:
        keyring_id = _keyring_id(project, location, name)
        found = self._index.get(keyring_id)
        if found is None:
            raise KeyringNotFoundError(keyring_id)
        return dict(found)


# ============================================================
# GCP Cloud KMS
# ============================================================
class GCPKeyringLookup(KeyringLookup):
    """Google Cloud KMS keyring lookup via KeyManagementServiceClient."""

    def __init__(self, client=None):
        self._client = client

    @property
    def backend_name(self) -> str:
        return "gcp_cloud_kms"

    def _get_client(self):
        if self._client is None:
            self._client = kms.KeyManagementServiceClient()
        return self._client

    def get_keyring(self, project: str, location: str, name: str) -> Dict:
        keyring_id = _keyring_id(project, location, name)
        try:
            key_ring = self._get_client().get_key_ring(request={"name": keyring_id})
        except gcp_exceptions.NotFound as exc:
            raise KeyringNotFoundError(keyring_id) from exc
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError,
                auth_exceptions.DefaultCredentialsError) as exc:
            logger.error("Cloud KMS lookup of %s failed: %s", keyring_id, exc)
            raise KeyringLookupError(keyring_id, str(exc)) from exc
        return {
            "id": key_ring.name,
            "project": project,
            "location": location,
            "name": name,
        }


def get_lookup(backend: str, inventory_path: str = "") -> Optional[KeyringLookup]:
    """Build the lookup configured by lookup.backend (none, inventory, gcp)."""
    if backend in ("", "none", None):
        return None
    if backend == "inventory":
        if not inventory_path:
            raise ConfigurationError("lookup.inventory_path is required for inventory lookup",
                                     config_key="lookup.inventory_path")
        return InventoryKeyringLookup.from_file(inventory_path)
    if backend == "gcp":
        return GCPKeyringLookup()
    raise ConfigurationError(f"Unknown lookup backend: {backend}", config_key="lookup.backend")
