#!/usr/bin/env python3
# CUI // SP-CTI
"""Keyring resolution: declare a new keyring or reference an existing one.

Exactly one of google_kms_key_ring.default[0] (create) or
data.google_kms_key_ring.default[0] (lookup) is declared. Both paths hand
the same KeyringReference to key declaration and binding assembly.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from kms_module.core.declarations import DATA, RESOURCE, Declaration
from kms_module.schemas.variables import ModuleVariables

logger = logging.getLogger("kms_module.core.keyring")

KEYRING_TYPE = "google_kms_key_ring"


@dataclass
class KeyringReference:
    """Identifying attributes of the resolved keyring."""

    project: str
    location: str
    name: str
    created: bool
    address: str

    @property
    def id(self) -> str:
        return f"projects/{self.project}/locations/{self.location}/keyRings/{self.name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project": self.project,
            "location": self.location,
            "name": self.name,
        }


def resolve_keyring(variables: ModuleVariables,
                    lookup=None) -> Tuple[KeyringReference, Declaration]:
    """Resolve the keyring and return its reference and declaration.

    Args:
        variables: Validated module variables.
        lookup: Optional KeyringLookup used to verify an existing keyring when
            keyring_create is false. Without it the check is left to the
            data source read at plan time.

    Returns:
        (KeyringReference, Declaration) where the declaration is a resource
        when creating and a data source otherwise.

    Raises:
        KeyringNotFoundError: lookup given and the keyring does not exist.
    """
    project = variables.project_id
    location = variables.keyring.location
    name = variables.keyring.name
    attributes = {"project": project, "location": location, "name": name}

    if variables.keyring_create:
        decl = Declaration(kind=RESOURCE, type=KEYRING_TYPE, name="default",
                           key=0, attributes=attributes)
        logger.debug("Declaring new keyring %s/%s", location, name)
    else:
        if lookup is not None:
            found = lookup.get_keyring(project, location, name)
            # Trust the descriptor for identity, the lookup only proves existence
            logger.info("Using existing keyring %s", found.get("id", name))
        decl = Declaration(kind=DATA, type=KEYRING_TYPE, name="default",
                           key=0, attributes=attributes)
        logger.debug("Referencing existing keyring %s/%s", location, name)

    ref = KeyringReference(
        project=project,
        location=location,
        name=name,
        created=variables.keyring_create,
        address=decl.address,
    )
    decl.attributes["id"] = ref.id
    return ref, decl


def keyring_outputs(ref: KeyringReference, decl: Optional[Declaration] = None) -> dict:
    """Outputs describing the keyring, regardless of how it was resolved."""
    raw = dict(decl.attributes) if decl is not None else ref.to_dict()
    return {
        "id": ref.id,
        "keyring": raw,
        "location": ref.location,
        "name": ref.name,
    }
