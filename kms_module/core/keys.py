#!/usr/bin/env python3
# CUI // SP-CTI
"""Crypto key declaration.

One google_kms_crypto_key.default[<name>] per entry in `keys`. Purpose and
version template come from key_purpose[<name>], then key_purpose_defaults.
"""

import logging
from typing import Dict, List, Optional, Tuple

from kms_module.core.declarations import RESOURCE, Declaration
from kms_module.core.keyring import KeyringReference
from kms_module.errors import RequiredFieldError, VariableValidationError
from kms_module.schemas.variables import DEFAULT_PURPOSE, ModuleVariables, VersionTemplate

logger = logging.getLogger("kms_module.core.keys")

CRYPTO_KEY_TYPE = "google_kms_crypto_key"


def resolve_purpose(variables: ModuleVariables,
                    name: str) -> Tuple[str, Optional[VersionTemplate]]:
    """Return (purpose, version_template) for one key.

    Raises:
        RequiredFieldError: purpose is not ENCRYPT_DECRYPT and no algorithm is
            available from the override or the defaults.
    """
    override = variables.key_purpose.get(name)
    defaults = variables.key_purpose_defaults

    purpose = override.purpose if override is not None else None
    purpose = purpose or defaults.purpose or DEFAULT_PURPOSE

    # Field-level fallback: an override may set protection_level only
    sources = [override.version_template if override is not None else None,
               defaults.version_template]
    sources = [vt for vt in sources if vt is not None]
    template = None
    if sources:
        template = VersionTemplate(
            algorithm=next((vt.algorithm for vt in sources if vt.algorithm), None),
            protection_level=next(
                (vt.protection_level for vt in sources if vt.protection_level), None
            ),
        )

    if purpose != DEFAULT_PURPOSE and (template is None or not template.algorithm):
        raise RequiredFieldError(
            f"Key '{name}' has purpose {purpose} but no version_template.algorithm "
            "in key_purpose or key_purpose_defaults",
            field=f"key_purpose.{name}.version_template.algorithm",
        )
    return purpose, template


def declare_keys(variables: ModuleVariables,
                 keyring: KeyringReference) -> List[Declaration]:
    """Declare one crypto key resource per entry of variables.keys."""
    unused = sorted(set(variables.key_purpose) - set(variables.keys))
    if unused:
        logger.warning("key_purpose entries without a matching key are ignored: %s",
                       ", ".join(unused))

    declarations = []
    for name, attrs in variables.keys.items():
        purpose, template = resolve_purpose(variables, name)
        attributes: Dict = {
            "key_ring": keyring.id,
            "name": name,
            "purpose": purpose,
        }
        if attrs is not None and attrs.rotation_period is not None:
            if purpose != DEFAULT_PURPOSE:
                raise VariableValidationError(
                    f"Key '{name}' sets rotation_period but automatic rotation "
                    f"is only supported for {DEFAULT_PURPOSE} keys",
                    field=f"keys.{name}.rotation_period",
                )
            attributes["rotation_period"] = attrs.rotation_period
        if attrs is not None and attrs.labels is not None:
            attributes["labels"] = dict(attrs.labels)
        if template is not None:
            attributes["version_template"] = template.to_dict()
        attributes["id"] = f"{keyring.id}/cryptoKeys/{name}"

        declarations.append(Declaration(kind=RESOURCE, type=CRYPTO_KEY_TYPE,
                                        name="default", key=name, attributes=attributes))
    logger.debug("Declared %d crypto keys under %s", len(declarations), keyring.id)
    return declarations


def key_outputs(declarations: List[Declaration]) -> dict:
    return {
        "key_ids": {d.key: d.attributes["id"] for d in declarations},
        "keys": {d.key: dict(d.attributes) for d in declarations},
    }
