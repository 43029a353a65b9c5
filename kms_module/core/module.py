#!/usr/bin/env python3
# CUI // SP-CTI
"""Module evaluation — variables in, ModulePlan out.

Single pass, no side effects: resolve the keyring, declare keys, assemble
IAM bindings and tag bindings, then compute the module outputs.
"""

import logging
from typing import List

from kms_module.core.bindings import assemble_bindings
from kms_module.core.declarations import RESOURCE, Declaration, ModulePlan
from kms_module.core.keyring import KeyringReference, keyring_outputs, resolve_keyring
from kms_module.core.keys import declare_keys, key_outputs
from kms_module.schemas.validation import validate_variables
from kms_module.schemas.variables import ModuleVariables

logger = logging.getLogger("kms_module.core.module")

TAG_BINDING_TYPE = "google_tags_tag_binding"


def declare_tag_bindings(variables: ModuleVariables,
                         keyring: KeyringReference) -> List[Declaration]:
    """One tag binding per tag_bindings entry, attached to the keyring."""
    declarations = []
    for name, tag_value in (variables.tag_bindings or {}).items():
        declarations.append(Declaration(
            kind=RESOURCE,
            type=TAG_BINDING_TYPE,
            name="default",
            key=name,
            attributes={
                "parent": f"//cloudkms.googleapis.com/{keyring.id}",
                "tag_value": tag_value,
            },
        ))
    return declarations


def evaluate_module(variables, lookup=None) -> ModulePlan:
    """Evaluate the KMS module.

    Args:
        variables: ModuleVariables, or a raw dict validated on the way in.
        lookup: Optional KeyringLookup verifying an existing keyring.

    Returns:
        ModulePlan with resources, data sources and outputs
        (id, key_ids, keyring, keys, location, name).
    """
    if not isinstance(variables, ModuleVariables):
        variables = validate_variables(variables)

    plan = ModulePlan()
    keyring, keyring_decl = resolve_keyring(variables, lookup=lookup)
    if keyring.created:
        plan.resources.append(keyring_decl)
    else:
        plan.data_sources.append(keyring_decl)

    keys = declare_keys(variables, keyring)
    plan.resources.extend(keys)
    outputs = key_outputs(keys)

    plan.resources.extend(assemble_bindings(variables, keyring, outputs["key_ids"]))
    plan.resources.extend(declare_tag_bindings(variables, keyring))

    plan.outputs = keyring_outputs(keyring, keyring_decl)
    plan.outputs.update(outputs)

    logger.info("Evaluated keyring %s: %d resources, %d data sources",
                keyring.id, len(plan.resources), len(plan.data_sources))
    return plan
