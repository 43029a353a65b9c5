#!/usr/bin/env python3
# CUI // SP-CTI
"""IAM binding assembly for the keyring and its crypto keys.

Three binding modes, each at keyring and key granularity:

    authoritative  iam / key_iam                 role -> members, replaces the role
    additive       iam_additive / key_iam_additive  role -> members, one grant per member
    individual     iam_members / key_iam_members    caller key -> {member, role}

Sources are applied additive first, individual next, authoritative last.
When a (target, role) pair has an authoritative binding, additive and
individual grants for that pair are dropped so the role's member set is
exactly the authoritative list.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from kms_module.core.declarations import RESOURCE, Declaration
from kms_module.core.keyring import KeyringReference
from kms_module.errors import UnknownKeyError
from kms_module.schemas.variables import ModuleVariables

logger = logging.getLogger("kms_module.core.bindings")

KEYRING_BINDING_TYPE = "google_kms_key_ring_iam_binding"
KEYRING_MEMBER_TYPE = "google_kms_key_ring_iam_member"
KEY_BINDING_TYPE = "google_kms_crypto_key_iam_binding"
KEY_MEMBER_TYPE = "google_kms_crypto_key_iam_member"

# Target of the keyring-level bindings in grant triples
KEYRING_TARGET = ""

Grant = Tuple[str, str, str]  # (target, role, member)


def _unique(members: Iterable[str]) -> List[str]:
    return sorted(set(members))


# ---------------------------------------------------------------------------
# Merge functions
# ---------------------------------------------------------------------------
def authoritative_roles(variables: ModuleVariables) -> Set[Tuple[str, str]]:
    """(target, role) pairs owned by an authoritative binding."""
    pairs = {(KEYRING_TARGET, role) for role in variables.iam}
    for key, roles in variables.key_iam.items():
        pairs.update((key, role) for role in roles)
    return pairs


def additive_grants(variables: ModuleVariables) -> Dict[str, Grant]:
    """Flatten additive maps into grants keyed like the Terraform for_each keys."""
    grants: Dict[str, Grant] = {}
    for role, members in variables.iam_additive.items():
        for member in members:
            grants[f"{role}-{member}"] = (KEYRING_TARGET, role, member)
    for key, roles in variables.key_iam_additive.items():
        for role, members in roles.items():
            for member in members:
                grants[f"{key}-{role}-{member}"] = (key, role, member)
    return grants


def individual_grants(variables: ModuleVariables) -> Dict[str, Grant]:
    """Individual records as grants, keyed by the caller-chosen record key.

    Records are visited in record key order, as Terraform iterates maps, so
    among records repeating one grant the lexically first key is kept.
    """
    grants: Dict[str, Grant] = {}
    for record_key in sorted(variables.iam_members):
        record = variables.iam_members[record_key]
        grants[f"keyring:{record_key}"] = (KEYRING_TARGET, record.role, record.member)
    for record_key in sorted(variables.key_iam_members):
        record = variables.key_iam_members[record_key]
        grants[f"key:{record_key}"] = (record.key, record.role, record.member)
    return grants


def effective_policy(variables: ModuleVariables) -> Dict[str, Dict[str, Set[str]]]:
    """Member set per role per target after all three modes are applied.

    The keyring is reported under the "" target, keys under their name.
    """
    policy: Dict[str, Dict[str, Set[str]]] = {}

    def _add(target: str, role: str, member: str) -> None:
        policy.setdefault(target, {}).setdefault(role, set()).add(member)

    for target, role, member in additive_grants(variables).values():
        _add(target, role, member)
    for target, role, member in individual_grants(variables).values():
        _add(target, role, member)

    # Authoritative last: replaces whatever the other sources put on the role
    for role, members in variables.iam.items():
        policy.setdefault(KEYRING_TARGET, {})[role] = set(members)
    for key, roles in variables.key_iam.items():
        for role, members in roles.items():
            policy.setdefault(key, {})[role] = set(members)
    return policy


# ---------------------------------------------------------------------------
# Declarations
# ---------------------------------------------------------------------------
def _check_keys_exist(variables: ModuleVariables) -> None:
    declared = set(variables.keys)
    for var in ("key_iam", "key_iam_additive"):
        for key in getattr(variables, var):
            if key not in declared:
                raise UnknownKeyError(f"{var} references undeclared key '{key}'",
                                      field=f"{var}.{key}", key=key)
    for record_key, record in variables.key_iam_members.items():
        if record.key not in declared:
            raise UnknownKeyError(
                f"key_iam_members.{record_key} references undeclared key '{record.key}'",
                field=f"key_iam_members.{record_key}", key=record.key,
            )


def _target_attributes(target: str, keyring: KeyringReference,
                       key_ids: Dict[str, str]) -> Dict[str, str]:
    if target == KEYRING_TARGET:
        return {"key_ring_id": keyring.id}
    return {"crypto_key_id": key_ids[target]}


def _member_type(target: str) -> str:
    return KEYRING_MEMBER_TYPE if target == KEYRING_TARGET else KEY_MEMBER_TYPE


def _describe(target: str) -> str:
    return "keyring" if target == KEYRING_TARGET else f"key '{target}'"


def assemble_bindings(variables: ModuleVariables, keyring: KeyringReference,
                      key_ids: Optional[Dict[str, str]] = None) -> List[Declaration]:
    """Build the IAM binding and member declarations.

    Args:
        variables: Validated module variables.
        keyring: Resolved keyring reference.
        key_ids: Key name -> crypto key id, as produced by declare_keys.

    Returns:
        Declarations in a stable order: keyring authoritative, keyring
        additive, keyring individual, then the same three for keys.

    Raises:
        UnknownKeyError: a key-level binding targets an undeclared key.
    """
    _check_keys_exist(variables)
    if key_ids is None:
        key_ids = {name: f"{keyring.id}/cryptoKeys/{name}" for name in variables.keys}
    owned = authoritative_roles(variables)

    keyring_decls: List[Declaration] = []
    key_decls: List[Declaration] = []

    def _out(target: str) -> List[Declaration]:
        return keyring_decls if target == KEYRING_TARGET else key_decls

    for role, members in variables.iam.items():
        attributes = _target_attributes(KEYRING_TARGET, keyring, key_ids)
        attributes.update({"role": role, "members": _unique(members)})
        keyring_decls.append(Declaration(kind=RESOURCE, type=KEYRING_BINDING_TYPE,
                                         name="authoritative", key=role,
                                         attributes=attributes))
    for key, roles in variables.key_iam.items():
        for role, members in roles.items():
            attributes = _target_attributes(key, keyring, key_ids)
            attributes.update({"role": role, "members": _unique(members)})
            key_decls.append(Declaration(kind=RESOURCE, type=KEY_BINDING_TYPE,
                                         name="authoritative", key=f"{key}.{role}",
                                         attributes=attributes))

    seen: Set[Grant] = set()
    for label, grants in (("additive", additive_grants(variables)),
                          ("members", individual_grants(variables))):
        for grant_key, (target, role, member) in grants.items():
            if (target, role) in owned:
                logger.warning(
                    "Dropping %s grant of %s to %s on %s: role is bound authoritatively",
                    label, role, member, _describe(target),
                )
                continue
            if (target, role, member) in seen:
                logger.debug("Skipping duplicate grant of %s to %s on %s",
                             role, member, _describe(target))
                continue
            seen.add((target, role, member))

            # Strip the keyring:/key: namespace used to keep the two maps apart
            if label == "members":
                grant_key = grant_key.split(":", 1)[1]
            attributes = _target_attributes(target, keyring, key_ids)
            attributes.update({"role": role, "member": member})
            _out(target).append(Declaration(kind=RESOURCE, type=_member_type(target),
                                            name=label, key=grant_key,
                                            attributes=attributes))

    keyring_decls.sort(key=_order)
    key_decls.sort(key=_order)
    logger.debug("Assembled %d keyring and %d key IAM declarations",
                 len(keyring_decls), len(key_decls))
    return keyring_decls + key_decls


_NAME_ORDER = {"authoritative": 0, "additive": 1, "members": 2}


def _order(decl: Declaration):
    return _NAME_ORDER[decl.name]
