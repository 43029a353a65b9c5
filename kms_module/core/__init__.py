# CUI // SP-CTI
"""Evaluation of the KMS module: keyring, keys, bindings."""

from kms_module.core.declarations import Declaration, ModulePlan  # noqa: F401
from kms_module.core.keyring import KeyringReference, resolve_keyring  # noqa: F401
from kms_module.core.keys import declare_keys, resolve_purpose  # noqa: F401
from kms_module.core.bindings import assemble_bindings, effective_policy  # noqa: F401
from kms_module.core.module import evaluate_module  # noqa: F401
