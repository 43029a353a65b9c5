#!/usr/bin/env python3
# CUI // SP-CTI
"""Variable models and validation for the KMS module."""

from kms_module.schemas.variables import (
    DEFAULT_PURPOSE,
    CryptoKeyAttributes,
    IamMember,
    KeyIamMember,
    KeyPurpose,
    KeyringDescriptor,
    ModuleVariables,
    VersionTemplate,
)
from kms_module.schemas.validation import load_variables, validate_variables

__all__ = [
    "DEFAULT_PURPOSE",
    "CryptoKeyAttributes",
    "IamMember",
    "KeyIamMember",
    "KeyPurpose",
    "KeyringDescriptor",
    "ModuleVariables",
    "VersionTemplate",
    "load_variables",
    "validate_variables",
]
