#!/usr/bin/env python3
# CUI // SP-CTI
"""KMS module — Structured Exception Hierarchy.

Every failure raised while evaluating or generating the module derives from
KMSModuleError. Validation failures carry the name of the offending input
so the CLI can point at it.

Usage:
    from kms_module.errors import RequiredFieldError

    raise RequiredFieldError("algorithm required", field="key_purpose.key-c")
"""


class KMSModuleError(Exception):
    """Base exception for all kms_module errors.

    Attributes:
        field: Dotted name of the input that caused the error (e.g. "keys.key-a").
    """

    def __init__(self, message: str, field: str = ""):
        super().__init__(message)
        self.field = field


class VariableValidationError(KMSModuleError):
    """Module input does not match its declared type or constraints."""


class RequiredFieldError(VariableValidationError):
    """A field that is only optional for the default key purpose is missing.

    Raised when a key has a non-default purpose and neither its override nor
    the module-wide default supplies a version template algorithm.
    """


class UnknownKeyError(VariableValidationError):
    """A key-level binding targets a key that is not declared in `keys`."""

    def __init__(self, message: str, field: str = "", key: str = ""):
        super().__init__(message, field=field)
        self.key = key


class KeyringNotFoundError(KMSModuleError):
    """Keyring creation is disabled and the referenced keyring does not exist."""

    def __init__(self, keyring_id: str):
        super().__init__(f"Keyring not found: {keyring_id}", field="keyring")
        self.keyring_id = keyring_id


class KeyringLookupError(KMSModuleError):
    """The keyring backend could not be queried (credentials, permissions, API)."""

    def __init__(self, keyring_id: str, reason: str):
        super().__init__(f"Keyring lookup failed for {keyring_id}: {reason}", field="keyring")
        self.keyring_id = keyring_id


class ConfigurationError(KMSModuleError):
    """Generator configuration error — missing or invalid configuration."""

    def __init__(self, message: str, config_key: str = ""):
        super().__init__(message, field=config_key)
        self.config_key = config_key
