#!/usr/bin/env python3
# CUI // SP-CTI
"""Variable validation for the KMS module.

Raw variable documents (parsed YAML/JSON or plain dicts) are checked against
pydantic input models mirroring the module's declared variable types, then
converted to ModuleVariables. Role and member strings are passed through
untouched; the provider API validates them at apply time.
"""

import json
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, StrictBool, ValidationError, field_validator

from kms_module.errors import VariableValidationError
from kms_module.schemas.variables import ModuleVariables

logger = logging.getLogger("kms_module.schemas.validation")

# Duration in seconds with up to nine fractional digits, e.g. "100000s"
ROTATION_PERIOD_RE = re.compile(r"^[0-9]+(\.[0-9]{1,9})?s$")
MIN_ROTATION_SECONDS = 86400


class Purpose(str, Enum):
    ENCRYPT_DECRYPT = "ENCRYPT_DECRYPT"
    ASYMMETRIC_SIGN = "ASYMMETRIC_SIGN"
    ASYMMETRIC_DECRYPT = "ASYMMETRIC_DECRYPT"
    MAC = "MAC"
    RAW_ENCRYPT_DECRYPT = "RAW_ENCRYPT_DECRYPT"


class ProtectionLevel(str, Enum):
    SOFTWARE = "SOFTWARE"
    HSM = "HSM"
    EXTERNAL = "EXTERNAL"
    EXTERNAL_VPC = "EXTERNAL_VPC"


KEY_PURPOSES = tuple(p.value for p in Purpose)
PROTECTION_LEVELS = tuple(p.value for p in ProtectionLevel)


# ---- Input Models ----

class _Input(BaseModel):
    model_config = ConfigDict(extra="forbid")


class KeyringInput(_Input):
    location: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)


class CryptoKeyInput(_Input):
    rotation_period: Optional[str] = None
    labels: Optional[Dict[str, str]] = None

    @field_validator("rotation_period")
    @classmethod
    def _rotation_period(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not ROTATION_PERIOD_RE.match(value):
            raise ValueError(f"must be a duration in seconds ending with 's', got {value!r}")
        if float(value[:-1]) < MIN_ROTATION_SECONDS:
            raise ValueError(f"must be at least {MIN_ROTATION_SECONDS}s (one day)")
        return value


class VersionTemplateInput(_Input):
    algorithm: Optional[str] = Field(None, min_length=1)
    protection_level: Optional[ProtectionLevel] = None


class KeyPurposeInput(_Input):
    purpose: Optional[Purpose] = None
    version_template: Optional[VersionTemplateInput] = None


class IamMemberInput(_Input):
    member: str = Field(..., min_length=1)
    role: str = Field(..., min_length=1)


class KeyIamMemberInput(IamMemberInput):
    key: str = Field(..., min_length=1)


class VariablesInput(_Input):
    project_id: str = Field(..., min_length=1)
    keyring: KeyringInput
    keyring_create: StrictBool = True
    keys: Dict[str, Optional[CryptoKeyInput]] = Field(default_factory=dict)
    key_purpose: Dict[str, KeyPurposeInput] = Field(default_factory=dict)
    key_purpose_defaults: KeyPurposeInput = Field(default_factory=KeyPurposeInput)
    iam: Dict[str, List[str]] = Field(default_factory=dict)
    iam_additive: Dict[str, List[str]] = Field(default_factory=dict)
    key_iam: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    key_iam_additive: Dict[str, Dict[str, List[str]]] = Field(default_factory=dict)
    iam_members: Dict[str, IamMemberInput] = Field(default_factory=dict)
    key_iam_members: Dict[str, KeyIamMemberInput] = Field(default_factory=dict)
    tag_bindings: Optional[Dict[str, str]] = None


# Optional maps accept an explicit null, as Terraform's nullable = false does
_NULL_AS_EMPTY = ("keys", "key_purpose", "key_purpose_defaults", "iam", "iam_additive",
                  "key_iam", "key_iam_additive", "iam_members", "key_iam_members")


def _to_validation_error(exc: ValidationError) -> VariableValidationError:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error["loc"])
    return VariableValidationError(f"{field or 'variables'}: {error['msg']}", field=field)


def validate_variables(data: Any) -> ModuleVariables:
    """Validate a raw variables document and build ModuleVariables.

    Args:
        data: Dict with the module variables (see VariablesInput).

    Returns:
        ModuleVariables instance.

    Raises:
        VariableValidationError: On the first constraint violation found.
    """
    if not isinstance(data, dict):
        raise VariableValidationError(
            f"Expected a map of variables, got {type(data).__name__}"
        )
    data = {k: v for k, v in data.items() if not (k in _NULL_AS_EMPTY and v is None)}
    try:
        model = VariablesInput.model_validate(data)
    except ValidationError as exc:
        raise _to_validation_error(exc) from exc
    return ModuleVariables.from_dict(model.model_dump(mode="json"))


def _parse(path: Path, f) -> Any:
    if path.suffix.lower() == ".json":
        try:
            return json.load(f)
        except json.JSONDecodeError as exc:
            raise VariableValidationError(f"Cannot parse {path}: {exc}") from exc
    try:
        return yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise VariableValidationError(f"Cannot parse {path}: {exc}") from exc


def load_variables(path: Union[str, Path], overrides: Optional[dict] = None) -> ModuleVariables:
    """Load a YAML or JSON variables file and validate it.

    Args:
        path: Path to the variables document. Files ending in .json are read
            as JSON, anything else as YAML.
        overrides: Optional top-level values applied over the file contents.
    """
    path = Path(path)
    if not path.exists():
        raise VariableValidationError(f"Variables file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = _parse(path, f)
    if data is None:
        data = {}
    if overrides and isinstance(data, dict):
        data.update(overrides)
    logger.debug("Loaded variables from %s", path)
    return validate_variables(data)
