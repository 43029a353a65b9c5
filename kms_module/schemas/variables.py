#!/usr/bin/env python3
# CUI // SP-CTI
"""Module variable models.

Keyring descriptor, crypto key attributes, purpose overrides and IAM
records. The whole configuration surface is carried by ModuleVariables.
"""

from dataclasses import dataclass, field, asdict
from typing import Dict, List, Optional

DEFAULT_PURPOSE = "ENCRYPT_DECRYPT"


@dataclass
class KeyringDescriptor:
    """Location and name of a keyring."""

    location: str
    name: str

    def keyring_id(self, project_id: str) -> str:
        return f"projects/{project_id}/locations/{self.location}/keyRings/{self.name}"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "KeyringDescriptor":
        return cls(location=data["location"], name=data["name"])


@dataclass
class CryptoKeyAttributes:
    """Optional per-key attributes. None values use provider-side defaults."""

    rotation_period: Optional[str] = None
    labels: Optional[Dict[str, str]] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "CryptoKeyAttributes":
        data = data or {}
        labels = data.get("labels")
        return cls(
            rotation_period=data.get("rotation_period"),
            labels=dict(labels) if labels is not None else None,
        )


@dataclass
class VersionTemplate:
    algorithm: Optional[str] = None
    protection_level: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["VersionTemplate"]:
        if data is None:
            return None
        return cls(
            algorithm=data.get("algorithm"),
            protection_level=data.get("protection_level"),
        )


@dataclass
class KeyPurpose:
    """Purpose and version template override for one key (or the default)."""

    purpose: Optional[str] = None
    version_template: Optional[VersionTemplate] = None

    def to_dict(self) -> dict:
        result = {}
        if self.purpose is not None:
            result["purpose"] = self.purpose
        if self.version_template is not None:
            result["version_template"] = self.version_template.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "KeyPurpose":
        data = data or {}
        return cls(
            purpose=data.get("purpose"),
            version_template=VersionTemplate.from_dict(data.get("version_template")),
        )


@dataclass
class IamMember:
    """Single additive grant on the keyring."""

    member: str
    role: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class KeyIamMember:
    """Single additive grant on one crypto key."""

    key: str
    member: str
    role: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ModuleVariables:
    """Complete input surface of the KMS module."""

    project_id: str
    keyring: KeyringDescriptor
    keyring_create: bool = True
    keys: Dict[str, Optional[CryptoKeyAttributes]] = field(default_factory=dict)
    key_purpose: Dict[str, KeyPurpose] = field(default_factory=dict)
    key_purpose_defaults: KeyPurpose = field(default_factory=KeyPurpose)
    iam: Dict[str, List[str]] = field(default_factory=dict)
    iam_additive: Dict[str, List[str]] = field(default_factory=dict)
    key_iam: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    key_iam_additive: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    iam_members: Dict[str, IamMember] = field(default_factory=dict)
    key_iam_members: Dict[str, KeyIamMember] = field(default_factory=dict)
    tag_bindings: Optional[Dict[str, str]] = None

    @property
    def keyring_id(self) -> str:
        return self.keyring.keyring_id(self.project_id)

    def to_dict(self) -> dict:
        """Serialize to the variable layout consumed by the Terraform module."""
        return {
            "project_id": self.project_id,
            "keyring": self.keyring.to_dict(),
            "keyring_create": self.keyring_create,
            "keys": {
                name: (attrs.to_dict() if attrs is not None else None)
                for name, attrs in self.keys.items()
            },
            "key_purpose": {
                name: purpose.to_dict() for name, purpose in self.key_purpose.items()
            },
            "key_purpose_defaults": self.key_purpose_defaults.to_dict(),
            "iam": {role: list(members) for role, members in self.iam.items()},
            "iam_additive": {
                role: list(members) for role, members in self.iam_additive.items()
            },
            "key_iam": {
                key: {role: list(members) for role, members in roles.items()}
                for key, roles in self.key_iam.items()
            },
            "key_iam_additive": {
                key: {role: list(members) for role, members in roles.items()}
                for key, roles in self.key_iam_additive.items()
            },
            "iam_members": {k: v.to_dict() for k, v in self.iam_members.items()},
            "key_iam_members": {k: v.to_dict() for k, v in self.key_iam_members.items()},
            "tag_bindings": dict(self.tag_bindings) if self.tag_bindings is not None else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ModuleVariables":
        """Build from an already validated dict (see schemas.validation)."""
        keys = {}
        for name, attrs in (data.get("keys") or {}).items():
            keys[name] = CryptoKeyAttributes.from_dict(attrs) if attrs is not None else None
        tag_bindings = data.get("tag_bindings")
        return cls(
            project_id=data["project_id"],
            keyring=KeyringDescriptor.from_dict(data["keyring"]),
            keyring_create=data.get("keyring_create", True),
            keys=keys,
            key_purpose={
                name: KeyPurpose.from_dict(purpose)
                for name, purpose in (data.get("key_purpose") or {}).items()
            },
            key_purpose_defaults=KeyPurpose.from_dict(data.get("key_purpose_defaults")),
            iam={role: list(m) for role, m in (data.get("iam") or {}).items()},
            iam_additive={
                role: list(m) for role, m in (data.get("iam_additive") or {}).items()
            },
            key_iam={
                key: {role: list(m) for role, m in (roles or {}).items()}
                for key, roles in (data.get("key_iam") or {}).items()
            },
            key_iam_additive={
                key: {role: list(m) for role, m in (roles or {}).items()}
                for key, roles in (data.get("key_iam_additive") or {}).items()
            },
            iam_members={
                k: IamMember(member=v["member"], role=v["role"])
                for k, v in (data.get("iam_members") or {}).items()
            },
            key_iam_members={
                k: KeyIamMember(key=v["key"], member=v["member"], role=v["role"])
                for k, v in (data.get("key_iam_members") or {}).items()
            },
            tag_bindings=dict(tag_bindings) if tag_bindings is not None else None,
        )
