#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for kms_module.core.bindings — authoritative, additive and
individual IAM bindings on the keyring and its keys."""

import logging

import pytest

from kms_module.core.bindings import (
    additive_grants,
    assemble_bindings,
    effective_policy,
    individual_grants,
)
from kms_module.core.keyring import resolve_keyring
from kms_module.errors import UnknownKeyError
from kms_module.schemas.validation import validate_variables

ADMIN = "roles/cloudkms.admin"
VIEWER = "roles/cloudkms.viewer"
ENCRYPTER = "roles/cloudkms.cryptoKeyEncrypterDecrypter"
KEYRING_ID = "projects/my-project/locations/europe-west1/keyRings/test"


def _assemble(raw):
    variables = validate_variables(raw)
    keyring, _ = resolve_keyring(variables)
    return assemble_bindings(variables, keyring)


def _by_type(decls, resource_type):
    return [d for d in decls if d.type == resource_type]


# ---------------------------------------------------------------------------
# TestAuthoritative
# ---------------------------------------------------------------------------
class TestAuthoritative:
    def test_keyring_binding(self, base_vars):
        base_vars["iam"] = {ADMIN: ["user:b@example.com", "user:a@example.com"]}
        decls = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_binding")
        assert len(decls) == 1
        assert decls[0].address == f'google_kms_key_ring_iam_binding.authoritative["{ADMIN}"]'
        assert decls[0].attributes == {
            "key_ring_id": KEYRING_ID,
            "role": ADMIN,
            "members": ["user:a@example.com", "user:b@example.com"],
        }

    def test_members_deduplicated(self, base_vars):
        base_vars["iam"] = {ADMIN: ["user:a@example.com", "user:a@example.com"]}
        decl = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_binding")[0]
        assert decl.attributes["members"] == ["user:a@example.com"]

    def test_key_binding(self, base_vars):
        base_vars["key_iam"] = {"key-a": {ENCRYPTER: ["serviceAccount:app@p.iam.gserviceaccount.com"]}}
        decls = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_binding")
        assert len(decls) == 1
        assert decls[0].key == f"key-a.{ENCRYPTER}"
        assert decls[0].attributes["crypto_key_id"] == f"{KEYRING_ID}/cryptoKeys/key-a"

    def test_empty_member_list_kept(self, base_vars):
        base_vars["iam"] = {ADMIN: []}
        decl = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_binding")[0]
        assert decl.attributes["members"] == []


# ---------------------------------------------------------------------------
# TestAdditive
# ---------------------------------------------------------------------------
class TestAdditive:
    def test_keyring_additive_flattened(self, base_vars):
        base_vars["iam_additive"] = {VIEWER: ["group:a@example.com", "group:b@example.com"]}
        decls = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_member")
        assert [d.key for d in decls] == [
            f"{VIEWER}-group:a@example.com",
            f"{VIEWER}-group:b@example.com",
        ]
        assert all(d.name == "additive" for d in decls)

    def test_key_additive_flattened(self, base_vars):
        base_vars["key_iam_additive"] = {
            "key-a": {ENCRYPTER: ["user:a@example.com"]},
            "key-b": {ENCRYPTER: ["user:a@example.com"]},
        }
        decls = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_member")
        assert [d.key for d in decls] == [
            f"key-a-{ENCRYPTER}-user:a@example.com",
            f"key-b-{ENCRYPTER}-user:a@example.com",
        ]

    def test_repeated_additive_member_granted_once(self, base_vars):
        base_vars["iam_additive"] = {VIEWER: ["group:a@example.com", "group:a@example.com"]}
        base_vars["key_iam_additive"] = {"key-a": {ENCRYPTER: ["user:a@example.com"] * 2}}
        decls = _assemble(base_vars)
        assert [d.key for d in decls] == [
            f"{VIEWER}-group:a@example.com",
            f"key-a-{ENCRYPTER}-user:a@example.com",
        ]

    def test_additive_grants_helper(self, base_vars):
        base_vars["iam_additive"] = {VIEWER: ["group:a@example.com"]}
        grants = additive_grants(validate_variables(base_vars))
        assert grants == {f"{VIEWER}-group:a@example.com": ("", VIEWER, "group:a@example.com")}


# ---------------------------------------------------------------------------
# TestIndividual
# ---------------------------------------------------------------------------
class TestIndividual:
    def test_keyring_members_keyed_by_caller_key(self, base_vars):
        base_vars["iam_members"] = {
            "ops": {"member": "group:ops@example.com", "role": VIEWER},
        }
        decls = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_member")
        assert len(decls) == 1
        assert decls[0].address == 'google_kms_key_ring_iam_member.members["ops"]'
        assert decls[0].attributes["member"] == "group:ops@example.com"

    def test_key_members(self, base_vars):
        base_vars["key_iam_members"] = {
            "signer": {"key": "key-c", "member": "user:a@example.com", "role": ENCRYPTER},
        }
        decls = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_member")
        assert decls[0].address == 'google_kms_crypto_key_iam_member.members["signer"]'
        assert decls[0].attributes["crypto_key_id"].endswith("/cryptoKeys/key-c")

    def test_same_record_key_in_both_maps(self, base_vars):
        base_vars["iam_members"] = {"x": {"member": "user:a@example.com", "role": VIEWER}}
        base_vars["key_iam_members"] = {
            "x": {"key": "key-a", "member": "user:a@example.com", "role": VIEWER}
        }
        decls = _assemble(base_vars)
        assert len(decls) == 2
        assert {d.type for d in decls} == {
            "google_kms_key_ring_iam_member", "google_kms_crypto_key_iam_member",
        }

    def test_duplicate_of_additive_dropped(self, base_vars):
        base_vars["iam_additive"] = {VIEWER: ["user:a@example.com"]}
        base_vars["iam_members"] = {"dup": {"member": "user:a@example.com", "role": VIEWER}}
        decls = _assemble(base_vars)
        assert [d.name for d in decls] == ["additive"]

    def test_repeated_record_keeps_first_key(self, base_vars):
        base_vars["iam_members"] = {
            "two": {"member": "user:a@example.com", "role": VIEWER},
            "one": {"member": "user:a@example.com", "role": VIEWER},
        }
        decls = _by_type(_assemble(base_vars), "google_kms_key_ring_iam_member")
        assert [d.address for d in decls] == ['google_kms_key_ring_iam_member.members["one"]']

    def test_repeated_key_record_keeps_first_key(self, base_vars):
        record = {"key": "key-a", "member": "user:a@example.com", "role": ENCRYPTER}
        base_vars["key_iam_members"] = {"b": dict(record), "a": dict(record)}
        decls = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_member")
        assert [d.key for d in decls] == ["a"]

    def test_individual_grants_helper(self, base_vars):
        base_vars["iam_members"] = {"ops": {"member": "group:ops@example.com", "role": VIEWER}}
        grants = individual_grants(validate_variables(base_vars))
        assert list(grants.values()) == [("", VIEWER, "group:ops@example.com")]


# ---------------------------------------------------------------------------
# TestPrecedence
# ---------------------------------------------------------------------------
class TestPrecedence:
    """Authoritative bindings own their role on their target."""

    def test_authoritative_wins_over_additive(self, base_vars, caplog):
        base_vars["iam"] = {ADMIN: ["user:a@example.com"]}
        base_vars["iam_additive"] = {ADMIN: ["user:b@example.com"],
                                     VIEWER: ["user:c@example.com"]}
        base_vars["iam_members"] = {"x": {"member": "user:d@example.com", "role": ADMIN}}
        with caplog.at_level(logging.WARNING, logger="kms_module.core.bindings"):
            decls = _assemble(base_vars)

        binding = _by_type(decls, "google_kms_key_ring_iam_binding")[0]
        assert binding.attributes["members"] == ["user:a@example.com"]
        members = _by_type(decls, "google_kms_key_ring_iam_member")
        assert [(d.attributes["role"], d.attributes["member"]) for d in members] == [
            (VIEWER, "user:c@example.com")
        ]
        assert "bound authoritatively" in caplog.text

    def test_key_authoritative_only_affects_its_key(self, base_vars):
        base_vars["key_iam"] = {"key-a": {ENCRYPTER: ["user:a@example.com"]}}
        base_vars["key_iam_additive"] = {
            "key-a": {ENCRYPTER: ["user:b@example.com"]},
            "key-b": {ENCRYPTER: ["user:b@example.com"]},
        }
        members = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_member")
        assert [d.key for d in members] == [f"key-b-{ENCRYPTER}-user:b@example.com"]

    def test_keyring_authoritative_does_not_touch_keys(self, base_vars):
        base_vars["iam"] = {ENCRYPTER: ["user:a@example.com"]}
        base_vars["key_iam_additive"] = {"key-a": {ENCRYPTER: ["user:b@example.com"]}}
        members = _by_type(_assemble(base_vars), "google_kms_crypto_key_iam_member")
        assert len(members) == 1

    def test_effective_policy(self, base_vars):
        base_vars["iam"] = {ADMIN: ["user:a@example.com"]}
        base_vars["iam_additive"] = {ADMIN: ["user:b@example.com"],
                                     VIEWER: ["user:c@example.com"]}
        base_vars["key_iam_members"] = {
            "x": {"key": "key-a", "member": "user:d@example.com", "role": ENCRYPTER},
        }
        policy = effective_policy(validate_variables(base_vars))
        assert policy[""][ADMIN] == {"user:a@example.com"}
        assert policy[""][VIEWER] == {"user:c@example.com"}
        assert policy["key-a"][ENCRYPTER] == {"user:d@example.com"}

    def test_ordering(self, base_vars):
        base_vars["iam_members"] = {"x": {"member": "user:d@example.com", "role": VIEWER}}
        base_vars["iam_additive"] = {ENCRYPTER: ["user:b@example.com"]}
        base_vars["iam"] = {ADMIN: ["user:a@example.com"]}
        base_vars["key_iam"] = {"key-a": {ADMIN: ["user:a@example.com"]}}
        names = [(d.type, d.name) for d in _assemble(base_vars)]
        assert names == [
            ("google_kms_key_ring_iam_binding", "authoritative"),
            ("google_kms_key_ring_iam_member", "additive"),
            ("google_kms_key_ring_iam_member", "members"),
            ("google_kms_crypto_key_iam_binding", "authoritative"),
        ]


# ---------------------------------------------------------------------------
# TestUnknownKeys
# ---------------------------------------------------------------------------
class TestUnknownKeys:
    @pytest.mark.parametrize("var", ["key_iam", "key_iam_additive"])
    def test_unknown_key_in_role_maps(self, base_vars, var):
        base_vars[var] = {"key-z": {ENCRYPTER: ["user:a@example.com"]}}
        with pytest.raises(UnknownKeyError) as exc_info:
            _assemble(base_vars)
        assert exc_info.value.key == "key-z"

    def test_unknown_key_in_members(self, base_vars):
        base_vars["key_iam_members"] = {
            "x": {"key": "key-z", "member": "user:a@example.com", "role": ENCRYPTER},
        }
        with pytest.raises(UnknownKeyError):
            _assemble(base_vars)
