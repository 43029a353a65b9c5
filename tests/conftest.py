#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the kms_module test suite.

Variable documents used across evaluation, binding and generator tests.
"""

import copy
import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


# ---------------------------------------------------------------------------
# Variable documents
# ---------------------------------------------------------------------------
BASE_VARIABLES = {
    "project_id": "my-project",
    "keyring": {"location": "europe-west1", "name": "test"},
    "keys": {"key-a": None, "key-b": None, "key-c": None},
}


@pytest.fixture
def base_vars():
    """Three keys, new keyring, no bindings."""
    return copy.deepcopy(BASE_VARIABLES)


@pytest.fixture
def existing_keyring_vars(base_vars):
    """Same keys in an existing keyring."""
    base_vars["keyring_create"] = False
    return base_vars


@pytest.fixture
def signing_vars(base_vars):
    """key-c overridden to an asymmetric signing key."""
    base_vars["key_purpose"] = {
        "key-c": {
            "purpose": "ASYMMETRIC_SIGN",
            "version_template": {
                "algorithm": "EC_SIGN_P384_SHA384",
                "protection_level": None,
            },
        }
    }
    return base_vars


@pytest.fixture
def fixtures_dir():
    return FIXTURES_DIR
