# CUI // SP-CTI
"""Cloud-side queries used during evaluation (existing keyring lookup)."""

from kms_module.cloud.keyring_lookup import (  # noqa: F401
    GCPKeyringLookup,
    InventoryKeyringLookup,
    KeyringLookup,
    get_lookup,
)
