# CUI // SP-CTI
"""kms_module — Google Cloud KMS keyring module generator.

Validates keyring, crypto key and IAM binding inputs, evaluates them into
declared resources and outputs, and writes the Terraform that Terraform
itself plans and applies.

Usage:
    from kms_module import evaluate_module

    plan = evaluate_module({
        "project_id": "my-project",
        "keyring": {"location": "europe-west1", "name": "test"},
        "keys": {"key-a": None},
    })
    plan.outputs["key_ids"]["key-a"]
"""

from kms_module.core.module import evaluate_module  # noqa: F401
from kms_module.errors import (  # noqa: F401
    ConfigurationError,
    KeyringNotFoundError,
    KMSModuleError,
    RequiredFieldError,
    UnknownKeyError,
    VariableValidationError,
)
from kms_module.schemas.validation import load_variables, validate_variables  # noqa: F401

__version__ = "0.1.0"
