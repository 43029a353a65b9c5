#!/usr/bin/env python3
# CUI // SP-CTI
"""Generate Terraform for a Google Cloud KMS keyring module.

Produces the reusable module (versions.tf, variables.tf, main.tf, outputs.tf)
and a root instance (main.tf.json, terraform.tfvars.json) that calls it with
validated variables. Terraform itself plans and applies the result."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from jinja2 import Environment, StrictUndefined

from kms_module.config import load_config
from kms_module.core.module import evaluate_module
from kms_module.schemas.validation import (
    KEY_PURPOSES,
    MIN_ROTATION_SECONDS,
    PROTECTION_LEVELS,
    validate_variables,
)
from kms_module.schemas.variables import ModuleVariables

logger = logging.getLogger("kms_module.infra.terraform_generator")

GENERATED_HEADER = """\
# Generated: {timestamp}
# Generator: kms_module Terraform Generator
# Regenerate instead of editing by hand.
"""

_ENV = Environment(keep_trailing_newline=True, undefined=StrictUndefined)


def _render(template_str: str, ctx: dict) -> str:
    return _ENV.from_string(template_str).render(**ctx)


def _header(config: Dict) -> str:
    if not config["output"]["header"]:
        return ""
    return GENERATED_HEADER.format(timestamp=datetime.now(timezone.utc).isoformat())


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def _hcl_list(values) -> str:
    return "[" + ", ".join(f'"{v}"' for v in values) + "]"


# ---------------------------------------------------------------------------
# Module templates
# ---------------------------------------------------------------------------
VERSIONS_TF = """\
{{ header }}
terraform {
  required_version = "{{ required_version }}"

  required_providers {
    google = {
      source  = "{{ provider_source }}"
      version = "{{ provider_version }}"
    }
  }
}
"""

VARIABLES_TF = r"""{{ header }}
variable "iam" {
  description = "Keyring IAM bindings in {ROLE => [MEMBERS]} format. Authoritative for each listed role."
  type        = map(list(string))
  default     = {}
  nullable    = false
}

variable "iam_additive" {
  description = "Keyring IAM additive bindings in {ROLE => [MEMBERS]} format."
  type        = map(list(string))
  default     = {}
  nullable    = false
}

variable "iam_members" {
  description = "Individual additive keyring IAM grants. Map keys are arbitrary and only used to enumerate grants."
  type = map(object({
    member = string
    role   = string
  }))
  default  = {}
  nullable = false
}

variable "key_iam" {
  description = "Key IAM bindings in {KEY => {ROLE => [MEMBERS]}} format. Authoritative for each listed role."
  type        = map(map(list(string)))
  default     = {}
  nullable    = false
}

variable "key_iam_additive" {
  description = "Key IAM additive bindings in {KEY => {ROLE => [MEMBERS]}} format."
  type        = map(map(list(string)))
  default     = {}
  nullable    = false
}

variable "key_iam_members" {
  description = "Individual additive key IAM grants. Map keys are arbitrary and only used to enumerate grants."
  type = map(object({
    key    = string
    member = string
    role   = string
  }))
  default  = {}
  nullable = false
}

variable "key_purpose" {
  description = "Per-key purpose and version template, keyed by key name."
  type = map(object({
    purpose = optional(string)
    version_template = optional(object({
      algorithm        = optional(string)
      protection_level = optional(string)
    }))
  }))
  default  = {}
  nullable = false

  validation {
    condition = alltrue([
      for k, v in var.key_purpose :
      contains({{ purposes }}, coalesce(v.purpose, "ENCRYPT_DECRYPT"))
    ])
    error_message = "Key purpose must be one of {{ purpose_names }}."
  }

  validation {
    condition = alltrue([
      for k, v in var.key_purpose :
      contains({{ protection_levels }}, coalesce(try(v.version_template.protection_level, null), "SOFTWARE"))
    ])
    error_message = "Protection level must be one of {{ protection_level_names }}."
  }
}

variable "key_purpose_defaults" {
  description = "Defaults used when key_purpose has no entry or attribute for a key."
  type = object({
    purpose = optional(string)
    version_template = optional(object({
      algorithm        = optional(string)
      protection_level = optional(string)
    }))
  })
  default  = {}
  nullable = false

  validation {
    condition = contains(
      {{ protection_levels }},
      coalesce(try(var.key_purpose_defaults.version_template.protection_level, null), "SOFTWARE")
    )
    error_message = "Protection level must be one of {{ protection_level_names }}."
  }
}

variable "keyring" {
  description = "Keyring attributes."
  type = object({
    location = string
    name     = string
  })
}

variable "keyring_create" {
  description = "Set to false to manage keys and IAM bindings in an existing keyring."
  type        = bool
  default     = true
}

variable "keys" {
  description = "Key names and base attributes. Set attributes to null if not needed."
  type = map(object({
    rotation_period = optional(string)
    labels          = optional(map(string))
  }))
  default  = {}
  nullable = false

  validation {
    condition = alltrue([
      for k, v in var.keys :
      try(v.rotation_period, null) == null || can(regex("^[0-9]+(\\.[0-9]{1,9})?s$", v.rotation_period))
    ])
    error_message = "Rotation period must be a duration in seconds ending with 's'."
  }

  validation {
    condition = alltrue([
      for k, v in var.keys :
      try(v.rotation_period, null) == null || try(tonumber(trimsuffix(v.rotation_period, "s")) >= {{ min_rotation_seconds }}, false)
    ])
    error_message = "Rotation period must be at least {{ min_rotation_seconds }}s (one day)."
  }
}

variable "project_id" {
  description = "Project id where the keyring will be created."
  type        = string
}

variable "tag_bindings" {
  description = "Tag bindings for this keyring, in key => tag value id format."
  type        = map(string)
  default     = null
}
"""

MAIN_TF = """\
{{ header }}
locals {
  keyring = (
    var.keyring_create
    ? google_kms_key_ring.default[0]
    : data.google_kms_key_ring.default[0]
  )

  # "key.role" pairs owned by an authoritative key binding
  key_iam_roles = toset(flatten([
    for key, roles in var.key_iam : [for role in keys(roles) : "${key}.${role}"]
  ]))

  iam_additive = {
    for pair in distinct(flatten([
      for role, members in var.iam_additive : [
        for member in members : { role = role, member = member }
      ] if !contains(keys(var.iam), role)
    ])) : "${pair.role}-${pair.member}" => pair
  }

  # records grouped by grant, the first record key of each group is kept
  iam_members = {
    for grant, record_keys in {
      for k, v in var.iam_members : "${v.role}-${v.member}" => k...
      if (
        !contains(keys(var.iam), v.role)
        && !contains(keys(local.iam_additive), "${v.role}-${v.member}")
      )
    } : record_keys[0] => var.iam_members[record_keys[0]]
  }

  key_iam = {
    for pair in flatten([
      for key, roles in var.key_iam : [
        for role, members in roles : { key = key, role = role, members = members }
      ]
    ]) : "${pair.key}.${pair.role}" => pair
  }

  key_iam_additive = {
    for pair in distinct(flatten([
      for key, roles in var.key_iam_additive : [
        for role, members in roles : [
          for member in members : { key = key, role = role, member = member }
        ] if !contains(local.key_iam_roles, "${key}.${role}")
      ]
    ])) : "${pair.key}-${pair.role}-${pair.member}" => pair
  }

  key_iam_members = {
    for grant, record_keys in {
      for k, v in var.key_iam_members : "${v.key}-${v.role}-${v.member}" => k...
      if (
        !contains(local.key_iam_roles, "${v.key}.${v.role}")
        && !contains(keys(local.key_iam_additive), "${v.key}-${v.role}-${v.member}")
      )
    } : record_keys[0] => var.key_iam_members[record_keys[0]]
  }

  key_purposes = {
    for name in keys(var.keys) : name => {
      purpose = coalesce(
        try(var.key_purpose[name].purpose, null),
        var.key_purpose_defaults.purpose,
        "{{ default_purpose }}"
      )
      algorithm = try(coalesce(
        try(var.key_purpose[name].version_template.algorithm, null),
        try(var.key_purpose_defaults.version_template.algorithm, null)
      ), null)
      protection_level = try(coalesce(
        try(var.key_purpose[name].version_template.protection_level, null),
        try(var.key_purpose_defaults.version_template.protection_level, null)
      ), null)
    }
  }
}

data "google_kms_key_ring" "default" {
  count    = var.keyring_create ? 0 : 1
  project  = var.project_id
  name     = var.keyring.name
  location = var.keyring.location
}

resource "google_kms_key_ring" "default" {
  count    = var.keyring_create ? 1 : 0
  project  = var.project_id
  name     = var.keyring.name
  location = var.keyring.location
}

resource "google_kms_key_ring_iam_binding" "authoritative" {
  for_each    = var.iam
  key_ring_id = local.keyring.id
  role        = each.key
  members     = each.value
}

resource "google_kms_key_ring_iam_member" "additive" {
  for_each    = local.iam_additive
  key_ring_id = local.keyring.id
  role        = each.value.role
  member      = each.value.member
}

resource "google_kms_key_ring_iam_member" "members" {
  for_each    = local.iam_members
  key_ring_id = local.keyring.id
  role        = each.value.role
  member      = each.value.member
}

resource "google_kms_crypto_key" "default" {
  for_each        = var.keys
  key_ring        = local.keyring.id
  name            = each.key
  rotation_period = try(each.value.rotation_period, null)
  labels          = try(each.value.labels, null)
  purpose         = local.key_purposes[each.key].purpose

  dynamic "version_template" {
    for_each = (
      local.key_purposes[each.key].algorithm == null
      && local.key_purposes[each.key].protection_level == null
      ? [] : [""]
    )
    content {
      algorithm        = local.key_purposes[each.key].algorithm
      protection_level = local.key_purposes[each.key].protection_level
    }
  }

  lifecycle {
    precondition {
      condition = (
        local.key_purposes[each.key].purpose == "{{ default_purpose }}"
        || local.key_purposes[each.key].algorithm != null
      )
      error_message = "Key ${each.key}: purpose ${local.key_purposes[each.key].purpose} requires version_template.algorithm."
    }
    precondition {
      condition = (
        try(each.value.rotation_period, null) == null
        || local.key_purposes[each.key].purpose == "{{ default_purpose }}"
      )
      error_message = "Key ${each.key}: rotation_period is only supported for {{ default_purpose }} keys."
    }
  }
}

resource "google_kms_crypto_key_iam_binding" "authoritative" {
  for_each      = local.key_iam
  crypto_key_id = google_kms_crypto_key.default[each.value.key].id
  role          = each.value.role
  members       = each.value.members
}

resource "google_kms_crypto_key_iam_member" "additive" {
  for_each      = local.key_iam_additive
  crypto_key_id = google_kms_crypto_key.default[each.value.key].id
  role          = each.value.role
  member        = each.value.member
}

resource "google_kms_crypto_key_iam_member" "members" {
  for_each      = local.key_iam_members
  crypto_key_id = google_kms_crypto_key.default[each.value.key].id
  role          = each.value.role
  member        = each.value.member
}

resource "google_tags_tag_binding" "default" {
  for_each  = coalesce(var.tag_bindings, {})
  parent    = "//cloudkms.googleapis.com/${local.keyring.id}"
  tag_value = each.value
}
"""

OUTPUTS_TF = """\
{{ header }}
output "id" {
  description = "Fully qualified keyring id."
  value       = local.keyring.id
  depends_on = [
    google_kms_key_ring_iam_binding.authoritative,
    google_kms_key_ring_iam_member.additive,
    google_kms_key_ring_iam_member.members,
  ]
}

output "key_ids" {
  description = "Fully qualified key ids."
  value = {
    for k, v in google_kms_crypto_key.default : k => v.id
  }
  depends_on = [
    google_kms_crypto_key_iam_binding.authoritative,
    google_kms_crypto_key_iam_member.additive,
    google_kms_crypto_key_iam_member.members,
  ]
}

output "keyring" {
  description = "Keyring resource."
  value       = local.keyring
}

output "keys" {
  description = "Key resources."
  value       = google_kms_crypto_key.default
}

output "location" {
  description = "Keyring location."
  value       = local.keyring.location
}

output "name" {
  description = "Keyring name."
  value       = local.keyring.name
}
"""

MODULE_OUTPUTS = ("id", "key_ids", "keyring", "keys", "location", "name")


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------
def _tf_dir(project_path: str, config: Dict) -> Path:
    return Path(project_path) / config["output"]["directory"]


def generate_module(project_path: str, config: Optional[Dict] = None) -> List[str]:
    """Generate the KMS Terraform module files.

    Args:
        project_path: Target project directory.
        config: Generator config (see kms_module.config); loaded if omitted.

    Returns:
        List of file paths written.
    """
    config = config or load_config()
    module_dir = _tf_dir(project_path, config) / config["output"]["module_dir"]
    tf = config["terraform"]
    ctx = {
        "header": _header(config),
        "required_version": tf["required_version"],
        "provider_source": tf["provider_source"],
        "provider_version": tf["provider_version"],
        "purposes": _hcl_list(KEY_PURPOSES),
        "protection_levels": _hcl_list(PROTECTION_LEVELS),
        "purpose_names": ", ".join(KEY_PURPOSES),
        "protection_level_names": ", ".join(PROTECTION_LEVELS),
        "default_purpose": KEY_PURPOSES[0],
        "min_rotation_seconds": MIN_ROTATION_SECONDS,
    }

    files = []
    for name, template in [
        ("versions.tf", VERSIONS_TF),
        ("variables.tf", VARIABLES_TF),
        ("main.tf", MAIN_TF),
        ("outputs.tf", OUTPUTS_TF),
    ]:
        p = _write(module_dir / name, _render(template, ctx))
        files.append(str(p))
    logger.info("Generated KMS module in %s", module_dir)
    return files


def instance_document(variables: ModuleVariables, config: Dict) -> Dict:
    """Terraform JSON for a root configuration calling the module."""
    module_name = config["output"]["module_name"]
    variable_names = list(variables.to_dict())
    doc = {}
    if config["output"]["header"]:
        doc["//"] = "Generated by kms_module Terraform Generator"
    doc["variable"] = {name: {} for name in variable_names}
    module_call = {"source": "./" + config["output"]["module_dir"].strip("/")}
    module_call.update({name: "${var.%s}" % name for name in variable_names})
    doc["module"] = {module_name: module_call}
    doc["output"] = {
        name: {"value": "${module.%s.%s}" % (module_name, name)}
        for name in MODULE_OUTPUTS
    }
    return doc


def generate_instance(project_path: str, variables, config: Optional[Dict] = None,
                      lookup=None) -> List[str]:
    """Validate and evaluate the variables, then write the root instance.

    Evaluation runs first so that missing algorithms, undeclared keys or a
    missing keyring (with a lookup) fail before any file is written.

    Returns:
        List of file paths written.
    """
    config = config or load_config()
    if not isinstance(variables, ModuleVariables):
        variables = validate_variables(variables)
    evaluate_module(variables, lookup=lookup)

    tf_dir = _tf_dir(project_path, config)
    files = []
    main = _write(tf_dir / "main.tf.json",
                  json.dumps(instance_document(variables, config), indent=2) + "\n")
    files.append(str(main))
    tfvars = _write(tf_dir / "terraform.tfvars.json",
                    json.dumps(variables.to_dict(), indent=2) + "\n")
    files.append(str(tfvars))
    logger.info("Generated KMS instance in %s", tf_dir)
    return files


def generate(project_path: str, variables, config: Optional[Dict] = None,
             components: str = "module,instance", lookup=None) -> List[str]:
    """Generate the module and/or its instance.

    Args:
        project_path: Target project directory.
        variables: ModuleVariables or raw dict (required for "instance").
        config: Generator config; loaded if omitted.
        components: Comma-separated list of "module" and "instance".
        lookup: Optional KeyringLookup for existing keyrings.

    Returns:
        List of file paths generated.
    """
    config = config or load_config()
    requested = [c.strip() for c in components.split(",") if c.strip()]

    generators = {
        "module": lambda: generate_module(project_path, config),
        "instance": lambda: generate_instance(project_path, variables, config, lookup),
    }

    all_files = []
    for comp in requested:
        if comp in generators:
            all_files.extend(generators[comp]())
        else:
            logger.warning("Unknown component: %s", comp)
    return all_files
