#!/usr/bin/env python3
# CUI // SP-CTI
"""kms-module CLI.

Validate module variables, print the evaluated plan, and generate the
Terraform module and its instance.

CLI: --vars, --project-path, --components, --plan, --inventory, --gcp-lookup,
     --config, --json
"""

import argparse
import json
import logging
import sys

from kms_module.cloud.keyring_lookup import GCPKeyringLookup, InventoryKeyringLookup, get_lookup
from kms_module.config import DEFAULT_CONFIG, DEFAULT_CONFIG_PATH, load_config
from kms_module.core.module import evaluate_module
from kms_module.errors import KMSModuleError
from kms_module.infra.terraform_generator import generate
from kms_module.schemas.validation import load_variables

logger = logging.getLogger("kms_module.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate Terraform for a Google Cloud KMS keyring and its keys"
    )
    parser.add_argument("--vars", help="YAML or JSON file with module variables")
    parser.add_argument("--project-path", help="Target project directory for generated files")
    parser.add_argument(
        "--components",
        default="module,instance",
        help="Comma-separated components: module,instance",
    )
    parser.add_argument("--plan", action="store_true",
                        help="Print the evaluated plan instead of writing files")
    lookup = parser.add_mutually_exclusive_group()
    lookup.add_argument("--inventory", help="YAML inventory of existing keyrings")
    lookup.add_argument("--gcp-lookup", action="store_true",
                        help="Verify existing keyrings with the Cloud KMS API")
    parser.add_argument("--config", default=None, help="Generator config YAML")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    return parser


def _resolve_lookup(args, config):
    if args.inventory:
        return InventoryKeyringLookup.from_file(args.inventory)
    if args.gcp_lookup:
        return GCPKeyringLookup()
    return get_lookup(config["lookup"]["backend"], config["lookup"]["inventory_path"])


def _level(logging_config: dict) -> int:
    return getattr(logging, str(logging_config["level"]).upper(), logging.INFO)


def _setup_logging() -> logging.Handler:
    """Install the console handler with the built-in defaults.

    Runs before the config file is read so records emitted while loading it
    go through the same handler. No-op when the root logger already has one.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(DEFAULT_CONFIG["logging"]["format"]))
    logging.basicConfig(level=_level(DEFAULT_CONFIG["logging"]), handlers=[handler])
    return handler


def run(args) -> dict:
    """Execute the parsed command and return a result dict."""
    handler = _setup_logging()
    config = load_config(args.config)
    handler.setFormatter(logging.Formatter(config["logging"]["format"]))
    logging.getLogger().setLevel(_level(config["logging"]))
    logger.debug("Using config %s", args.config or DEFAULT_CONFIG_PATH)

    needs_vars = args.plan or "instance" in args.components
    variables = load_variables(args.vars) if args.vars else None
    if needs_vars and variables is None:
        raise KMSModuleError("--vars is required for --plan and the instance component",
                             field="vars")
    lookup = _resolve_lookup(args, config) if variables is not None else None

    if args.plan:
        plan = evaluate_module(variables, lookup=lookup)
        return {"status": "success", "plan": plan.to_dict()}

    if not args.project_path:
        raise KMSModuleError("--project-path is required to generate files",
                             field="project_path")
    files = generate(args.project_path, variables, config=config,
                     components=args.components, lookup=lookup)
    return {
        "status": "success",
        "provider": "gcp",
        "components": [c.strip() for c in args.components.split(",")],
        "files_generated": len(files),
        "files": files,
    }


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    try:
        result = run(args)
    except KMSModuleError as exc:
        if args.json:
            print(json.dumps({"status": "error", "error": str(exc), "field": exc.field}))
        else:
            print(f"[kms-module] Error: {exc}", file=sys.stderr)
        return 1

    if args.json or args.plan:
        print(json.dumps(result, indent=2))
    else:
        print(f"[kms-module] Total files generated: {result['files_generated']}")
        for f in result["files"]:
            print(f"  -> {f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
