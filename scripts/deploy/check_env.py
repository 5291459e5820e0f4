#!/usr/bin/env python3
"""Pre-flight checks for the RStudio AKS deploy/destroy scripts.

Verifies:
- required tools (az, terraform, docker) are on PATH
- Azure CLI is logged in
- the active subscription matches AZURE_SUBSCRIPTION_ID when that is pinned
- `.env.deploy` (if present) passes the schema

Any failure is fatal (exit 1; schema problems exit 2).
"""

from __future__ import annotations

import argparse
import shutil
import subprocess
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.deploy import azure_utils
from scripts.deploy.console import error, note
from scripts.deploy.deploy_config import DeployConfig, load_config_or_exit
from scripts.deploy.deploy_errors import PreconditionMissing

DEFAULT_INFRA_ROOT = Path(__file__).resolve().parents[2]

APPLY_TOOLS: tuple[str, ...] = ("az", "terraform", "docker")
DESTROY_TOOLS: tuple[str, ...] = ("az", "terraform")


def missing_tools(tools: tuple[str, ...]) -> list[str]:
    return [t for t in tools if not shutil.which(t)]


def check_environment(config: DeployConfig, *, tools: tuple[str, ...] = APPLY_TOOLS) -> None:
    missing = missing_tools(tools)
    if missing:
        raise PreconditionMissing("Required tool(s) not found on PATH: " + ", ".join(missing))

    if not azure_utils.az_logged_in():
        raise PreconditionMissing("Not logged into Azure. Run: az login")

    account = azure_utils.get_az_account_info()
    note(f"Azure subscription: {account['id']} (tenant {account['tenantId']})")
    if config.subscription_id and account["id"].lower() != config.subscription_id.lower():
        raise PreconditionMissing(
            f"Active subscription {account['id']} does not match AZURE_SUBSCRIPTION_ID={config.subscription_id}. "
            f"Run: az account set --subscription {config.subscription_id}"
        )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Validate tools, Azure login and .env.deploy before deploying")
    parser.add_argument("--env-file", default=None, help="Deploy env file (default: <infra-root>/.env.deploy)")
    parser.add_argument("--infra-root", default=None, help="Directory holding the Terraform layers (default: repo root)")
    parser.add_argument(
        "--destroy",
        action="store_true",
        help="Only check the tools needed for teardown (docker is not required)",
    )
    args = parser.parse_args(argv)

    infra_root = Path(args.infra_root).expanduser().resolve() if args.infra_root else DEFAULT_INFRA_ROOT
    config = load_config_or_exit(infra_root=infra_root, env_file=args.env_file)

    try:
        check_environment(config, tools=DESTROY_TOOLS if args.destroy else APPLY_TOOLS)
    except (PreconditionMissing, subprocess.CalledProcessError) as e:
        error(f"Environment check failed: {e}")
        return 1
    except KeyboardInterrupt:
        error("Environment check interrupted by user.")
        return 1

    print("[env] ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
