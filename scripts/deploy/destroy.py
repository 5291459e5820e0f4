#!/usr/bin/env python3
"""Tear down the RStudio AKS cluster, the services layer and the mini-AD.

EXECUTION ORDER (do not re-sequence):
  1. Cluster layer   - 04-aks, needs the Key Vault, ACR and NFS storage account names
  2. Services layer  - 02-servers; the private DNS VNet link goes first, then a
                       settling delay, then the rest of the layer
  3. Directory layer - 01-directory: Key Vault, mini-AD, network

Every name lookup must succeed before anything is destroyed.
This PERMANENTLY deletes all resources.
"""

from __future__ import annotations

import argparse
import sys
import time
from dataclasses import replace
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.deploy import azure_utils, terraform_helpers
from scripts.deploy.azure_utils import ResourceKind
from scripts.deploy.check_env import DESTROY_TOOLS, check_environment
from scripts.deploy.console import error, note
from scripts.deploy.deploy_config import DeployConfig, load_config_or_exit
from scripts.deploy.deploy_errors import DeployError
from scripts.deploy.phases import DiscoveredNames, Phase, run_phases

DEFAULT_INFRA_ROOT = Path(__file__).resolve().parents[2]

DNS_LINK_TARGET = "azurerm_private_dns_zone_virtual_network_link.file_link"


def check_env_phase(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    check_environment(config, tools=DESTROY_TOOLS)
    return names


def destroy_cluster_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    storage = azure_utils.require_resource_name(
        ResourceKind.STORAGE_ACCOUNT,
        resource_group=config.servers_resource_group,
        prefix=config.storage_account_prefix,
    )
    note(f"Storage account: {storage}")

    acr = azure_utils.require_resource_name(
        ResourceKind.CONTAINER_REGISTRY,
        resource_group=config.aks_resource_group,
        prefix=config.acr_prefix,
    )
    note(f"Using ACR: {acr}")

    vault = azure_utils.require_resource_name(
        ResourceKind.KEY_VAULT,
        resource_group=config.network_resource_group,
        prefix=config.key_vault_prefix,
    )
    note(f"Using Key Vault: {vault}")

    terraform_helpers.terraform_destroy(
        workdir=config.cluster_dir,
        variables={"vault_name": vault, "acr_name": acr, "storage_account": storage},
    )
    return replace(names, vault_name=vault, acr_name=acr, storage_account=storage)


def destroy_services_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    vault = names.require("vault_name")
    variables = {"vault_name": vault}

    terraform_helpers.terraform_destroy(workdir=config.services_dir, variables=variables, targets=[DNS_LINK_TARGET])
    note(f"Waiting {config.dns_link_settle_seconds}s for DNS link deletion to propagate")
    time.sleep(config.dns_link_settle_seconds)
    terraform_helpers.terraform_destroy(workdir=config.services_dir, variables=variables, init=False)
    return names


def destroy_directory_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    terraform_helpers.terraform_destroy(workdir=config.directory_dir)
    return names


def destroy_phases() -> list[Phase]:
    return [
        Phase("Environment check", check_env_phase),
        Phase("Cluster layer (04-aks)", destroy_cluster_layer),
        Phase("Services layer (02-servers)", destroy_services_layer),
        Phase("Directory layer (01-directory)", destroy_directory_layer),
    ]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Destroy the RStudio AKS cluster and all supporting layers")
    parser.add_argument("--env-file", default=None, help="Deploy env file (default: <infra-root>/.env.deploy)")
    parser.add_argument(
        "--infra-root",
        default=None,
        help="Directory holding 01-directory/02-servers/04-aks (default: repo root)",
    )
    args = parser.parse_args(argv)

    infra_root = Path(args.infra_root).expanduser().resolve() if args.infra_root else DEFAULT_INFRA_ROOT
    config = load_config_or_exit(infra_root=infra_root, env_file=args.env_file)

    try:
        run_phases(destroy_phases(), config=config)
    except DeployError:
        error("Azure RStudio teardown failed; remaining layers were left in place.")
        return 1
    except KeyboardInterrupt:
        error("Teardown interrupted by user.")
        return 1

    note("Azure RStudio AKS Cluster and Mini-AD environment destroyed successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
