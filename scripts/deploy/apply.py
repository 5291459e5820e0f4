#!/usr/bin/env python3
"""Provision the RStudio cluster on Azure, layer by layer.

Phases (fixed order, first failure aborts the rest):
  1. Environment check   - az/terraform/docker present, az logged in
  2. Directory layer     - 01-directory: VNet, Key Vault, Samba mini-AD
  3. Services layer      - 02-servers: Azure Files NFS, needs the Key Vault name
  4. Image               - build/push the RStudio image into ACR (skipped if the tag exists)
  5. Cluster layer       - 04-aks: AKS cluster
  6. Access              - az aks get-credentials + kubeconfig check
  7. Validate            - poll http://<ingress-fqdn>/auth-sign-in for HTTP 200

Requires `az`, `terraform` and `docker` installed and authenticated.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.deploy import azure_utils, docker_helpers, kube_access, readiness, terraform_helpers
from scripts.deploy.azure_utils import ResourceKind
from scripts.deploy.check_env import APPLY_TOOLS, check_environment
from scripts.deploy.console import error, note
from scripts.deploy.deploy_config import DeployConfig, load_config_or_exit
from scripts.deploy.deploy_errors import DeployError
from scripts.deploy.phases import DiscoveredNames, Phase, run_phases

DEFAULT_INFRA_ROOT = Path(__file__).resolve().parents[2]


def check_env_phase(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    check_environment(config, tools=APPLY_TOOLS)
    return names


def apply_directory_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    terraform_helpers.terraform_apply(workdir=config.directory_dir)
    return names


def apply_services_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    vault = azure_utils.require_resource_name(
        ResourceKind.KEY_VAULT,
        resource_group=config.network_resource_group,
        prefix=config.key_vault_prefix,
    )
    note(f"Key Vault for secrets is {vault}")

    terraform_helpers.terraform_apply(workdir=config.services_dir, variables={"vault_name": vault})
    return replace(names, vault_name=vault)


def build_image(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    vault = names.require("vault_name")
    acr = azure_utils.require_resource_name(
        ResourceKind.CONTAINER_REGISTRY,
        resource_group=config.aks_resource_group,
        prefix=config.acr_prefix,
    )
    note(f"Using ACR: {acr}")
    azure_utils.acr_login(acr)

    image = docker_helpers.ensure_image(
        acr_name=acr,
        repository=config.image_repository,
        tag=config.image_tag,
        context_dir=config.image_context_dir,
        vault_name=vault,
        secret_name=config.credentials_secret,
    )
    return replace(names, acr_name=acr, image=image)


def apply_cluster_layer(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    vault = names.require("vault_name")
    terraform_helpers.terraform_apply(workdir=config.cluster_dir, variables={"vault_name": vault})
    return names


def configure_access(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    cluster = azure_utils.require_resource_name(
        ResourceKind.AKS_CLUSTER,
        resource_group=config.aks_resource_group,
        prefix=config.aks_cluster_prefix,
    )
    kube_access.configure_cluster_access(
        resource_group=config.aks_resource_group,
        cluster_name=cluster,
        kubeconfig=config.kubeconfig_path,
    )
    return replace(names, cluster_name=cluster)


def validate_phase(config: DeployConfig, names: DiscoveredNames) -> DiscoveredNames:
    readiness.validate_deployment(
        resource_group=config.aks_resource_group,
        public_ip_name=config.ingress_public_ip_name,
        path=config.health_check_path,
        settings=config.poll,
    )
    return names


def apply_phases(*, skip_validate: bool = False) -> list[Phase]:
    phases = [
        Phase("Environment check", check_env_phase),
        Phase("Directory layer (01-directory)", apply_directory_layer),
        Phase("Services layer (02-servers)", apply_services_layer),
        Phase("RStudio image (03-docker)", build_image),
        Phase("Cluster layer (04-aks)", apply_cluster_layer),
        Phase("Cluster access", configure_access),
    ]
    if not skip_validate:
        phases.append(Phase("Validate endpoint", validate_phase))
    return phases


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Deploy the RStudio AKS cluster and its supporting layers")
    parser.add_argument("--env-file", default=None, help="Deploy env file (default: <infra-root>/.env.deploy)")
    parser.add_argument(
        "--infra-root",
        default=None,
        help="Directory holding 01-directory/02-servers/03-docker/04-aks (default: repo root)",
    )
    parser.add_argument(
        "--skip-validate",
        action="store_true",
        help="Stop after cluster access is configured; do not poll the ingress endpoint",
    )
    args = parser.parse_args(argv)

    infra_root = Path(args.infra_root).expanduser().resolve() if args.infra_root else DEFAULT_INFRA_ROOT
    config = load_config_or_exit(infra_root=infra_root, env_file=args.env_file)

    try:
        run_phases(apply_phases(skip_validate=bool(args.skip_validate)), config=config)
    except DeployError:
        error("Azure RStudio Cluster deployment failed.")
        return 1
    except KeyboardInterrupt:
        error("Deployment interrupted by user.")
        return 1

    note("Azure RStudio Cluster deployment completed successfully.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
