#!/usr/bin/env python3
"""Shared Azure CLI utilities."""

from __future__ import annotations

import json
import shutil
import subprocess
import sys
from enum import Enum
from pathlib import Path

from scripts.deploy.deploy_errors import DiscoveryEmpty


class ResourceKind(str, Enum):
    """Resource types that are discovered by name prefix."""

    KEY_VAULT = "keyvault"
    CONTAINER_REGISTRY = "acr"
    STORAGE_ACCOUNT = "storage account"
    AKS_CLUSTER = "aks"

    @property
    def label(self) -> str:
        return {
            ResourceKind.KEY_VAULT: "Key Vault",
            ResourceKind.CONTAINER_REGISTRY: "container registry",
            ResourceKind.STORAGE_ACCOUNT: "storage account",
            ResourceKind.AKS_CLUSTER: "AKS cluster",
        }[self]


def run_az_command(args: list[str], *, capture_output: bool = True, ignore_errors: bool = False, verbose: bool = True) -> dict | list | str | None:
    """Run an azure cli command."""
    cmd = ["az"] + args
    if verbose:
        print(f"[az] {' '.join(cmd)}")

    if not shutil.which("az"):
        if ignore_errors:
            return None
        raise RuntimeError("Azure CLI (az) not found. Please install it.")

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE if capture_output else None,
            stderr=subprocess.PIPE,
            text=True,
            check=False,
        )
    except OSError as e:
        if ignore_errors:
            return None
        raise RuntimeError(f"Azure CLI (az) could not be started: {e}") from e

    if result.returncode != 0:
        if ignore_errors:
            return None

        if result.stderr:
            print(result.stderr.rstrip(), file=sys.stderr)

        raise subprocess.CalledProcessError(result.returncode, cmd, output=result.stdout, stderr=result.stderr)

    if capture_output and result.stdout:
        out = result.stdout.strip()
        if not out:
            return None
        try:
            return json.loads(out)
        except json.JSONDecodeError:
            return out

    return None


def clean_name(value: object) -> str | None:
    """Normalize a CLI result into a name, or None when absent.

    Empty output, JSON null and the literal string "null" all mean absent.
    """
    if value is None:
        return None
    val = str(value).strip()
    if not val or val == "null":
        return None
    return val


def az_logged_in() -> bool:
    try:
        res = run_az_command(["account", "show", "--output", "json"], verbose=False)
    except (RuntimeError, subprocess.CalledProcessError):
        return False
    return isinstance(res, dict) and bool(res.get("id"))


def get_az_account_info() -> dict[str, str]:
    """Return dictionary with 'id' (subscription) and 'tenantId'."""
    res = run_az_command(["account", "show", "--output", "json"], verbose=False)
    if not isinstance(res, dict):
        return {"id": "", "tenantId": ""}
    return {
        "id": str(res.get("id") or ""),
        "tenantId": str(res.get("tenantId") or ""),
    }


def discover_resource_name(kind: ResourceKind, *, resource_group: str, prefix: str) -> str | None:
    """Return the first resource in `resource_group` whose name starts with `prefix`."""
    res = run_az_command(
        kind.value.split()
        + [
            "list",
            "--resource-group",
            resource_group,
            "--query",
            f"[?starts_with(name, '{prefix}')].name",
            "--output",
            "json",
        ]
    )
    if isinstance(res, list):
        res = res[0] if res else None
    return clean_name(res)


def require_resource_name(kind: ResourceKind, *, resource_group: str, prefix: str) -> str:
    name = discover_resource_name(kind, resource_group=resource_group, prefix=prefix)
    if name is None:
        raise DiscoveryEmpty(kind=kind.label, resource_group=resource_group, prefix=prefix)
    return name


def get_public_ip_fqdn(*, resource_group: str, name: str) -> str | None:
    res = run_az_command(
        [
            "network",
            "public-ip",
            "show",
            "--resource-group",
            resource_group,
            "--name",
            name,
            "--query",
            "dnsSettings.fqdn",
            "--output",
            "json",
        ]
    )
    return clean_name(res)


def kv_secret_get(*, vault_name: str, secret_name: str) -> str | None:
    """Read a Key Vault secret value. The value itself is never printed."""
    print(f"[kv] reading secret '{secret_name}' from vault '{vault_name}'")
    res = run_az_command(
        [
            "keyvault",
            "secret",
            "show",
            "--vault-name",
            vault_name,
            "--name",
            secret_name,
            "--query",
            "value",
            "--output",
            "json",
        ],
        verbose=False,
    )
    if res is None:
        return None
    if not isinstance(res, str):
        # `--query value -o json` yields a JSON string; a JSON-shaped secret was decoded already.
        return json.dumps(res)
    return res


def acr_login(acr_name: str) -> None:
    run_az_command(["acr", "login", "--name", acr_name], capture_output=False)


def acr_tag_exists(*, acr_name: str, repository: str, tag: str) -> bool:
    """True if `repository:tag` is already in the registry.

    A repository that does not exist yet makes `show-tags` fail; that counts as "no tag".
    """
    res = run_az_command(
        [
            "acr",
            "repository",
            "show-tags",
            "--name",
            acr_name,
            "--repository",
            repository,
            "--query",
            f"[?@=='{tag}']",
            "--output",
            "json",
        ],
        ignore_errors=True,
    )
    return isinstance(res, list) and tag in res


def aks_get_credentials(*, resource_group: str, cluster_name: str, kubeconfig: Path | None = None) -> None:
    args = [
        "aks",
        "get-credentials",
        "--resource-group",
        resource_group,
        "--name",
        cluster_name,
        "--overwrite-existing",
    ]
    if kubeconfig is not None:
        args.extend(["--file", str(kubeconfig)])
    run_az_command(args, capture_output=False)
