"""Fetch AKS credentials and confirm the kubeconfig actually points at the cluster."""

from __future__ import annotations

from pathlib import Path

import yaml

from scripts.deploy import azure_utils
from scripts.deploy.console import note, warn
from scripts.deploy.deploy_errors import PreconditionMissing


def default_kubeconfig_path() -> Path:
    return Path.home() / ".kube" / "config"


def find_cluster_context(kubeconfig_text: str, cluster_name: str) -> str | None:
    """Return the name of the context bound to `cluster_name`, if any."""
    payload = yaml.safe_load(kubeconfig_text)
    if not isinstance(payload, dict):
        return None
    contexts = payload.get("contexts")
    if not isinstance(contexts, list):
        return None

    for entry in contexts:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip()
        context = entry.get("context") if isinstance(entry.get("context"), dict) else {}
        cluster = str(context.get("cluster") or "").strip()
        if name == cluster_name or cluster == cluster_name:
            return name or cluster
    return None


def current_context(kubeconfig_text: str) -> str:
    payload = yaml.safe_load(kubeconfig_text)
    if not isinstance(payload, dict):
        return ""
    return str(payload.get("current-context") or "").strip()


def configure_cluster_access(*, resource_group: str, cluster_name: str, kubeconfig: Path | None = None) -> str:
    """Merge the cluster's credentials into the kubeconfig and return the context name."""
    path = kubeconfig or default_kubeconfig_path()
    note(f"Fetching credentials for AKS cluster {cluster_name} into {path}")
    azure_utils.aks_get_credentials(resource_group=resource_group, cluster_name=cluster_name, kubeconfig=kubeconfig)

    if not path.exists():
        raise PreconditionMissing(f"kubeconfig not written: {path}")

    try:
        text = path.read_text(encoding="utf-8")
        context = find_cluster_context(text, cluster_name)
        active = current_context(text)
    except (OSError, UnicodeDecodeError) as e:
        raise PreconditionMissing(f"kubeconfig {path} could not be read: {e}") from e
    except yaml.YAMLError as e:
        raise PreconditionMissing(f"kubeconfig {path} is not valid YAML: {e}") from e

    if context is None:
        raise PreconditionMissing(f"No kubeconfig context for cluster '{cluster_name}' in {path}")

    if active != context:
        warn(f"kubeconfig current-context is '{active}', not '{context}'")
    note(f"kubectl context ready: {context}")
    return context
