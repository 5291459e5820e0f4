"""Resolve `.env.deploy` + process env into an immutable DeployConfig.

Values are loaded once per invocation and handed to every phase explicitly;
nothing downstream reads `os.environ` again.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

from scripts.deploy.env_schema import (
    DEPLOY_SCHEMA,
    EnvValidationError,
    VarsEnum,
    apply_defaults,
    parse_dotenv_file,
    schema_keys,
    validate_known_keys,
    validate_required,
    validate_value_rules,
)

DIRECTORY_DIR = "01-directory"
SERVICES_DIR = "02-servers"
IMAGE_CONTEXT_DIR = "03-docker/rstudio"
CLUSTER_DIR = "04-aks"


@dataclass(frozen=True)
class PollSettings:
    max_attempts: int = 50
    interval_seconds: int = 10
    expected_status: int = 200
    timeout_seconds: int = 10


@dataclass(frozen=True)
class DeployConfig:
    infra_root: Path

    network_resource_group: str
    servers_resource_group: str
    aks_resource_group: str

    key_vault_prefix: str
    acr_prefix: str
    storage_account_prefix: str
    aks_cluster_prefix: str
    ingress_public_ip_name: str

    image_repository: str
    image_tag: str
    credentials_secret: str

    health_check_path: str
    poll: PollSettings

    dns_link_settle_seconds: int
    subscription_id: str | None = None
    kubeconfig_path: Path | None = None

    @property
    def directory_dir(self) -> Path:
        return self.infra_root / DIRECTORY_DIR

    @property
    def services_dir(self) -> Path:
        return self.infra_root / SERVICES_DIR

    @property
    def image_context_dir(self) -> Path:
        return self.infra_root / IMAGE_CONTEXT_DIR

    @property
    def cluster_dir(self) -> Path:
        return self.infra_root / CLUSTER_DIR

    def with_poll(self, **changes: int) -> "DeployConfig":
        return replace(self, poll=replace(self.poll, **changes))


def _env_subset(environ: Mapping[str, str]) -> dict[str, str]:
    keys = schema_keys(DEPLOY_SCHEMA)
    out: dict[str, str] = {}
    for k in keys:
        v = environ.get(k)
        if v is None:
            continue
        v = str(v).strip()
        if not v:
            continue
        out[k] = v
    return out


def resolve_deploy_values(
    *,
    env_file: Path | None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Merge file values, process env and schema defaults; validate the result."""
    context = f"deploy ({env_file.name if env_file else '<no file>'} + env)"

    file_kv: dict[str, str] = {}
    if env_file is not None and env_file.exists():
        file_kv = parse_dotenv_file(env_file)
        validate_known_keys(DEPLOY_SCHEMA, file_kv, context=context)

    merged = dict(file_kv)
    merged.update(_env_subset(os.environ if environ is None else environ))
    merged = apply_defaults(DEPLOY_SCHEMA, merged)

    validate_required(DEPLOY_SCHEMA, merged, context=context)
    validate_value_rules(DEPLOY_SCHEMA, merged, context=context)
    return merged


def load_deploy_config(
    *,
    infra_root: Path,
    env_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> DeployConfig:
    if env_file is None:
        env_file = infra_root / ".env.deploy"
    kv = resolve_deploy_values(env_file=env_file, environ=environ)

    def get(key: VarsEnum) -> str:
        return str(kv.get(key.value) or "").strip()

    kubeconfig = get(VarsEnum.KUBECONFIG_PATH)

    return DeployConfig(
        infra_root=infra_root,
        network_resource_group=get(VarsEnum.RSTUDIO_NETWORK_RG),
        servers_resource_group=get(VarsEnum.RSTUDIO_SERVERS_RG),
        aks_resource_group=get(VarsEnum.RSTUDIO_AKS_RG),
        key_vault_prefix=get(VarsEnum.KEY_VAULT_PREFIX),
        acr_prefix=get(VarsEnum.ACR_PREFIX),
        storage_account_prefix=get(VarsEnum.STORAGE_ACCOUNT_PREFIX),
        aks_cluster_prefix=get(VarsEnum.AKS_CLUSTER_PREFIX),
        ingress_public_ip_name=get(VarsEnum.INGRESS_PUBLIC_IP_NAME),
        image_repository=get(VarsEnum.RSTUDIO_IMAGE_REPOSITORY),
        image_tag=get(VarsEnum.RSTUDIO_IMAGE_TAG),
        credentials_secret=get(VarsEnum.RSTUDIO_CREDENTIALS_SECRET),
        health_check_path=get(VarsEnum.HEALTH_CHECK_PATH),
        poll=PollSettings(
            max_attempts=int(get(VarsEnum.VALIDATE_MAX_ATTEMPTS)),
            interval_seconds=int(get(VarsEnum.VALIDATE_SLEEP_SECONDS)),
            timeout_seconds=int(get(VarsEnum.VALIDATE_HTTP_TIMEOUT_SECONDS)),
        ),
        dns_link_settle_seconds=int(get(VarsEnum.DNS_LINK_SETTLE_SECONDS)),
        subscription_id=get(VarsEnum.AZURE_SUBSCRIPTION_ID) or None,
        kubeconfig_path=Path(kubeconfig).expanduser() if kubeconfig else None,
    )


def load_config_or_exit(*, infra_root: Path, env_file: str | None = None) -> DeployConfig:
    """CLI wrapper: print schema problems and exit 2, like the env validator does."""
    path = Path(env_file).expanduser().resolve() if env_file else None
    try:
        return load_deploy_config(infra_root=infra_root, env_file=path)
    except EnvValidationError as e:
        print(e.format(), file=sys.stderr)
        raise SystemExit(2)
