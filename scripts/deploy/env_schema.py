"""Deterministic configuration schema for the RStudio AKS deploy scripts.

This module is the single source of truth for:
- which keys exist in `.env.deploy`
- which of them are mandatory and which carry defaults
- which values must be positive integers

Design goals:
- No heuristic classification (no regex guessing).
- Unknown keys are rejected instead of silently ignored.
- Fail fast with clear error messages.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping

from dotenv import dotenv_values


class VarsEnum(str, Enum):
    # Azure subscription pin (optional)
    AZURE_SUBSCRIPTION_ID = "AZURE_SUBSCRIPTION_ID"

    # Resource groups, one per layer
    RSTUDIO_NETWORK_RG = "RSTUDIO_NETWORK_RG"
    RSTUDIO_SERVERS_RG = "RSTUDIO_SERVERS_RG"
    RSTUDIO_AKS_RG = "RSTUDIO_AKS_RG"

    # Name prefixes used for discovery
    KEY_VAULT_PREFIX = "KEY_VAULT_PREFIX"
    ACR_PREFIX = "ACR_PREFIX"
    STORAGE_ACCOUNT_PREFIX = "STORAGE_ACCOUNT_PREFIX"
    AKS_CLUSTER_PREFIX = "AKS_CLUSTER_PREFIX"
    INGRESS_PUBLIC_IP_NAME = "INGRESS_PUBLIC_IP_NAME"

    # Image
    RSTUDIO_IMAGE_REPOSITORY = "RSTUDIO_IMAGE_REPOSITORY"
    RSTUDIO_IMAGE_TAG = "RSTUDIO_IMAGE_TAG"
    RSTUDIO_CREDENTIALS_SECRET = "RSTUDIO_CREDENTIALS_SECRET"

    # Readiness check
    HEALTH_CHECK_PATH = "HEALTH_CHECK_PATH"
    VALIDATE_MAX_ATTEMPTS = "VALIDATE_MAX_ATTEMPTS"
    VALIDATE_SLEEP_SECONDS = "VALIDATE_SLEEP_SECONDS"
    VALIDATE_HTTP_TIMEOUT_SECONDS = "VALIDATE_HTTP_TIMEOUT_SECONDS"

    # Teardown / access
    DNS_LINK_SETTLE_SECONDS = "DNS_LINK_SETTLE_SECONDS"
    KUBECONFIG_PATH = "KUBECONFIG_PATH"


@dataclass(frozen=True)
class EnvKeySpec:
    key: VarsEnum
    mandatory: bool
    default: str | None = None
    positive_int: bool = False


class EnvValidationError(ValueError):
    def __init__(self, *, context: str, problems: list[str]):
        super().__init__("; ".join(problems))
        self.context = context
        self.problems = problems

    def format(self) -> str:
        lines = [f"[env] validation failed: {self.context}"]
        for p in self.problems:
            lines.append(f"- {p}")
        return "\n".join(lines)


DEPLOY_SCHEMA: tuple[EnvKeySpec, ...] = (
    EnvKeySpec(key=VarsEnum.AZURE_SUBSCRIPTION_ID, mandatory=False),
    EnvKeySpec(key=VarsEnum.RSTUDIO_NETWORK_RG, mandatory=True, default="rstudio-network-rg"),
    EnvKeySpec(key=VarsEnum.RSTUDIO_SERVERS_RG, mandatory=True, default="rstudio-servers-rg"),
    EnvKeySpec(key=VarsEnum.RSTUDIO_AKS_RG, mandatory=True, default="rstudio-aks-rg"),
    EnvKeySpec(key=VarsEnum.KEY_VAULT_PREFIX, mandatory=True, default="ad-key-vault"),
    EnvKeySpec(key=VarsEnum.ACR_PREFIX, mandatory=True, default="rstudio"),
    EnvKeySpec(key=VarsEnum.STORAGE_ACCOUNT_PREFIX, mandatory=True, default="nfs"),
    EnvKeySpec(key=VarsEnum.AKS_CLUSTER_PREFIX, mandatory=True, default="rstudio"),
    EnvKeySpec(key=VarsEnum.INGRESS_PUBLIC_IP_NAME, mandatory=True, default="nginx-ingress-ip"),
    EnvKeySpec(key=VarsEnum.RSTUDIO_IMAGE_REPOSITORY, mandatory=True, default="rstudio"),
    EnvKeySpec(key=VarsEnum.RSTUDIO_IMAGE_TAG, mandatory=True, default="rstudio-server-rc1"),
    EnvKeySpec(key=VarsEnum.RSTUDIO_CREDENTIALS_SECRET, mandatory=True, default="rstudio-credentials"),
    EnvKeySpec(key=VarsEnum.HEALTH_CHECK_PATH, mandatory=True, default="/auth-sign-in"),
    EnvKeySpec(key=VarsEnum.VALIDATE_MAX_ATTEMPTS, mandatory=True, default="50", positive_int=True),
    EnvKeySpec(key=VarsEnum.VALIDATE_SLEEP_SECONDS, mandatory=True, default="10", positive_int=True),
    EnvKeySpec(key=VarsEnum.VALIDATE_HTTP_TIMEOUT_SECONDS, mandatory=True, default="10", positive_int=True),
    EnvKeySpec(key=VarsEnum.DNS_LINK_SETTLE_SECONDS, mandatory=True, default="60", positive_int=True),
    EnvKeySpec(key=VarsEnum.KUBECONFIG_PATH, mandatory=False),
)


def schema_keys(schema: Iterable[EnvKeySpec]) -> set[str]:
    return {spec.key.value for spec in schema}


def parse_dotenv_file(path: Path) -> dict[str, str]:
    """Parse dotenv file strictly.

    - Comments are ignored.
    - Keys are preserved even if they have empty values (""), so we can detect unknown keys.
    """
    kv: dict[str, str] = {}
    raw = dotenv_values(path)
    for k, v in raw.items():
        if k is None:
            continue
        key = str(k).strip()
        if not key:
            continue
        val = "" if v is None else str(v).strip()
        kv[key] = val
    return kv


def validate_known_keys(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    allowed = schema_keys(schema)
    unknown = sorted([k for k in kv.keys() if k not in allowed])
    if unknown:
        raise EnvValidationError(
            context=context,
            problems=["Unknown key(s): " + ", ".join(unknown)],
        )


def apply_defaults(schema: Iterable[EnvKeySpec], kv: dict[str, str]) -> dict[str, str]:
    out = dict(kv)
    for spec in schema:
        if spec.key.value in out and str(out.get(spec.key.value) or "").strip():
            continue
        if spec.default is None:
            continue
        out[spec.key.value] = spec.default
    return out


def validate_required(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    missing: list[str] = []
    for spec in schema:
        if not spec.mandatory:
            continue
        val = str(kv.get(spec.key.value) or "").strip()
        if not val:
            missing.append(spec.key.value)
    if missing:
        raise EnvValidationError(context=context, problems=["Missing mandatory key(s): " + ", ".join(sorted(missing))])


def validate_value_rules(schema: Iterable[EnvKeySpec], kv: Mapping[str, str], *, context: str) -> None:
    """Extra validation for rules that can't be expressed with (mandatory/default) alone."""
    problems: list[str] = []

    for spec in schema:
        if not spec.positive_int:
            continue
        raw = str(kv.get(spec.key.value) or "").strip()
        if not raw:
            continue
        try:
            ok = int(raw) > 0
        except ValueError:
            ok = False
        if not ok:
            problems.append(f"{spec.key.value} must be a positive integer (got '{raw}')")

    path = str(kv.get(VarsEnum.HEALTH_CHECK_PATH.value) or "").strip()
    if path and not path.startswith("/"):
        problems.append(f"{VarsEnum.HEALTH_CHECK_PATH.value} must start with '/' (got '{path}')")

    if problems:
        raise EnvValidationError(context=context, problems=problems)
