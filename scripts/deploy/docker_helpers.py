"""Build and push the RStudio image, skipping both when the tag is already in ACR."""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path
from typing import Mapping

from scripts.deploy import azure_utils
from scripts.deploy.console import note
from scripts.deploy.deploy_errors import PreconditionMissing, ProvisionFailure


def image_ref(*, acr_name: str, repository: str, tag: str) -> str:
    return f"{acr_name}.azurecr.io/{repository}:{tag}"


def build_docker_build_cmd(*, image: str, build_args: Mapping[str, str] | None = None, context_dir: str = ".") -> list[str]:
    cmd = ["docker", "build"]
    for key, value in (build_args or {}).items():
        cmd.extend(["--build-arg", f"{key}={value}"])
    cmd.extend(["-t", image, context_dir])
    return cmd


def build_docker_push_cmd(*, image: str) -> list[str]:
    return ["docker", "push", image]


def _masked(cmd: list[str]) -> str:
    out: list[str] = []
    mask_next = False
    for part in cmd:
        if mask_next and "=" in part:
            part = part.split("=", 1)[0] + "=****"
        mask_next = part == "--build-arg"
        out.append(part)
    return " ".join(out)


def _run_docker(cmd: list[str], *, workdir: Path) -> None:
    if not shutil.which("docker"):
        raise PreconditionMissing("Docker not found. Please install it.")
    print(f"[docker] {_masked(cmd)}")
    try:
        result = subprocess.run(cmd, cwd=str(workdir), check=False)
    except OSError as e:
        raise ProvisionFailure(f"docker {cmd[1]} could not start: {e}", cmd=cmd) from e
    if result.returncode != 0:
        raise ProvisionFailure(f"docker {cmd[1]} failed (exit code {result.returncode})", cmd=cmd, returncode=result.returncode)


def read_rstudio_password(*, vault_name: str, secret_name: str) -> str:
    """Fetch the `password` field of the JSON credentials secret."""
    try:
        raw = azure_utils.kv_secret_get(vault_name=vault_name, secret_name=secret_name)
    except subprocess.CalledProcessError as e:
        raise PreconditionMissing(
            f"Key Vault secret '{secret_name}' could not be read from vault '{vault_name}' (exit code {e.returncode})"
        ) from e
    if not raw:
        raise PreconditionMissing(f"Key Vault secret '{secret_name}' not found in vault '{vault_name}'")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        raise PreconditionMissing(f"Key Vault secret '{secret_name}' is not valid JSON")
    password = payload.get("password") if isinstance(payload, dict) else None
    if azure_utils.clean_name(password) is None:
        raise PreconditionMissing(f"Failed to retrieve RStudio password from secret '{secret_name}'")
    return str(password)


def ensure_image(
    *,
    acr_name: str,
    repository: str,
    tag: str,
    context_dir: Path,
    vault_name: str,
    secret_name: str,
) -> str:
    """Build + push `repository:tag` into ACR unless the tag already exists.

    Returns the full image reference either way.
    """
    image = image_ref(acr_name=acr_name, repository=repository, tag=tag)
    note(f"Full image name: {image}")

    if azure_utils.acr_tag_exists(acr_name=acr_name, repository=repository, tag=tag):
        note(f"Image {image} already exists, skipping build.")
        return image

    if not context_dir.is_dir():
        raise PreconditionMissing(f"Docker build context not found: {context_dir}")

    password = read_rstudio_password(vault_name=vault_name, secret_name=secret_name)

    note(f"Building and pushing image: {image}")
    _run_docker(build_docker_build_cmd(image=image, build_args={"RSTUDIO_PASSWORD": password}), workdir=context_dir)
    _run_docker(build_docker_push_cmd(image=image), workdir=context_dir)
    return image
