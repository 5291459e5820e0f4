"""Terraform command builders and a runner that turns failures into ProvisionFailure."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Mapping

from scripts.deploy.deploy_errors import PreconditionMissing, ProvisionFailure


def _var_flags(variables: Mapping[str, str] | None) -> list[str]:
    flags: list[str] = []
    for key, value in (variables or {}).items():
        flags.append(f"-var={key}={value}")
    return flags


def build_terraform_init_cmd() -> list[str]:
    return ["terraform", "init", "-input=false"]


def build_terraform_apply_cmd(*, variables: Mapping[str, str] | None = None) -> list[str]:
    return ["terraform", "apply", "-input=false", *_var_flags(variables), "-auto-approve"]


def build_terraform_destroy_cmd(
    *,
    variables: Mapping[str, str] | None = None,
    targets: list[str] | None = None,
) -> list[str]:
    cmd = ["terraform", "destroy", "-input=false", *_var_flags(variables)]
    for target in targets or []:
        cmd.append(f"-target={target}")
    cmd.append("-auto-approve")
    return cmd


def run_terraform(cmd: list[str], *, workdir: Path) -> None:
    """Run one terraform command inside a layer directory; any non-zero exit is fatal."""
    if not workdir.is_dir():
        raise PreconditionMissing(f"Terraform directory not found: {workdir}")
    if not shutil.which("terraform"):
        raise PreconditionMissing("Terraform not found. Please install it.")

    print(f"[tf] ({workdir.name}) {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, cwd=str(workdir), check=False)
    except OSError as e:
        raise ProvisionFailure(f"Terraform {cmd[1]} could not start in {workdir.name}: {e}", cmd=cmd) from e
    if result.returncode != 0:
        raise ProvisionFailure(
            f"Terraform {cmd[1]} failed in {workdir.name} (exit code {result.returncode})",
            cmd=cmd,
            returncode=result.returncode,
        )


def terraform_apply(*, workdir: Path, variables: Mapping[str, str] | None = None) -> None:
    run_terraform(build_terraform_init_cmd(), workdir=workdir)
    run_terraform(build_terraform_apply_cmd(variables=variables), workdir=workdir)


def terraform_destroy(
    *,
    workdir: Path,
    variables: Mapping[str, str] | None = None,
    targets: list[str] | None = None,
    init: bool = True,
) -> None:
    if init:
        run_terraform(build_terraform_init_cmd(), workdir=workdir)
    run_terraform(build_terraform_destroy_cmd(variables=variables, targets=targets), workdir=workdir)
