from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    # Allow tests to import `scripts.*` as a package.
    repo_root = Path(__file__).parents[2]
    sys.path.append(str(repo_root))


@pytest.fixture
def infra_root(tmp_path: Path) -> Path:
    for name in ("01-directory", "02-servers", "03-docker/rstudio", "04-aks"):
        (tmp_path / name).mkdir(parents=True)
    return tmp_path


@pytest.fixture
def deploy_config(infra_root: Path):
    from scripts.deploy.deploy_config import load_deploy_config

    return load_deploy_config(infra_root=infra_root, environ={})
