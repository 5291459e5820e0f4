from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from scripts.deploy.deploy_errors import PreconditionMissing
from scripts.deploy.kube_access import configure_cluster_access, current_context, find_cluster_context

KUBECONFIG = """
apiVersion: v1
kind: Config
clusters:
- name: rstudio-aks
  cluster:
    server: https://rstudio-aks-dns.hcp.centralus.azmk8s.io:443
contexts:
- name: rstudio-aks
  context:
    cluster: rstudio-aks
    user: clusterUser_rstudio-aks-rg_rstudio-aks
current-context: rstudio-aks
users: []
"""


def test_find_cluster_context():
    assert find_cluster_context(KUBECONFIG, "rstudio-aks") == "rstudio-aks"
    assert find_cluster_context(KUBECONFIG, "other") is None
    assert find_cluster_context("", "rstudio-aks") is None
    assert find_cluster_context("contexts: nope", "rstudio-aks") is None


def test_current_context():
    assert current_context(KUBECONFIG) == "rstudio-aks"
    assert current_context("- a list") == ""


def test_configure_cluster_access_writes_and_checks(tmp_path: Path):
    kubeconfig = tmp_path / "config"

    def fake_get_credentials(*, resource_group, cluster_name, kubeconfig):
        kubeconfig.write_text(KUBECONFIG, encoding="utf-8")

    with patch("scripts.deploy.azure_utils.aks_get_credentials", side_effect=fake_get_credentials) as mock_creds:
        context = configure_cluster_access(resource_group="rstudio-aks-rg", cluster_name="rstudio-aks", kubeconfig=kubeconfig)

    assert context == "rstudio-aks"
    mock_creds.assert_called_once_with(resource_group="rstudio-aks-rg", cluster_name="rstudio-aks", kubeconfig=kubeconfig)


def test_configure_cluster_access_missing_context(tmp_path: Path):
    kubeconfig = tmp_path / "config"
    kubeconfig.write_text(KUBECONFIG, encoding="utf-8")

    with patch("scripts.deploy.azure_utils.aks_get_credentials"):
        with pytest.raises(PreconditionMissing):
            configure_cluster_access(resource_group="rstudio-aks-rg", cluster_name="rstudio-aks-2", kubeconfig=kubeconfig)


def test_configure_cluster_access_no_file(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.aks_get_credentials"):
        with pytest.raises(PreconditionMissing):
            configure_cluster_access(
                resource_group="rstudio-aks-rg", cluster_name="rstudio-aks", kubeconfig=tmp_path / "missing"
            )


def test_configure_cluster_access_malformed_yaml(tmp_path: Path):
    kubeconfig = tmp_path / "config"
    kubeconfig.write_text("contexts: [unclosed", encoding="utf-8")

    with patch("scripts.deploy.azure_utils.aks_get_credentials"):
        with pytest.raises(PreconditionMissing) as exc:
            configure_cluster_access(resource_group="rstudio-aks-rg", cluster_name="rstudio-aks", kubeconfig=kubeconfig)

    assert "is not valid YAML" in str(exc.value)


def test_configure_cluster_access_undecodable_file(tmp_path: Path):
    kubeconfig = tmp_path / "config"
    kubeconfig.write_bytes(b"\xff\xfe\x00bad")

    with patch("scripts.deploy.azure_utils.aks_get_credentials"):
        with pytest.raises(PreconditionMissing) as exc:
            configure_cluster_access(resource_group="rstudio-aks-rg", cluster_name="rstudio-aks", kubeconfig=kubeconfig)

    assert "could not be read" in str(exc.value)
