from __future__ import annotations

import json
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from scripts.deploy import docker_helpers
from scripts.deploy.deploy_errors import PreconditionMissing, ProvisionFailure

SECRET = json.dumps({"username": "rstudio", "password": "s3cr3t-pass"})


def _ensure(context_dir: Path) -> str:
    return docker_helpers.ensure_image(
        acr_name="rstudioacr42",
        repository="rstudio",
        tag="rstudio-server-rc1",
        context_dir=context_dir,
        vault_name="ad-key-vault-1a2b",
        secret_name="rstudio-credentials",
    )


@pytest.fixture(autouse=True)
def docker_on_path():
    with patch("scripts.deploy.docker_helpers.shutil.which", return_value="/usr/bin/docker"):
        yield


def test_image_ref():
    assert (
        docker_helpers.image_ref(acr_name="rstudioacr42", repository="rstudio", tag="rstudio-server-rc1")
        == "rstudioacr42.azurecr.io/rstudio:rstudio-server-rc1"
    )


def test_build_and_push_cmds():
    build_cmd = docker_helpers.build_docker_build_cmd(
        image="rstudioacr42.azurecr.io/rstudio:rc1",
        build_args={"RSTUDIO_PASSWORD": "pw"},
    )
    assert build_cmd == [
        "docker",
        "build",
        "--build-arg",
        "RSTUDIO_PASSWORD=pw",
        "-t",
        "rstudioacr42.azurecr.io/rstudio:rc1",
        ".",
    ]
    assert docker_helpers.build_docker_push_cmd(image="x:1") == ["docker", "push", "x:1"]


def test_existing_tag_skips_build_and_push(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=True) as mock_tag, patch(
        "scripts.deploy.azure_utils.kv_secret_get"
    ) as mock_secret, patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        image = _ensure(tmp_path)

    assert image == "rstudioacr42.azurecr.io/rstudio:rstudio-server-rc1"
    mock_tag.assert_called_once_with(acr_name="rstudioacr42", repository="rstudio", tag="rstudio-server-rc1")
    mock_secret.assert_not_called()
    mock_run.assert_not_called()


def test_missing_tag_builds_and_pushes_once(tmp_path: Path, capsys):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", return_value=SECRET
    ), patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        mock_run.return_value.returncode = 0
        image = _ensure(tmp_path)

    assert mock_run.call_count == 2
    build_cmd = mock_run.call_args_list[0][0][0]
    push_cmd = mock_run.call_args_list[1][0][0]
    assert build_cmd[:2] == ["docker", "build"]
    assert "RSTUDIO_PASSWORD=s3cr3t-pass" in build_cmd
    assert push_cmd == ["docker", "push", image]
    assert mock_run.call_args_list[0][1]["cwd"] == str(tmp_path)

    out = capsys.readouterr().out
    assert "s3cr3t-pass" not in out
    assert "RSTUDIO_PASSWORD=****" in out


def test_missing_password_is_fatal(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", return_value=json.dumps({"username": "rstudio", "password": None})
    ), patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        with pytest.raises(PreconditionMissing):
            _ensure(tmp_path)

    mock_run.assert_not_called()


def test_missing_secret_is_fatal(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", return_value=None
    ), patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        with pytest.raises(PreconditionMissing):
            _ensure(tmp_path)

    mock_run.assert_not_called()


def test_build_failure_skips_push(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", return_value=SECRET
    ), patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        mock_run.return_value.returncode = 1
        with pytest.raises(ProvisionFailure):
            _ensure(tmp_path)

    assert mock_run.call_count == 1


def test_unreadable_secret_is_precondition(tmp_path: Path):
    err = subprocess.CalledProcessError(3, ["az", "keyvault", "secret", "show"], stderr="SecretNotFound")
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", side_effect=err
    ), patch("scripts.deploy.docker_helpers.subprocess.run") as mock_run:
        with pytest.raises(PreconditionMissing) as exc:
            _ensure(tmp_path)

    assert "rstudio-credentials" in str(exc.value)
    mock_run.assert_not_called()


def test_docker_cannot_start(tmp_path: Path):
    with patch("scripts.deploy.azure_utils.acr_tag_exists", return_value=False), patch(
        "scripts.deploy.azure_utils.kv_secret_get", return_value=SECRET
    ), patch("scripts.deploy.docker_helpers.subprocess.run", side_effect=OSError(8, "Exec format error")) as mock_run:
        with pytest.raises(ProvisionFailure) as exc:
            _ensure(tmp_path)

    assert "docker build could not start" in str(exc.value)
    assert "s3cr3t-pass" not in str(exc.value)
    assert mock_run.call_count == 1
