from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

from scripts.deploy import destroy
from scripts.deploy.azure_utils import ResourceKind
from scripts.deploy.deploy_errors import DiscoveryEmpty

NAMES = {
    ResourceKind.STORAGE_ACCOUNT: "nfs4f2a",
    ResourceKind.CONTAINER_REGISTRY: "rstudioacr42",
    ResourceKind.KEY_VAULT: "ad-key-vault-1a2b",
}


def test_destroy_order_and_variables(infra_root: Path, capsys):
    events: list[tuple] = []

    def tf_destroy(*, workdir, variables=None, targets=None, init=True):
        events.append(("destroy", workdir.name, variables, targets, init))

    def sleep(seconds):
        events.append(("sleep", seconds))

    with patch("scripts.deploy.destroy.check_environment"), patch(
        "scripts.deploy.azure_utils.require_resource_name", side_effect=lambda kind, **_: NAMES[kind]
    ) as mock_discover, patch("scripts.deploy.terraform_helpers.terraform_destroy", side_effect=tf_destroy), patch(
        "scripts.deploy.destroy.time.sleep", side_effect=sleep
    ):
        rc = destroy.main(["--infra-root", str(infra_root)])

    assert rc == 0
    assert events == [
        (
            "destroy",
            "04-aks",
            {"vault_name": "ad-key-vault-1a2b", "acr_name": "rstudioacr42", "storage_account": "nfs4f2a"},
            None,
            True,
        ),
        (
            "destroy",
            "02-servers",
            {"vault_name": "ad-key-vault-1a2b"},
            ["azurerm_private_dns_zone_virtual_network_link.file_link"],
            True,
        ),
        ("sleep", 60),
        ("destroy", "02-servers", {"vault_name": "ad-key-vault-1a2b"}, None, False),
        ("destroy", "01-directory", None, None, True),
    ]

    groups = {c[0][0]: c[1]["resource_group"] for c in mock_discover.call_args_list}
    assert groups[ResourceKind.STORAGE_ACCOUNT] == "rstudio-servers-rg"
    assert groups[ResourceKind.CONTAINER_REGISTRY] == "rstudio-aks-rg"
    assert groups[ResourceKind.KEY_VAULT] == "rstudio-network-rg"
    assert "destroyed successfully" in capsys.readouterr().out


def test_missing_storage_account_destroys_nothing(infra_root: Path, capsys):
    tf_destroy = MagicMock()

    with patch("scripts.deploy.destroy.check_environment"), patch(
        "scripts.deploy.azure_utils.require_resource_name",
        side_effect=DiscoveryEmpty(kind="storage account", resource_group="rstudio-servers-rg", prefix="nfs"),
    ), patch("scripts.deploy.terraform_helpers.terraform_destroy", tf_destroy), patch("scripts.deploy.destroy.time.sleep"):
        rc = destroy.main(["--infra-root", str(infra_root)])

    assert rc == 1
    tf_destroy.assert_not_called()
    assert "No storage account starting with 'nfs'" in capsys.readouterr().err


def test_settle_delay_is_configurable(infra_root: Path):
    (infra_root / ".env.deploy").write_text("DNS_LINK_SETTLE_SECONDS=5\n", encoding="utf-8")

    with patch("scripts.deploy.destroy.check_environment"), patch(
        "scripts.deploy.azure_utils.require_resource_name", side_effect=lambda kind, **_: NAMES[kind]
    ), patch("scripts.deploy.terraform_helpers.terraform_destroy"), patch("scripts.deploy.destroy.time.sleep") as mock_sleep:
        rc = destroy.main(["--infra-root", str(infra_root)])

    assert rc == 0
    mock_sleep.assert_called_once_with(5)


def test_keyboard_interrupt_during_settle_exits_1(infra_root: Path, capsys):
    tf_destroy = MagicMock()

    with patch("scripts.deploy.destroy.check_environment"), patch(
        "scripts.deploy.azure_utils.require_resource_name", side_effect=lambda kind, **_: NAMES[kind]
    ), patch("scripts.deploy.terraform_helpers.terraform_destroy", tf_destroy), patch(
        "scripts.deploy.destroy.time.sleep", side_effect=KeyboardInterrupt
    ):
        rc = destroy.main(["--infra-root", str(infra_root)])

    assert rc == 1
    # cluster layer plus the targeted DNS link destroy; nothing after the interrupted wait
    assert tf_destroy.call_count == 2
    assert "ERROR: Teardown interrupted by user." in capsys.readouterr().err
