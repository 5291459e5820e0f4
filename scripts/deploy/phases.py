"""Ordered, fail-fast phase runner shared by apply and destroy.

Each phase takes the immutable config plus the names discovered so far and
returns a new DiscoveredNames. The first failure stops the run.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, fields
from typing import Callable, Sequence

from scripts.deploy.console import error, note
from scripts.deploy.deploy_config import DeployConfig
from scripts.deploy.deploy_errors import DeployError, DiscoveryEmpty, ProvisionFailure


@dataclass(frozen=True)
class DiscoveredNames:
    vault_name: str | None = None
    acr_name: str | None = None
    storage_account: str | None = None
    cluster_name: str | None = None
    image: str | None = None

    def require(self, field_name: str) -> str:
        if field_name not in {f.name for f in fields(self)}:
            raise KeyError(field_name)
        value = getattr(self, field_name)
        if not value:
            raise DiscoveryEmpty(kind=field_name, message=f"{field_name} was not discovered by an earlier phase")
        return value


PhaseFn = Callable[[DeployConfig, DiscoveredNames], DiscoveredNames]


@dataclass(frozen=True)
class Phase:
    name: str
    run: PhaseFn


def run_phases(
    phases: Sequence[Phase],
    *,
    config: DeployConfig,
    names: DiscoveredNames | None = None,
) -> DiscoveredNames:
    names = names or DiscoveredNames()
    total = len(phases)

    for idx, phase in enumerate(phases, start=1):
        note(f"Phase {idx}/{total}: {phase.name}")
        try:
            names = phase.run(config, names)
        except DeployError as e:
            error(f"Phase '{phase.name}' failed: {e}")
            raise
        except subprocess.CalledProcessError as e:
            error(f"Phase '{phase.name}' failed: command exited with {e.returncode}: {' '.join(map(str, e.cmd))}")
            raise ProvisionFailure(str(e), cmd=list(map(str, e.cmd)), returncode=e.returncode) from e
        except RuntimeError as e:
            # e.g. Azure CLI missing
            error(f"Phase '{phase.name}' failed: {e}")
            raise DeployError(str(e)) from e

    return names
