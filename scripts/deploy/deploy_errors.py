"""Typed failures raised by the deploy phases and the readiness poller.

Every error here is fatal to the run except `EndpointUnhealthy`, which the
poll loop retries until its attempt budget is spent.
"""

from __future__ import annotations


class DeployError(RuntimeError):
    """Base class for failures that abort a deploy/destroy/validate run."""


class PreconditionMissing(DeployError):
    """A required tool, login, credential or setting is absent."""


class DiscoveryEmpty(DeployError):
    def __init__(self, *, kind: str, resource_group: str = "", prefix: str = "", message: str | None = None):
        super().__init__(message or f"No {kind} starting with '{prefix}' found in resource group '{resource_group}'")
        self.kind = kind
        self.resource_group = resource_group
        self.prefix = prefix


class ProvisionFailure(DeployError):
    def __init__(self, message: str, *, cmd: list[str] | None = None, returncode: int | None = None):
        super().__init__(message)
        self.cmd = list(cmd or [])
        self.returncode = returncode


class NameResolutionFailure(DeployError):
    """The ingress public IP has no DNS label (provisioning defect, never retried)."""


class EndpointUnhealthy(DeployError):
    def __init__(self, status_code: int):
        super().__init__(f"HTTP {status_code:03d}")
        self.status_code = status_code


class PollTimeout(DeployError):
    def __init__(self, *, attempts: int, expected_status: int):
        super().__init__(f"Timed out waiting for HTTP {expected_status} after {attempts} attempts.")
        self.attempts = attempts
        self.expected_status = expected_status
