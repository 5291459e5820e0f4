"""Readiness poller for the RStudio ingress endpoint.

Resolves the DNS label bound to the ingress public IP once, then issues plain
HTTP GETs against the health path at a fixed interval until the expected
status comes back or the attempt budget runs out.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

import requests

from scripts.deploy import azure_utils
from scripts.deploy.console import note, warn
from scripts.deploy.deploy_config import PollSettings
from scripts.deploy.deploy_errors import EndpointUnhealthy, NameResolutionFailure, PollTimeout

# Status reported when no HTTP response arrived at all (mirrors curl's 000).
NO_RESPONSE = 0


@dataclass(frozen=True)
class Endpoint:
    host: str
    path: str = "/auth-sign-in"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}"

    @property
    def url(self) -> str:
        return f"{self.base_url}{self.path}"


def resolve_endpoint(*, resource_group: str, public_ip_name: str, path: str) -> Endpoint:
    fqdn = azure_utils.get_public_ip_fqdn(resource_group=resource_group, name=public_ip_name)
    if not fqdn:
        raise NameResolutionFailure(
            f"DNS name not found for Public IP '{public_ip_name}' in resource group '{resource_group}'."
        )
    return Endpoint(host=fqdn, path=path)


def probe(url: str, *, expected_status: int, timeout_seconds: float) -> int:
    """One GET; returns the status or raises EndpointUnhealthy."""
    try:
        resp = requests.get(url, timeout=timeout_seconds, allow_redirects=False, stream=True)
        try:
            status = int(resp.status_code)
        finally:
            resp.close()
    except requests.RequestException:
        status = NO_RESPONSE
    if status != expected_status:
        raise EndpointUnhealthy(status)
    return status


def wait_for_endpoint(
    endpoint: Endpoint,
    *,
    settings: PollSettings,
    sleep: Callable[[float], None] | None = None,
) -> int:
    """Poll until ready. Returns the attempt number that succeeded."""
    sleep = sleep or time.sleep
    note(f"Waiting for endpoint: {endpoint.base_url}")

    for attempt in range(1, settings.max_attempts + 1):
        try:
            probe(endpoint.url, expected_status=settings.expected_status, timeout_seconds=settings.timeout_seconds)
        except EndpointUnhealthy as e:
            warn(f"Try {attempt}/{settings.max_attempts}: {e}. Retrying...")
            if attempt < settings.max_attempts:
                sleep(settings.interval_seconds)
            continue

        note(f"RStudio ready at: {endpoint.base_url}")
        return attempt

    raise PollTimeout(attempts=settings.max_attempts, expected_status=settings.expected_status)


def validate_deployment(
    *,
    resource_group: str,
    public_ip_name: str,
    path: str,
    settings: PollSettings,
    sleep: Callable[[float], None] | None = None,
) -> Endpoint:
    endpoint = resolve_endpoint(resource_group=resource_group, public_ip_name=public_ip_name, path=path)
    wait_for_endpoint(endpoint, settings=settings, sleep=sleep)
    return endpoint
