#!/usr/bin/env python3
"""Wait until the RStudio ingress answers on its sign-in page.

Looks up the DNS label of the ingress public IP, then polls
http://<fqdn>/auth-sign-in until it returns HTTP 200.

Exit codes:
- 0: endpoint ready
- 1: DNS label missing, or timed out
- 2: invalid .env.deploy
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[2]))

from scripts.deploy.console import error
from scripts.deploy.deploy_config import DeployConfig, load_config_or_exit
from scripts.deploy.deploy_errors import DeployError
from scripts.deploy.readiness import validate_deployment

DEFAULT_INFRA_ROOT = Path(__file__).resolve().parents[2]


def run_validation(config: DeployConfig) -> int:
    try:
        validate_deployment(
            resource_group=config.aks_resource_group,
            public_ip_name=config.ingress_public_ip_name,
            path=config.health_check_path,
            settings=config.poll,
        )
    except DeployError as e:
        error(str(e))
        return 1
    except subprocess.CalledProcessError as e:
        error(f"Azure CLI failed while resolving the ingress DNS name (exit code {e.returncode}).")
        return 1
    except RuntimeError as e:
        error(str(e))
        return 1
    except KeyboardInterrupt:
        error("Validation interrupted by user.")
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Poll the RStudio ingress until it returns HTTP 200")
    parser.add_argument("--env-file", default=None, help="Deploy env file (default: <infra-root>/.env.deploy)")
    parser.add_argument("--infra-root", default=None)
    parser.add_argument("--max-attempts", type=int, default=None, help="Override VALIDATE_MAX_ATTEMPTS (default: 50)")
    parser.add_argument("--sleep-seconds", type=int, default=None, help="Override VALIDATE_SLEEP_SECONDS (default: 10)")
    parser.add_argument(
        "--timeout-seconds",
        type=int,
        default=None,
        help="Per-request HTTP timeout (default: VALIDATE_HTTP_TIMEOUT_SECONDS or 10)",
    )
    args = parser.parse_args(argv)

    for flag in ("max_attempts", "sleep_seconds", "timeout_seconds"):
        value = getattr(args, flag)
        if value is not None and value < 1:
            parser.error(f"--{flag.replace('_', '-')} must be >= 1")

    infra_root = Path(args.infra_root).expanduser().resolve() if args.infra_root else DEFAULT_INFRA_ROOT
    config = load_config_or_exit(infra_root=infra_root, env_file=args.env_file)

    overrides: dict[str, int] = {}
    if args.max_attempts is not None:
        overrides["max_attempts"] = args.max_attempts
    if args.sleep_seconds is not None:
        overrides["interval_seconds"] = args.sleep_seconds
    if args.timeout_seconds is not None:
        overrides["timeout_seconds"] = args.timeout_seconds
    if overrides:
        config = config.with_poll(**overrides)

    return run_validation(config)


if __name__ == "__main__":
    raise SystemExit(main())
