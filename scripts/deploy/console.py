"""Severity-tagged status lines (NOTE/WARN go to stdout, ERROR to stderr)."""

from __future__ import annotations

import sys


def note(msg: str) -> None:
    print(f"NOTE: {msg}")


def warn(msg: str) -> None:
    print(f"WARN: {msg}")


def error(msg: str) -> None:
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.stderr.flush()
