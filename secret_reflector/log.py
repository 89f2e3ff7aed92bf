"""Status output.  Everything goes to stderr so stdout stays clean."""
from __future__ import annotations

import sys

PREFIX = "[secret-reflector]"


def log(msg: str) -> None:
    print(f"{PREFIX} {msg}", file=sys.stderr)


def warn(msg: str) -> None:
    log(f"WARNING: {msg}")
