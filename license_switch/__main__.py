"""Entry point for running the CLI as a module."""
from __future__ import annotations

import sys

try:
    from .cli import run
except ModuleNotFoundError as exc:  # pragma: no cover - missing dependency guard
    missing = getattr(exc, "name", None)
    if missing in {"typer", "msal", "requests", "yaml"}:
        sys.stderr.write(
            f"Missing dependency '{missing}'. Install the project with\n"
            "    pip install -e .\n"
        )
        raise SystemExit(1) from exc
    raise

run()
