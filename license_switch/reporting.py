"""Operator-facing output for switch runs."""
from __future__ import annotations

from typing import Callable, Optional

import typer

from .models import RunResult


class Reporter:
    """Console reporter handed to each step instead of module-level print state."""

    def __init__(self, verbose: bool = False, echo: Optional[Callable[[str], None]] = None) -> None:
        self.verbose = verbose
        self._echo = echo or typer.echo
        # Colour only when writing to the console.
        self._colour = echo is None

    def _styled(self, message: str, colour: str) -> None:
        if self._colour:
            typer.secho(message, fg=colour)
        else:
            self._echo(message)

    def info(self, message: str) -> None:
        self._echo(message)

    def warning(self, message: str) -> None:
        self._styled(f"Warning: {message}", typer.colors.YELLOW)

    def error(self, message: str) -> None:
        self._styled(f"Error: {message}", typer.colors.RED)

    def user(self, message: str) -> None:
        if self.verbose:
            self._echo(f"  {message}")

    def summary(self, result: RunResult) -> None:
        title = "License switch summary"
        if result.preview:
            title += " (SIMULATED - preview mode, no changes made)"
        self._echo("")
        self._echo(title)
        self._echo("-" * len(title))
        if result.request is not None:
            self._echo(
                f"Licenses:          {result.request.source.sku_name} -> "
                f"{result.request.destination.sku_name}"
            )
        self._echo(f"Users discovered:  {result.total_discovered}")
        processed = f"Users processed:   {result.total_processed}"
        if result.test_mode:
            processed += " (test mode)"
        self._echo(processed)
        self._echo(f"Successful:        {result.success_count}")
        self._echo(f"Failed:            {result.failure_count}")
        self._echo(f"Export file:       {result.export_path or '(not written)'}")
        self._echo(f"Search time:       {result.search_duration:.1f}s")
        self._echo(f"Switch time:       {result.switch_duration:.1f}s")
        if result.aborted_reason:
            self._echo(f"Aborted:           {result.aborted_reason}")


__all__ = ["Reporter"]
