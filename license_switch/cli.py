"""Command line interface for bulk Microsoft 365 license switching."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .catalog import CatalogUnavailable, fetch_catalog
from .config import AppConfig, ConfigurationError, load_config
from .graph_client import GraphClient, GraphClientError
from .models import LicenseIdentifier
from .reporting import Reporter
from .workflow import LicenseSwitchWorkflow, SwitchOptions

app = typer.Typer(help="Move users from one Microsoft 365 license to another in bulk.")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_configuration(config_path: Optional[Path]) -> AppConfig:
    try:
        return load_config(config_path)
    except ConfigurationError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)


def _build_client(config: AppConfig, tenant: Optional[str]) -> GraphClient:
    try:
        return GraphClient(config.graph, tenant=tenant)
    except GraphClientError as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)


def _identifiers(
    source_name: Optional[str],
    destination_name: Optional[str],
    source_id: Optional[str],
    destination_id: Optional[str],
) -> tuple[LicenseIdentifier, LicenseIdentifier]:
    by_name = source_name is not None or destination_name is not None
    by_id = source_id is not None or destination_id is not None
    if by_name and by_id:
        raise typer.BadParameter(
            "Use either --source-name/--destination-name or --source-id/--destination-id, not both."
        )
    if by_name:
        if not (source_name and destination_name):
            raise typer.BadParameter("Both --source-name and --destination-name are required.")
        return LicenseIdentifier.by_name(source_name), LicenseIdentifier.by_name(destination_name)
    if by_id:
        if not (source_id and destination_id):
            raise typer.BadParameter("Both --source-id and --destination-id are required.")
        return LicenseIdentifier.by_id(source_id), LicenseIdentifier.by_id(destination_id)
    raise typer.BadParameter(
        "Provide --source-name/--destination-name or --source-id/--destination-id."
    )


@app.command("skus")
def list_skus(
    tenant: Optional[str] = typer.Option(
        None, "--tenant", help="Tenant ID or domain (overrides the configured tenant)."
    ),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to a specific settings file (overrides default)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable informational logging."),
) -> None:
    """List the tenant's subscribed licenses and their unit counts."""

    _configure_logging(verbose)
    config = _load_configuration(config_path)
    client = _build_client(config, tenant)

    try:
        client.connect()
        catalog = fetch_catalog(client)
    except (GraphClientError, CatalogUnavailable) as exc:
        typer.echo(f"Error: {exc}")
        raise typer.Exit(code=1)

    if not catalog:
        typer.echo("No subscribed SKUs found.")
        raise typer.Exit(code=0)

    typer.echo(f"{'SKU':<40} {'SKU ID':<38} {'Total':>7} {'Used':>7} {'Free':>7}")
    for record in sorted(catalog, key=lambda item: item.sku_name.lower()):
        typer.echo(
            f"{record.sku_name:<40} {record.sku_id:<38} {record.total_units:>7} "
            f"{record.consumed_units:>7} {record.reportable_available_units:>7}"
        )


@app.command("switch")
def switch(
    source_name: Optional[str] = typer.Option(
        None, "--source-name", help="Part number of the license to move users off (e.g. ENTERPRISEPACK)."
    ),
    destination_name: Optional[str] = typer.Option(
        None, "--destination-name", help="Part number of the license to move users onto."
    ),
    source_id: Optional[str] = typer.Option(None, "--source-id", help="SKU ID of the source license."),
    destination_id: Optional[str] = typer.Option(
        None, "--destination-id", help="SKU ID of the destination license."
    ),
    export_path: Optional[Path] = typer.Option(
        None, "--export-path", help="CSV audit file (defaults to a timestamped file)."
    ),
    preview: bool = typer.Option(False, "--preview", help="Simulate the switch without changing licenses."),
    tenant: Optional[str] = typer.Option(
        None, "--tenant", help="Tenant ID or domain (overrides the configured tenant)."
    ),
    test_mode: bool = typer.Option(False, "--test-mode", help="Only process the first few users."),
    max_test_users: Optional[int] = typer.Option(
        None, "--max-test-users", min=1, help="Number of users processed in test mode (default 5)."
    ),
    include_usage_location: bool = typer.Option(
        False, "--include-usage-location", help="Add a UsageLocation column to the export."
    ),
    assume_yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show a line for every user."),
    config_path: Optional[Path] = typer.Option(
        None, "--config", help="Path to a specific settings file (overrides default)."
    ),
) -> None:
    """Switch every holder of the source license to the destination license."""

    source, destination = _identifiers(source_name, destination_name, source_id, destination_id)
    _configure_logging(verbose)
    config = _load_configuration(config_path)
    client = _build_client(config, tenant)

    options = SwitchOptions(
        source=source,
        destination=destination,
        export_path=export_path,
        preview=preview,
        test_mode=test_mode,
        max_test_users=max_test_users or config.switch.max_test_users,
        include_usage_location=include_usage_location,
        assume_yes=assume_yes,
    )
    workflow = LicenseSwitchWorkflow(
        client,
        config,
        Reporter(verbose=verbose),
        confirm=lambda prompt: typer.confirm(prompt, default=False),
    )
    result = workflow.run(options)
    if not result.succeeded:
        raise typer.Exit(code=1)


def run():
    app()


if __name__ == "__main__":
    run()
