"""End-to-end license switch run: connect, validate, discover, export, switch, report."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .catalog import CatalogUnavailable, fetch_catalog, validate_switch
from .config import AppConfig
from .discovery import discover_users
from .export import default_export_path, export_users
from .graph_client import GraphClient, GraphClientError
from .models import LicenseIdentifier, RunResult, RunState
from .reporting import Reporter
from .switcher import sample_users, switch_licenses

logger = logging.getLogger(__name__)


@dataclass
class SwitchOptions:
    source: LicenseIdentifier
    destination: LicenseIdentifier
    export_path: Optional[Path] = None
    preview: bool = False
    test_mode: bool = False
    max_test_users: int = 5
    include_usage_location: bool = False
    assume_yes: bool = False


class LicenseSwitchWorkflow:
    """Runs one switch from start to finish.

    Anything that fails before users are discovered aborts the run before a
    single license is touched; failures while switching are counted per user.
    ``confirm`` is the operator gate ahead of the first mutating call.
    """

    def __init__(
        self,
        client: GraphClient,
        config: AppConfig,
        reporter: Reporter,
        confirm: Callable[[str], bool],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.config = config
        self.reporter = reporter
        self.confirm = confirm
        self.sleep = sleep

    def _abort(self, result: RunResult, reason: str) -> RunResult:
        result.state = RunState.ABORTED
        result.aborted_reason = reason
        self.reporter.error(reason)
        logger.error("License switch aborted: %s", reason)
        return result

    def run(self, options: SwitchOptions) -> RunResult:
        result = RunResult(preview=options.preview, test_mode=options.test_mode)

        try:
            self.client.connect()
        except GraphClientError as exc:
            return self._abort(result, f"Authentication failed: {exc}")
        result.state = RunState.CONNECTED

        try:
            catalog = fetch_catalog(self.client)
        except CatalogUnavailable as exc:
            return self._abort(result, str(exc))
        result.state = RunState.CATALOG_FETCHED

        validation = validate_switch(catalog, options.source, options.destination)
        if not validation.ok or validation.request is None:
            return self._abort(result, f"License validation failed: {validation.reason}")
        request = validation.request
        result.request = request
        result.state = RunState.VALIDATED
        self.reporter.info(f"Validated: {validation.reason}")

        self.reporter.info(f"Searching for users holding {request.source.sku_name}...")
        discovery = discover_users(self.client, request.source.sku_id)
        result.search_duration = discovery.elapsed
        if discovery.users is None:
            return self._abort(
                result, "User discovery failed: " + "; ".join(filter(None, discovery.errors))
            )
        users = discovery.users
        result.total_discovered = len(users)
        result.state = RunState.DISCOVERED
        self.reporter.info(
            f"Found {len(users)} users with {request.source.sku_name} "
            f"in {discovery.elapsed:.1f}s ({discovery.strategy} query)."
        )

        if options.test_mode:
            sample = sample_users(users, options.max_test_users)
            users = sample.users
            result.state = RunState.SAMPLED
            self.reporter.info(
                f"Test mode: processing {len(users)} of {sample.original_count} users."
            )
        result.total_processed = len(users)

        export_path = options.export_path or default_export_path(
            self.config.switch.export_dir, request.source.sku_name
        )
        result.export_path = export_users(
            users,
            request.source.sku_name,
            export_path,
            include_usage_location=options.include_usage_location,
        )
        if result.export_path is None:
            self.reporter.warning(f"Export to {export_path} failed; continuing without an audit file.")
        else:
            self.reporter.info(f"Exported {len(users)} users to {result.export_path}.")
        result.state = RunState.EXPORTED

        if not users:
            self.reporter.info("No users hold the source license; nothing to do.")
            return self._report(result)

        if not options.preview and not options.assume_yes:
            prompt = (
                f"Switch {len(users)} users from {request.source.sku_name} "
                f"to {request.destination.sku_name}?"
            )
            if not self.confirm(prompt):
                result.state = RunState.ABORTED
                result.aborted_reason = "Cancelled by operator before any license was changed."
                self.reporter.info(result.aborted_reason)
                self.reporter.summary(result)
                return result

        result.state = RunState.SWITCHING
        started = time.monotonic()
        tally = switch_licenses(
            self.client,
            users,
            request,
            self.reporter,
            preview=options.preview,
            delay_seconds=self.config.switch.delay_seconds,
            default_usage_location=self.config.graph.default_usage_location,
            sleep=self.sleep,
        )
        result.switch_duration = time.monotonic() - started
        result.success_count = tally.success_count
        result.failure_count = tally.failure_count
        return self._report(result)

    def _report(self, result: RunResult) -> RunResult:
        result.state = RunState.REPORTED
        self.reporter.summary(result)
        return result


__all__ = ["LicenseSwitchWorkflow", "SwitchOptions"]
