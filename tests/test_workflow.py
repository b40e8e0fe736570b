from __future__ import annotations

import csv
from pathlib import Path

import pytest

from license_switch.config import AppConfig
from license_switch.models import LicenseIdentifier, RunState
from license_switch.reporting import Reporter
from license_switch.workflow import LicenseSwitchWorkflow, SwitchOptions

from fakes import SKU_A, SKU_B, FakeGraphClient, RecordingEcho, graph_error, make_sku, make_user


def _client(total_b: int = 10, consumed_b: int = 2) -> FakeGraphClient:
    return FakeGraphClient(
        skus=[make_sku(SKU_A, "A", 10, 3), make_sku(SKU_B, "B", total_b, consumed_b)],
        users=[
            make_user("u1", [SKU_A]),
            make_user("u2", [SKU_A]),
            make_user("u3", [SKU_A]),
            make_user("u4", [SKU_B]),
        ],
    )


class Harness:
    def __init__(self, client: FakeGraphClient, tmp_path: Path, confirm_answer: bool = True) -> None:
        self.client = client
        self.echo = RecordingEcho()
        self.prompts = []
        self.delays = []
        config = AppConfig()
        config.switch.export_dir = tmp_path

        def confirm(prompt: str) -> bool:
            self.prompts.append(prompt)
            return confirm_answer

        self.workflow = LicenseSwitchWorkflow(
            client, config, Reporter(echo=self.echo), confirm=confirm, sleep=self.delays.append
        )

    def run(self, **overrides):
        options = SwitchOptions(
            source=LicenseIdentifier.by_name("A"),
            destination=LicenseIdentifier.by_name("B"),
            **overrides,
        )
        return self.workflow.run(options)


def _rows(path: Path):
    with Path(path).open(newline="", encoding="utf-8") as handle:
        return list(csv.DictReader(handle))


def test_destination_without_capacity_is_rejected(tmp_path: Path) -> None:
    client = FakeGraphClient(
        skus=[make_sku(SKU_A, "A", 100, 40), make_sku(SKU_B, "B", 50, 50)],
        users=[make_user("u1", [SKU_A])],
    )
    harness = Harness(client, tmp_path)

    result = harness.run()

    assert result.state is RunState.ABORTED
    assert "no available units" in result.aborted_reason
    assert client.assign_calls == []
    assert list(tmp_path.iterdir()) == []


def test_full_run_switches_every_holder(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path)

    result = harness.run()

    assert result.succeeded
    assert result.state is RunState.REPORTED
    assert (result.total_discovered, result.total_processed) == (3, 3)
    assert (result.success_count, result.failure_count) == (3, 0)
    assert len(_rows(result.export_path)) == 3
    assert [call["user_id"] for call in harness.client.assign_calls] == ["u1", "u2", "u3"]
    assert len(harness.prompts) == 1
    assert len(harness.delays) == 3


def test_test_mode_limits_export_and_switches(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path)

    result = harness.run(test_mode=True, max_test_users=2)

    assert result.total_discovered == 3
    assert result.total_processed == 2
    assert len(_rows(result.export_path)) == 2
    assert len(harness.client.assign_calls) == 2
    assert result.success_count + result.failure_count == 2


def test_test_mode_cap_above_population_keeps_everyone(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path)

    result = harness.run(test_mode=True, max_test_users=1000)

    assert result.total_processed == 3
    assert len(harness.client.assign_calls) == 3


def test_preview_exports_but_never_mutates(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path, confirm_answer=False)

    result = harness.run(preview=True)

    assert result.preview
    assert harness.client.assign_calls == []
    assert harness.prompts == []
    assert result.success_count == 3
    assert len(_rows(result.export_path)) == 3
    assert "SIMULATED" in harness.echo.text


def test_declined_confirmation_stops_before_switching(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path, confirm_answer=False)

    result = harness.run()

    assert result.state is RunState.ABORTED
    assert harness.client.assign_calls == []
    assert result.export_path is not None


def test_assume_yes_skips_prompt(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path, confirm_answer=False)

    result = harness.run(assume_yes=True)

    assert harness.prompts == []
    assert result.success_count == 3


def test_partial_failures_are_reported(tmp_path: Path) -> None:
    client = _client()
    client.failing_users = {"u2": graph_error(400, "Invalid usage location")}
    harness = Harness(client, tmp_path)

    result = harness.run()

    assert result.succeeded
    assert (result.success_count, result.failure_count) == (2, 1)


def test_zero_holders_ends_gracefully(tmp_path: Path) -> None:
    client = _client()
    client.users = [make_user("u4", [SKU_B])]
    harness = Harness(client, tmp_path)

    result = harness.run()

    assert result.succeeded
    assert result.total_discovered == 0
    assert harness.prompts == []
    assert harness.client.assign_calls == []
    assert _rows(result.export_path) == []
    assert result.export_path.read_text(encoding="utf-8").startswith("DisplayName,")


def test_discovery_failure_aborts(tmp_path: Path) -> None:
    client = _client()
    client.filtered_error = graph_error(400, "Unsupported query")
    client.scan_error = graph_error(503, "Service unavailable")
    harness = Harness(client, tmp_path)

    result = harness.run()

    assert result.state is RunState.ABORTED
    assert "discovery failed" in result.aborted_reason
    assert client.assign_calls == []


@pytest.mark.parametrize("attribute", ["connect_error", "catalog_error"])
def test_failures_before_discovery_abort(tmp_path: Path, attribute: str) -> None:
    client = _client()
    setattr(client, attribute, graph_error(401, "Unauthorized"))
    harness = Harness(client, tmp_path)

    result = harness.run()

    assert result.state is RunState.ABORTED
    assert not result.succeeded
    assert client.assign_calls == []


def test_explicit_export_path_is_used(tmp_path: Path) -> None:
    harness = Harness(_client(), tmp_path)
    target = tmp_path / "custom.csv"

    result = harness.run(export_path=target, preview=True)

    assert result.export_path == target
    assert target.exists()
