"""Test-mode sampling and the per-user license switch loop."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .graph_client import GraphClient, GraphClientError
from .models import SwitchRequest, UserRecord
from .reporting import Reporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SampleResult:
    users: List[UserRecord]
    original_count: int

    @property
    def truncated(self) -> bool:
        return len(self.users) < self.original_count


@dataclass
class SwitchTally:
    success_count: int = 0
    failure_count: int = 0
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return self.success_count + self.failure_count


def sample_users(users: Sequence[UserRecord], limit: int) -> SampleResult:
    """Keep the first ``limit`` users in discovery order; asking for more returns all of them."""

    return SampleResult(users=list(users[: max(0, limit)]), original_count=len(users))


def _ensure_usage_location(client: GraphClient, user: UserRecord, default: Optional[str]) -> None:
    if user.usage_location or not default:
        return
    logger.info("Setting usageLocation=%s for %s", default, user.principal_name)
    client.update_user(user.id, usageLocation=default)


def switch_licenses(
    client: Optional[GraphClient],
    users: Sequence[UserRecord],
    request: SwitchRequest,
    reporter: Reporter,
    preview: bool = False,
    delay_seconds: float = 0.5,
    default_usage_location: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SwitchTally:
    """Replace the source SKU with the destination SKU on each user, one at a time.

    A failing user is logged and counted; the loop always moves on to the next one.
    """

    tally = SwitchTally()
    source_id = request.source.sku_id
    destination_id = request.destination.sku_id
    total = len(users)

    for index, user in enumerate(users, start=1):
        label = f"[{index}/{total}] {user.display_name} ({user.principal_name})"
        if preview:
            reporter.user(
                f"{label}: would switch {request.source.sku_name} -> {request.destination.sku_name}"
            )
            tally.success_count += 1
        else:
            try:
                _ensure_usage_location(client, user, default_usage_location)
                client.assign_license(user.id, destination_id, remove_skus=[source_id])
            except GraphClientError as exc:
                tally.failure_count += 1
                tally.failures[user.id] = str(exc)
                reporter.user(f"{label}: FAILED - {exc}")
                logger.warning("License switch failed for %s: %s", user.principal_name, exc)
            except Exception as exc:
                tally.failure_count += 1
                tally.failures[user.id] = str(exc)
                reporter.user(f"{label}: FAILED - {exc}")
                logger.exception("Unexpected error switching license for %s", user.principal_name)
            else:
                tally.success_count += 1
                reporter.user(f"{label}: switched")
                logger.info(
                    "Switched %s from %s to %s", user.principal_name, source_id, destination_id
                )
        sleep(delay_seconds)

    return tally


__all__ = ["SampleResult", "SwitchTally", "sample_users", "switch_licenses"]
