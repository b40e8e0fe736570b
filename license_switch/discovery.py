"""Find every user currently holding a given SKU."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from .graph_client import MAX_PAGE_SIZE, GraphClient, GraphClientError
from .models import UserRecord

logger = logging.getLogger(__name__)

STRATEGY_FILTERED = "filtered"
STRATEGY_SCAN = "scan"


@dataclass(frozen=True)
class DiscoveryAttempt:
    """Result of a single discovery strategy: users, or the error that stopped it."""

    users: Optional[List[UserRecord]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.users is not None


@dataclass(frozen=True)
class DiscoveryOutcome:
    """``users`` is ``None`` when discovery itself failed, not when nobody matched."""

    users: Optional[List[UserRecord]]
    strategy: Optional[str]
    elapsed: float
    errors: tuple = ()


def _license_filter(sku_id: str) -> str:
    return f"assignedLicenses/any(x:x/skuId eq {sku_id})"


def find_users_filtered(client: GraphClient, sku_id: str) -> DiscoveryAttempt:
    """Query users with a server-side license filter, then re-check each one locally."""

    reported: List[int] = []
    try:
        returned: List[UserRecord] = []
        for page in client.iter_users(
            filter_expr=_license_filter(sku_id),
            eventual_consistency=True,
            on_count=reported.append,
        ):
            returned.extend(UserRecord.from_graph(entry) for entry in page)
    except GraphClientError as exc:
        return DiscoveryAttempt(error=str(exc))

    if reported and reported[0] != len(returned):
        logger.warning(
            "Server-side filter reported %s matching users but returned %s for %s",
            reported[0],
            len(returned),
            sku_id,
        )

    validated = [user for user in returned if user.holds(sku_id)]
    if len(validated) != len(returned):
        logger.warning(
            "Server-side filter returned %s users but only %s hold %s; keeping the validated set",
            len(returned),
            len(validated),
            sku_id,
        )
    return DiscoveryAttempt(users=validated)


def find_users_by_scan(
    client: GraphClient, sku_id: str, page_size: int = MAX_PAGE_SIZE
) -> DiscoveryAttempt:
    """Page through all licensed users and keep those holding ``sku_id``."""

    matched: List[UserRecord] = []
    scanned = 0
    pages = 0
    try:
        for page in client.iter_users(
            filter_expr="assignedLicenses/$count ne 0",
            page_size=page_size,
            eventual_consistency=True,
        ):
            pages += 1
            scanned += len(page)
            for entry in page:
                user = UserRecord.from_graph(entry)
                if user.holds(sku_id):
                    matched.append(user)
    except GraphClientError as exc:
        return DiscoveryAttempt(error=str(exc))

    logger.info(
        "Scanned %s licensed users over %s pages; %s hold %s", scanned, pages, len(matched), sku_id
    )
    return DiscoveryAttempt(users=matched)


def discover_users(client: GraphClient, sku_id: str) -> DiscoveryOutcome:
    """Run the filtered query and fall back to a paged scan if it fails."""

    started = time.monotonic()
    primary = find_users_filtered(client, sku_id)
    if primary.ok:
        return DiscoveryOutcome(primary.users, STRATEGY_FILTERED, time.monotonic() - started)

    logger.warning("Filtered user query failed (%s); falling back to a paged scan", primary.error)
    fallback = find_users_by_scan(client, sku_id)
    elapsed = time.monotonic() - started
    if fallback.ok:
        return DiscoveryOutcome(fallback.users, STRATEGY_SCAN, elapsed, (primary.error,))

    logger.error("Paged user scan also failed: %s", fallback.error)
    return DiscoveryOutcome(None, None, elapsed, (primary.error, fallback.error))


__all__ = [
    "DiscoveryAttempt",
    "DiscoveryOutcome",
    "STRATEGY_FILTERED",
    "STRATEGY_SCAN",
    "discover_users",
    "find_users_by_scan",
    "find_users_filtered",
]
