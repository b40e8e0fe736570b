"""SKU catalog retrieval, identifier resolution and switch validation."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from .graph_client import GraphClient, GraphClientError
from .models import IdentifierKind, LicenseIdentifier, LicenseRecord, SwitchRequest

logger = logging.getLogger(__name__)


class CatalogUnavailable(RuntimeError):
    """Raised when the tenant's subscribed SKUs cannot be listed."""


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    reason: str
    request: Optional[SwitchRequest] = None


def fetch_catalog(client: GraphClient) -> List[LicenseRecord]:
    """Return every subscribed SKU with its unit counts."""

    try:
        payload = client.list_subscribed_skus()
    except GraphClientError as exc:
        raise CatalogUnavailable(f"Unable to list subscribed SKUs: {exc}") from exc

    catalog = [LicenseRecord.from_graph(entry) for entry in payload]
    logger.info("Fetched %s subscribed SKUs", len(catalog))
    return catalog


def resolve_license(
    catalog: Iterable[LicenseRecord], identifier: LicenseIdentifier
) -> Optional[LicenseRecord]:
    """Find the catalog entry matching ``identifier``.

    Part numbers and SKU IDs are compared case-insensitively. Should the
    catalog ever carry duplicates, the first match wins.
    """

    wanted = identifier.value.strip().lower()
    if not wanted:
        return None
    for record in catalog:
        candidate = record.sku_name if identifier.kind is IdentifierKind.NAME else record.sku_id
        if candidate.lower() == wanted:
            return record
    return None


def validate_switch(
    catalog: List[LicenseRecord],
    source: LicenseIdentifier,
    destination: LicenseIdentifier,
) -> ValidationResult:
    """Check that both licenses exist and the destination has spare units.

    The source license's utilization is not checked.
    """

    if source.kind is not destination.kind:
        return ValidationResult(
            False,
            f"Source and destination must both be given by {source.kind.value}; "
            f"got {source} and {destination}.",
        )

    source_record = resolve_license(catalog, source)
    if source_record is None:
        return ValidationResult(False, f"Source license {source} was not found in the tenant.")

    destination_record = resolve_license(catalog, destination)
    if destination_record is None:
        return ValidationResult(
            False, f"Destination license {destination} was not found in the tenant."
        )

    if source_record.sku_id.lower() == destination_record.sku_id.lower():
        return ValidationResult(
            False, f"Source and destination both resolve to {source_record.sku_name}."
        )

    available = destination_record.available_units
    if available <= 0:
        return ValidationResult(
            False,
            f"Destination license {destination_record.sku_name} has no available units "
            f"({destination_record.consumed_units}/{destination_record.total_units} consumed).",
        )

    request = SwitchRequest(source=source_record, destination=destination_record)
    return ValidationResult(
        True,
        f"{source_record.sku_name} -> {destination_record.sku_name} "
        f"({available} destination units available).",
        request,
    )


__all__ = [
    "CatalogUnavailable",
    "ValidationResult",
    "fetch_catalog",
    "resolve_license",
    "validate_switch",
]
