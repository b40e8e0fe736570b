"""Data models for licenses, users and switch runs."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional


class IdentifierKind(str, enum.Enum):
    NAME = "name"
    ID = "id"


@dataclass(frozen=True)
class LicenseIdentifier:
    """A license addressed either by its part number or by its SKU ID."""

    kind: IdentifierKind
    value: str

    @classmethod
    def by_name(cls, value: str) -> "LicenseIdentifier":
        return cls(IdentifierKind.NAME, value.strip())

    @classmethod
    def by_id(cls, value: str) -> "LicenseIdentifier":
        return cls(IdentifierKind.ID, value.strip())

    def __str__(self) -> str:
        return f"{self.kind.value} '{self.value}'"


@dataclass(frozen=True)
class LicenseRecord:
    """Represents one subscribed SKU in the tenant."""

    sku_id: str
    sku_name: str
    total_units: int = 0
    consumed_units: int = 0

    @property
    def available_units(self) -> int:
        return self.total_units - self.consumed_units

    @property
    def reportable_available_units(self) -> int:
        return max(0, self.available_units)

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> "LicenseRecord":
        prepaid = data.get("prepaidUnits") or {}
        return cls(
            sku_id=str(data.get("skuId") or "").strip(),
            sku_name=str(data.get("skuPartNumber") or "").strip(),
            total_units=int(prepaid.get("enabled") or 0),
            consumed_units=int(data.get("consumedUnits") or 0),
        )


@dataclass(frozen=True)
class UserRecord:
    """Point-in-time snapshot of a directory user."""

    id: str
    display_name: str
    principal_name: str
    assigned_license_ids: FrozenSet[str] = frozenset()
    usage_location: Optional[str] = None

    def holds(self, sku_id: str) -> bool:
        target = sku_id.lower()
        return any(assigned.lower() == target for assigned in self.assigned_license_ids)

    @classmethod
    def from_graph(cls, data: Dict[str, Any]) -> "UserRecord":
        licenses = data.get("assignedLicenses") or []
        return cls(
            id=str(data.get("id") or ""),
            display_name=str(data.get("displayName") or ""),
            principal_name=str(data.get("userPrincipalName") or ""),
            assigned_license_ids=frozenset(
                str(entry.get("skuId")) for entry in licenses if entry.get("skuId")
            ),
            usage_location=(str(data.get("usageLocation") or "").strip() or None),
        )


@dataclass(frozen=True)
class SwitchRequest:
    """The resolved license pair applied to every discovered user."""

    source: LicenseRecord
    destination: LicenseRecord


class RunState(str, enum.Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    CATALOG_FETCHED = "catalog_fetched"
    VALIDATED = "validated"
    DISCOVERED = "discovered"
    SAMPLED = "sampled"
    EXPORTED = "exported"
    SWITCHING = "switching"
    REPORTED = "reported"
    ABORTED = "aborted"


@dataclass
class RunResult:
    """Outcome of a single switch run, kept in memory for the final report."""

    total_discovered: int = 0
    total_processed: int = 0
    success_count: int = 0
    failure_count: int = 0
    export_path: Optional[Path] = None
    search_duration: float = 0.0
    switch_duration: float = 0.0
    preview: bool = False
    test_mode: bool = False
    state: RunState = RunState.IDLE
    aborted_reason: Optional[str] = None
    request: Optional[SwitchRequest] = field(default=None, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.state is not RunState.ABORTED


__all__ = [
    "IdentifierKind",
    "LicenseIdentifier",
    "LicenseRecord",
    "RunResult",
    "RunState",
    "SwitchRequest",
    "UserRecord",
]
