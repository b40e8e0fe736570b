"""CSV audit export of the users about to be switched."""
from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from .models import UserRecord

logger = logging.getLogger(__name__)

EXPORT_FIELDS = ["DisplayName", "UserPrincipalName", "UserId", "CurrentLicense", "ExportDate"]
USAGE_LOCATION_FIELD = "UsageLocation"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def default_export_path(export_dir: Path, license_name: str, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    safe_name = "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in license_name) or "license"
    return Path(export_dir) / f"LicenseSwitch_{safe_name}_{stamp}.csv"


def export_users(
    users: Sequence[UserRecord],
    license_name: str,
    path: Path,
    include_usage_location: bool = False,
    now: Optional[datetime] = None,
) -> Optional[Path]:
    """Write one row per user; returns the path, or ``None`` if the file could not be written."""

    fieldnames: List[str] = list(EXPORT_FIELDS)
    if include_usage_location:
        fieldnames.append(USAGE_LOCATION_FIELD)
    exported_at = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)

    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=fieldnames)
            writer.writeheader()
            for user in users:
                row = {
                    "DisplayName": user.display_name,
                    "UserPrincipalName": user.principal_name,
                    "UserId": user.id,
                    "CurrentLicense": license_name,
                    "ExportDate": exported_at,
                }
                if include_usage_location:
                    row[USAGE_LOCATION_FIELD] = user.usage_location or ""
                writer.writerow(row)
    except (OSError, csv.Error) as exc:
        logger.warning("Could not write export file %s: %s", path, exc)
        return None

    logger.info("Exported %s users to %s", len(users), path)
    return path


__all__ = ["EXPORT_FIELDS", "USAGE_LOCATION_FIELD", "default_export_path", "export_users"]
