"""In-memory stand-ins for the Graph client used across the test suite."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from license_switch.graph_client import GraphRequestError

SKU_A = "aaaaaaaa-0000-0000-0000-000000000001"
SKU_B = "bbbbbbbb-0000-0000-0000-000000000002"
SKU_C = "cccccccc-0000-0000-0000-000000000003"


def make_sku(sku_id: str, name: str, total: int, consumed: int) -> Dict[str, Any]:
    return {
        "skuId": sku_id,
        "skuPartNumber": name,
        "prepaidUnits": {"enabled": total, "suspended": 0, "warning": 0},
        "consumedUnits": consumed,
    }


def make_user(
    user_id: str, skus: Iterable[str], usage_location: Optional[str] = "US"
) -> Dict[str, Any]:
    return {
        "id": user_id,
        "displayName": f"User {user_id}",
        "userPrincipalName": f"{user_id}@contoso.com",
        "assignedLicenses": [{"skuId": sku, "disabledPlans": []} for sku in skus],
        "usageLocation": usage_location,
    }


def _chunks(items: List[Dict[str, Any]], size: int) -> List[List[Dict[str, Any]]]:
    return [items[index : index + size] for index in range(0, len(items), size)] or [[]]


class FakeGraphClient:
    """Mimics :class:`license_switch.graph_client.GraphClient` without any HTTP."""

    def __init__(
        self,
        skus: Optional[List[Dict[str, Any]]] = None,
        users: Optional[List[Dict[str, Any]]] = None,
        filtered_users: Optional[List[Dict[str, Any]]] = None,
        page_size: int = 999,
    ) -> None:
        self.skus = list(skus or [])
        self.users = list(users or [])
        self.filtered_users = filtered_users
        self.page_size = page_size
        self.connect_error: Optional[Exception] = None
        self.catalog_error: Optional[Exception] = None
        self.filtered_error: Optional[Exception] = None
        self.filtered_count: Optional[int] = None
        self.scan_error: Optional[Exception] = None
        self.failing_users: Dict[str, Exception] = {}
        self.assign_calls: List[Dict[str, Any]] = []
        self.update_calls: List[Dict[str, Any]] = []
        self.scan_pages_served = 0

    def connect(self) -> None:
        if self.connect_error:
            raise self.connect_error

    def list_subscribed_skus(self) -> List[Dict[str, Any]]:
        if self.catalog_error:
            raise self.catalog_error
        return list(self.skus)

    def iter_users(
        self,
        filter_expr: Optional[str] = None,
        select: str = "",
        page_size: int = 999,
        eventual_consistency: bool = False,
        on_count=None,
    ):
        if filter_expr and filter_expr.startswith("assignedLicenses/any"):
            if self.filtered_error:
                raise self.filtered_error
            sku_id = filter_expr.rsplit(" ", 1)[-1].rstrip(")")
            matched = self.filtered_users
            if matched is None:
                matched = [
                    user
                    for user in self.users
                    if any(entry["skuId"] == sku_id for entry in user["assignedLicenses"])
                ]
            if on_count is not None:
                on_count(len(matched) if self.filtered_count is None else self.filtered_count)
            for page in _chunks(matched, self.page_size):
                yield page
            return

        licensed = [user for user in self.users if user["assignedLicenses"]]
        for page in _chunks(licensed, min(page_size, self.page_size)):
            if self.scan_error:
                raise self.scan_error
            self.scan_pages_served += 1
            yield page

    def assign_license(self, user_id, sku_id, disabled_plans=None, remove_skus=None):
        call = {"user_id": user_id, "add": sku_id, "remove": list(remove_skus or [])}
        self.assign_calls.append(call)
        if user_id in self.failing_users:
            raise self.failing_users[user_id]
        return {"id": user_id}

    def update_user(self, user_id, **fields):
        self.update_calls.append({"user_id": user_id, **fields})
        return {}


def graph_error(status_code: int = 400, message: str = "Bad request") -> GraphRequestError:
    return GraphRequestError(status_code, "Request_BadRequest", message)


class RecordingEcho:
    def __init__(self) -> None:
        self.lines: List[str] = []

    def __call__(self, message: str = "") -> None:
        self.lines.append(message)

    @property
    def text(self) -> str:
        return "\n".join(self.lines)
