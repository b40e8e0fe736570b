"""Microsoft Graph helper utilities for license reassignment."""
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

import msal
import requests

from .config import GraphConfig


GRAPH_SCOPE = ["https://graph.microsoft.com/.default"]
GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
REQUEST_TIMEOUT = 30
MAX_PAGE_SIZE = 999
USER_SELECT = "id,displayName,userPrincipalName,assignedLicenses,usageLocation"

logger = logging.getLogger(__name__)


class GraphClientError(RuntimeError):
    """Base exception for Microsoft Graph client operations."""


class GraphConfigurationError(GraphClientError):
    """Raised when the Graph integration is not configured."""


class GraphRequestError(GraphClientError):
    """Raised when the Microsoft Graph API returns an error."""

    def __init__(self, status_code: int, error: str, description: str) -> None:
        super().__init__(f"{status_code}: {error} - {description}")
        self.status_code = status_code
        self.error = error
        self.description = description


class GraphClient:
    """Lightweight Microsoft Graph client using the client-credential flow.

    ``tenant`` overrides the configured tenant and accepts either a tenant ID
    or a verified domain such as ``contoso.onmicrosoft.com``.
    """

    def __init__(self, config: GraphConfig, tenant: Optional[str] = None) -> None:
        tenant_id = (tenant or "").strip() or config.tenant_id
        if not (tenant_id and config.client_id and config.client_secret):
            raise GraphConfigurationError(
                "Microsoft Graph credentials are not configured. "
                "Provide tenant_id, client_id, and client_secret."
            )

        self._config = config
        self.tenant = tenant_id
        self._authority = f"https://login.microsoftonline.com/{tenant_id}"
        try:
            self._app = msal.ConfidentialClientApplication(
                client_id=config.client_id,
                client_credential=config.client_secret,
                authority=self._authority,
            )
        except (requests.RequestException, ValueError) as exc:
            # Authority discovery runs here; an unknown tenant domain fails with ValueError.
            raise GraphRequestError(0, "AuthenticationFailed", str(exc)) from exc
        self._token_lock = threading.Lock()
        self._session = requests.Session()

    # ------------------------------------------------------------------ #
    # Token handling / HTTP helpers                                      #
    # ------------------------------------------------------------------ #
    def _acquire_token(self) -> str:
        with self._token_lock:
            try:
                result = self._app.acquire_token_silent(GRAPH_SCOPE, account=None)
                if not result:
                    result = self._app.acquire_token_for_client(scopes=GRAPH_SCOPE)
            except (requests.RequestException, ValueError) as exc:
                raise GraphRequestError(0, "AuthenticationFailed", str(exc)) from exc

        if "access_token" not in result:
            raise GraphRequestError(
                status_code=0,
                error=result.get("error", "token_error"),
                description=result.get("error_description", "Unable to acquire Graph token."),
            )
        return str(result["access_token"])

    def connect(self) -> None:
        """Acquire a token up front so authentication failures surface early."""

        self._acquire_token()
        logger.info("Authenticated against tenant %s", self.tenant)

    def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        url = path if path.startswith("http") else GRAPH_BASE_URL + path
        headers = kwargs.pop("headers", {}) or {}
        headers.setdefault("Authorization", f"Bearer {self._acquire_token()}")
        headers.setdefault("Accept", "application/json")
        if "json" in kwargs:
            headers.setdefault("Content-Type", "application/json")

        try:
            response = self._session.request(
                method,
                url,
                timeout=REQUEST_TIMEOUT,
                headers=headers,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise GraphRequestError(0, "RequestFailed", str(exc)) from exc

        if response.status_code == 204:
            return {}

        if response.status_code >= 400:
            try:
                payload = response.json()
                error = payload.get("error", {})
                code = error.get("code", "GraphError")
                message = error.get("message", response.text)
            except ValueError:
                code = "GraphError"
                message = response.text or "Unknown Graph error."
            raise GraphRequestError(response.status_code, code, message)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise GraphRequestError(
                response.status_code, "InvalidResponse", f"Response from {url} is not JSON: {exc}"
            ) from exc

    def iter_pages(
        self,
        path: str,
        params: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        on_count: Optional[Callable[[int], None]] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """Yield the ``value`` array of every page, following ``@odata.nextLink``.

        ``on_count`` receives ``@odata.count`` from the first page when the service reports it.
        """

        url: Optional[str] = path
        page_params: Optional[Dict[str, str]] = dict(params or {})
        while url:
            result = self._request("GET", url, params=page_params, headers=dict(headers or {}))
            if on_count is not None and page_params is not None and "@odata.count" in result:
                on_count(int(result["@odata.count"]))
            yield result.get("value", [])
            url = result.get("@odata.nextLink")
            # The continuation link already carries the query string.
            page_params = None

    # ------------------------------------------------------------------ #
    # Licenses                                                           #
    # ------------------------------------------------------------------ #
    def list_subscribed_skus(self) -> List[Dict[str, Any]]:
        result = self._request(
            "GET",
            "/subscribedSkus",
            params={
                "$select": "id,skuId,skuPartNumber,capabilityStatus,prepaidUnits,consumedUnits",
            },
        )
        return result.get("value", [])

    def assign_license(
        self,
        user_id: str,
        sku_id: str,
        disabled_plans: Optional[Iterable[str]] = None,
        remove_skus: Optional[Iterable[str]] = None,
    ) -> Dict[str, Any]:
        payload = {
            "addLicenses": [
                {
                    "skuId": sku_id,
                    "disabledPlans": list(disabled_plans or []),
                }
            ],
            "removeLicenses": list(remove_skus or []),
        }
        return self._request("POST", f"/users/{user_id}/assignLicense", json=payload)

    # ------------------------------------------------------------------ #
    # Users                                                              #
    # ------------------------------------------------------------------ #
    def iter_users(
        self,
        filter_expr: Optional[str] = None,
        select: str = USER_SELECT,
        page_size: int = MAX_PAGE_SIZE,
        eventual_consistency: bool = False,
        on_count: Optional[Callable[[int], None]] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """Yield pages of users.

        Filters over ``assignedLicenses`` are advanced queries and need
        ``eventual_consistency`` together with ``$count``.
        """

        params = {"$select": select, "$top": str(max(1, min(page_size, MAX_PAGE_SIZE)))}
        headers: Dict[str, str] = {}
        if filter_expr:
            params["$filter"] = filter_expr
        if eventual_consistency:
            params["$count"] = "true"
            headers["ConsistencyLevel"] = "eventual"
        return self.iter_pages("/users", params=params, headers=headers, on_count=on_count)

    def update_user(self, user_id: str, **fields: Any) -> Dict[str, Any]:
        payload = {key: value for key, value in fields.items() if value is not None}
        if not payload:
            return {}
        return self._request("PATCH", f"/users/{user_id}", json=payload)


__all__ = [
    "GraphClient",
    "GraphClientError",
    "GraphConfigurationError",
    "GraphRequestError",
    "MAX_PAGE_SIZE",
]
