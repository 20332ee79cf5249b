from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from config import get_settings

logger = logging.getLogger(__name__)


class FinanceApiError(RuntimeError):
    pass


class FinanceApiClient:
    """Async client for the ``/api/finance`` routes.

    Transport failures and non-2xx responses raise ``FinanceApiError``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout_secs
        self._http = http

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        client = await self._get_client()
        url = f"{self.base_url}{path}"
        try:
            resp = await client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            raise FinanceApiError(f"{method} {path} failed: {exc}") from exc
        if resp.status_code >= 400:
            try:
                detail = resp.json().get("error")
            except (ValueError, AttributeError):
                detail = resp.text
            raise FinanceApiError(f"{method} {path} returned {resp.status_code}: {detail}")
        try:
            return resp.json()
        except ValueError as exc:
            raise FinanceApiError(f"{method} {path} returned invalid JSON") from exc

    async def get_user(self) -> Optional[dict[str, Any]]:
        return await self._request("GET", "/user")

    async def get_accounts(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/accounts")

    async def get_transactions(self, account_id: Optional[str] = None) -> list[dict[str, Any]]:
        params = {"accountId": account_id} if account_id else None
        return await self._request("GET", "/transactions", params=params)

    async def get_budgets(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/budgets")

    async def get_goals(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/goals")

    async def get_alerts(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/alerts")

    async def get_insights(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/insights")

    async def get_monthly_stats(self, month: str) -> Optional[dict[str, Any]]:
        return await self._request("GET", f"/monthly-stats/{quote(month, safe='')}")

    async def create_transaction(self, payload: dict[str, Any]) -> dict[str, Any]:
        created = await self._request("POST", "/transactions", json=payload)
        logger.info(f"transaction_submitted: id={created.get('id')}")
        return created
