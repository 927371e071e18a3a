# barstock/client.py
"""Async HTTP client for the Bar Stock Manager API.

Expired sessions are refreshed transparently: concurrent requests that hit a
401 share a single in-flight refresh and each retries exactly once.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class BarStockClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        refresh_token: Callable[[], Awaitable[str]],
        team_id: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 15.0,
        profile_timeout: float = 10.0,
    ):
        self.token = token
        self.team_id = team_id
        self.profile_timeout = profile_timeout
        self._refresh_callback = refresh_token
        self._refresh_task: Optional[asyncio.Task] = None
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- token refresh ----

    async def _run_refresh(self) -> str:
        try:
            new_token = await self._refresh_callback()
            self.token = new_token
            logger.info("Access token refreshed")
            return new_token
        finally:
            self._refresh_task = None

    async def _refresh(self, stale_token: str) -> str:
        # Another request already swapped the token: reuse it
        if self.token != stale_token:
            return self.token
        task = self._refresh_task
        if task is None:
            task = self._refresh_task = asyncio.ensure_future(self._run_refresh())
        try:
            return await asyncio.shield(task)
        except ApiError:
            raise
        except Exception as e:
            logger.warning("Token refresh failed: %s", e)
            raise ApiError(401, "Session expired, please sign in again") from e

    # ---- requests ----

    def _headers(self, token: str) -> dict:
        headers = {"Authorization": f"Bearer {token}"}
        if self.team_id is not None:
            headers["X-Team-Id"] = str(self.team_id)
        return headers

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if response.status_code >= 400:
            try:
                message = response.json().get("error")
            except (ValueError, AttributeError):
                message = None
            raise ApiError(response.status_code, message or response.reason_phrase or "Request failed")
        if response.headers.get("content-type", "").startswith("application/json"):
            return response.json()
        return response.content

    async def request(self, method: str, path: str, **kwargs) -> Any:
        token = self.token
        try:
            response = await self._http.request(method, path, headers=self._headers(token), **kwargs)
            if response.status_code == 401:
                await self._refresh(token)
                response = await self._http.request(method, path, headers=self._headers(self.token), **kwargs)
        except httpx.RequestError as e:
            raise ApiError(0, f"Network error: {e}") from e
        return self._parse(response)

    # ---- identity bootstrap ----

    async def _fetch_or_create_profile(self) -> dict:
        try:
            return await self.request("GET", "/api/users/profile")
        except ApiError as e:
            if e.status != 404:
                raise
        # Creation is idempotent server-side, so a concurrent bootstrap is harmless
        await self.request("POST", "/api/users/profile", json={})
        return await self.request("GET", "/api/users/profile")

    async def get_or_create_profile(self) -> dict:
        try:
            return await asyncio.wait_for(self._fetch_or_create_profile(), timeout=self.profile_timeout)
        except asyncio.TimeoutError:
            raise ApiError(408, "Loading your profile took too long. Please try again.")

    # ---- convenience wrappers ----

    async def list_products(self) -> list:
        return await self.request("GET", "/api/products")

    async def register_movement(self, product_id: int, movement_type: str, quantity: float, **fields) -> dict:
        body = {"product_id": product_id, "type": movement_type, "quantity": quantity, **fields}
        return await self.request("POST", "/api/stock/movement", json=body)

    async def get_alerts(self) -> dict:
        return await self.request("GET", "/api/stock/alerts")

    async def join_team(self, owner_custom_id: str) -> dict:
        return await self.request("POST", "/api/teams/join", json={"owner_custom_id": owner_custom_id})
