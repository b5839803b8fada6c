# weam/client.py
"""
Async API client with transparent access-token refresh.

Auth lives entirely in HttpOnly cookies, which the underlying httpx client
keeps in its cookie jar. On a 401 the client calls POST /api/refresh once
(concurrent 401s share that single call) and retries the original request.

    async with WeamClient("http://localhost:4000") as api:
        await api.login("admin", "secret")
        projects = await api.get("/api/projects")
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Set, Tuple

import httpx

from weam.singleflight import SingleFlight

logger = logging.getLogger("weam.client")

REFRESH_PATH = "/api/refresh"


class ApiRequestError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class Unauthorized(ApiRequestError):
    def __init__(self, message: str = "UNAUTHORIZED"):
        super().__init__(401, message)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and (data.get("error") or data.get("message")):
        return str(data.get("error") or data.get("message"))
    return f"{response.status_code} {response.reason_phrase}"


def _decode(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


class WeamClient:
    def __init__(
        self,
        base_url: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
        login_page: bool = False,
        timeout: float = 30.0,
    ):
        self._http = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self.on_unauthorized = on_unauthorized
        # on the login screen a 401 is an answer, not an expired session
        self.login_page = login_page
        self._flight = SingleFlight()
        self._pending_fields: Set[Tuple[int, str]] = set()

    async def __aenter__(self) -> "WeamClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---------- core ----------

    async def _refresh(self) -> bool:
        try:
            response = await self._http.post(REFRESH_PATH)
        except httpx.HTTPError as e:
            logger.warning("Token refresh failed: %s", e)
            return False
        return response.is_success

    async def refresh(self) -> bool:
        """One POST /api/refresh no matter how many callers ask at once."""
        if self.login_page:
            return False
        return await self._flight.do("refresh", self._refresh)

    def _unauthorized(self, suppress_redirect: bool) -> Unauthorized:
        if not (suppress_redirect or self.login_page) and self.on_unauthorized:
            self.on_unauthorized()
        return Unauthorized()

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Any = None,
        no_auth_retry: bool = False,
        suppress_redirect: bool = False,
    ) -> Any:
        if self.login_page:
            no_auth_retry = suppress_redirect = True

        response = await self._http.request(method, url, json=json, params=params)
        if response.is_success:
            return _decode(response)

        if response.status_code == 401 and not no_auth_retry:
            if not await self.refresh():
                raise self._unauthorized(suppress_redirect)
            response = await self._http.request(method, url, json=json, params=params)
            if response.is_success:
                return _decode(response)
            if response.status_code == 401:
                raise self._unauthorized(suppress_redirect)

        raise ApiRequestError(response.status_code, _error_message(response))

    async def get(self, url: str, **kwargs) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs) -> Any:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs) -> Any:
        return await self.request("PUT", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs) -> Any:
        return await self.request("DELETE", url, **kwargs)

    # ---------- session ----------

    async def login(self, login: str, password: str) -> Any:
        return await self.post(
            "/api/login",
            {"login": login, "password": password},
            no_auth_retry=True,
            suppress_redirect=True,
        )

    async def logout(self) -> Any:
        return await self.post("/api/logout", no_auth_retry=True, suppress_redirect=True)

    async def me(self) -> Any:
        return await self.get("/api/me")

    # ---------- projects ----------

    async def update_project_field(self, project_id: int, field: str, value: Any) -> Any:
        """
        Inline edit of a single project field. While an update for the same
        (project, field) is pending, further ones are skipped and return None.
        """
        key = (project_id, field)
        if key in self._pending_fields:
            logger.debug("Skipping update of %s on project %s: already pending", field, project_id)
            return None
        self._pending_fields.add(key)
        try:
            return await self.put(f"/api/projects/{project_id}", {field: value})
        finally:
            self._pending_fields.discard(key)
