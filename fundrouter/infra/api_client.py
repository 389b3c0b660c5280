"""
Async HTTP client for the recharge backend using HTTP/2.

Every endpoint answers with the envelope {code, msg, data}; code == 1 means
success and anything else is raised as ApiError. Transport failures are
retried with jittered backoff and then raised as NetworkError.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, Optional

import httpx

from fundrouter.core.errors import ApiError, NetworkError
from fundrouter.core.json_utils import dumps

log = logging.getLogger("fundrouter")

SUCCESS_CODE = 1
LOGIN_REQUIRED_CODE = 303


class ApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        retries: int = 1,
        backoff: float = 0.2,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.retries = max(0, int(retries))
        self.backoff = backoff
        # A shared client passed in is not closed by close(); otherwise we own it.
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(base_url=self.base_url, http2=True, timeout=timeout)
            self._owns_client = True

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            return {}
        return {"ba-user-token": self.token, "ba-token": self.token, "batoken": self.token}

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post_form(
        self,
        path: str,
        data: Optional[Dict[str, Any]] = None,
        files: Optional[Dict[str, Any]] = None,
    ) -> Any:
        return await self._request("POST", path, data=data, files=files)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        backoff = self.backoff
        for attempt in range(self.retries + 1):
            try:
                resp = await self.client.request(method, path, headers=self._headers(), **kwargs)
                break
            except httpx.TransportError as e:
                if attempt >= self.retries:
                    raise NetworkError(f"{method} {path} failed: {e}") from e
                log.warning(dumps({"event": "http_retry", "path": path, "attempt": attempt + 1, "error": str(e)}))
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
        return self._unwrap(path, resp)

    @staticmethod
    def _unwrap(path: str, resp: httpx.Response) -> Any:
        try:
            body = resp.json()
        except ValueError:
            raise ApiError(f"{path}: non-JSON response (HTTP {resp.status_code})", code=resp.status_code) from None
        if not isinstance(body, dict) or "code" not in body:
            raise ApiError(f"{path}: malformed envelope", code=resp.status_code, payload={"body": body})
        code = body.get("code")
        if code != SUCCESS_CODE:
            msg = str(body.get("msg") or f"request failed (code {code})")
            raise ApiError(msg, code=code if isinstance(code, int) else None, payload=body)
        return body.get("data")
