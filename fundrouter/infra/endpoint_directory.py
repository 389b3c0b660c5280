"""
Endpoint directory backed by the company-account list.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from fundrouter.core.errors import ValidationError
from fundrouter.core.json_utils import dumps
from fundrouter.core.methods import Method
from fundrouter.core.models import Endpoint
from fundrouter.infra.api_client import ApiClient

log = logging.getLogger("fundrouter")

ACCOUNT_LIST_PATH = "/Recharge/getCompanyAccountList"


class EndpointDirectory:
    def __init__(self, api: ApiClient, log_event: Optional[Callable[..., None]] = None) -> None:
        self.api = api
        self._log_event = log_event or self._default_log

    def _default_log(self, event: str, **kwargs) -> None:
        log.warning(dumps({"event": event, **kwargs}))

    async def list(self, method: Optional[Method] = None) -> List[Endpoint]:
        """
        Fetch receiving accounts, optionally restricted to one method.

        Disabled rows (status == 0) and rows with an unknown type are skipped.
        """
        data = await self.api.get(ACCOUNT_LIST_PATH, params={"usage": "recharge"})
        rows: List[Any] = []
        if isinstance(data, dict):
            rows = data.get("list") or []
        elif isinstance(data, list):
            rows = data

        endpoints: List[Endpoint] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            if str(row.get("status", 1)) == "0":
                continue
            try:
                ep = Endpoint.from_api(row)
            except ValidationError as e:
                self._log_event("endpoint_skipped", id=row.get("id"), type=row.get("type"), reason=str(e))
                continue
            if method is None or ep.method is method:
                endpoints.append(ep)
        return endpoints
