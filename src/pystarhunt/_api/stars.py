"""Legacy request/response star API.

Endpoints (relative to ``config.api_url``):
  - ``POST``  ``/``          (submit a JSON array of records)
  - ``GET``   ``/``          (fetch the current array of records)
  - ``POST``  ``/depleted``  (report a depleted star by key)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

import aiohttp

from pystarhunt._constants import USER_AGENT
from pystarhunt.config import StarhuntConfig
from pystarhunt.exceptions import StarhuntConfigError, StarhuntProtocolError, StarhuntTransportError
from pystarhunt.ingestion.wire import decode_record_list, encode_record_list
from pystarhunt.models.star import StarKey, StarRecord

_logger = logging.getLogger(__name__)

_DEPLETED_PATH = "/depleted"

_HEADERS: dict[str, str] = {
    "content-type": "application/json; charset=utf-8",
    "user-agent": USER_AGENT,
}


class LegacyStarApi:
    """Thin client for the request/response variant of the star service.

    Unlike the broadcast session, failures here are raised to the caller
    as :class:`StarhuntTransportError`.
    """

    def __init__(self, config: StarhuntConfig, http_session: aiohttp.ClientSession) -> None:
        if not config.api_url:
            raise StarhuntConfigError("api_url is required for the legacy star API")
        self._base_url = config.api_url.rstrip("/")
        self._http = http_session

    async def _request(self, method: str, path: str, body: str | None = None) -> str:
        url = f"{self._base_url}{path}"
        endpoint = path or "/"
        _logger.debug("%s %s", method, url)
        try:
            async with self._http.request(method, url, data=body, headers=_HEADERS) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise StarhuntTransportError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                    )
        except StarhuntTransportError:
            raise
        except aiohttp.ClientError as exc:
            raise StarhuntTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        return text

    async def send_stars(self, records: Iterable[StarRecord]) -> int:
        """Submit *records*; returns how many were sent (nothing is sent for none)."""
        batch = list(records)
        if not batch:
            return 0
        await self._request("POST", "", encode_record_list(batch))
        _logger.debug("Submitted %d star record(s)", len(batch))
        return len(batch)

    async def report_depleted(self, key: StarKey | str) -> None:
        payload: dict[str, Any] = {"key": str(key)}
        await self._request("POST", _DEPLETED_PATH, json.dumps(payload, separators=(",", ":")))

    async def get_active_stars(self) -> dict[str, StarRecord]:
        """Fetch the service's records keyed by ``"world:x:y:plane"``."""
        text = await self._request("GET", "")
        try:
            records = decode_record_list(text)
        except StarhuntProtocolError as exc:
            raise StarhuntTransportError(f"Invalid star list from {self._base_url}: {exc}", endpoint="/") from exc
        return {record.unique_key: record for record in records}
