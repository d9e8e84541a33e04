"""Duplex WebSocket transport built on aiohttp."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Protocol

import aiohttp

from pystarhunt._constants import USER_AGENT
from pystarhunt.exceptions import StarhuntTransportError

_logger = logging.getLogger(__name__)


class Connection(Protocol):
    """An open duplex session.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`WebSocketConnection`) concrete.
    Every method raises :class:`StarhuntTransportError` on I/O failure.
    """

    @property
    def closed(self) -> bool:
        ...

    async def send_str(self, data: str) -> None:
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...

    def messages(self) -> AsyncIterator[str]:
        """Text frames until the peer closes."""
        ...


class Connector(Protocol):
    """Opens :class:`Connection` objects."""

    async def open(self, endpoint: str) -> Connection:
        ...


class WebSocketConnection:
    """A :class:`Connection` over an aiohttp client websocket."""

    def __init__(self, ws: aiohttp.ClientWebSocketResponse, endpoint: str) -> None:
        self._ws = ws
        self._endpoint = endpoint

    @property
    def closed(self) -> bool:
        return self._ws.closed

    async def send_str(self, data: str) -> None:
        try:
            await self._ws.send_str(data)
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise StarhuntTransportError(f"Send to {self._endpoint} failed: {exc}", endpoint=self._endpoint) from exc

    async def ping(self) -> None:
        try:
            await self._ws.ping()
        except (aiohttp.ClientError, ConnectionError) as exc:
            raise StarhuntTransportError(f"Ping to {self._endpoint} failed: {exc}", endpoint=self._endpoint) from exc

    async def close(self) -> None:
        if not self._ws.closed:
            await self._ws.close()

    async def messages(self) -> AsyncIterator[str]:
        async for msg in self._ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.BINARY:
                yield msg.data.decode("utf-8", errors="replace")
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise StarhuntTransportError(
                    f"WebSocket error from {self._endpoint}: {self._ws.exception()}",
                    endpoint=self._endpoint,
                )
            else:
                break
        _logger.debug("WebSocket %s closed code=%s", self._endpoint, self._ws.close_code)


class WebSocketConnector:
    """Opens websocket sessions on a shared ``aiohttp.ClientSession``.

    When no session is given one is created on first use and closed by
    :meth:`close`.
    """

    def __init__(
        self,
        http_session: aiohttp.ClientSession | None = None,
        *,
        connect_timeout: float = 10.0,
    ) -> None:
        self._http = http_session
        self._owns_session = http_session is None
        self._connect_timeout = connect_timeout

    async def open(self, endpoint: str) -> Connection:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_session = True

        _logger.debug("WS connect %s", endpoint)
        try:
            async with asyncio.timeout(self._connect_timeout):
                ws = await self._http.ws_connect(endpoint, headers={"user-agent": USER_AGENT})
        except aiohttp.WSServerHandshakeError as exc:
            raise StarhuntTransportError(
                f"Handshake with {endpoint} failed: HTTP {exc.status}",
                status_code=exc.status,
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise StarhuntTransportError(
                f"Connection to {endpoint} timed out after {self._connect_timeout}s",
                endpoint=endpoint,
            ) from exc
        except (aiohttp.ClientError, OSError, ValueError) as exc:
            raise StarhuntTransportError(f"Connection to {endpoint} failed: {exc}", endpoint=endpoint) from exc
        return WebSocketConnection(ws, endpoint)

    async def close(self) -> None:
        if self._owns_session and self._http is not None:
            await self._http.close()
        self._http = None
