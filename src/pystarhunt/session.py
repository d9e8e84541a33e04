"""Duplex session management: connect, keep-alive, backoff reconnect, dispatch."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Coroutine, Iterable
from typing import Any, Protocol

from pystarhunt._redact import redact_for_log
from pystarhunt._scheduler import ScheduledTask, TaskScheduler
from pystarhunt._transport import Connection, Connector
from pystarhunt.exceptions import StarhuntProtocolError, StarhuntTransportError
from pystarhunt.ingestion.wire import decode_message, encode_star_update
from pystarhunt.models.star import StarRecord

_logger = logging.getLogger(__name__)

ResyncProvider = Callable[[], Iterable[StarRecord]]


class SessionListener(Protocol):
    """Receives session lifecycle events and decoded star updates."""

    def on_connected(self) -> None:
        ...

    def on_disconnected(self) -> None:
        ...

    def on_record_received(self, record: StarRecord) -> None:
        ...


class SessionManager:
    """Owns the connection to the broadcast endpoint.

    Connection attempts, sends, reads and keep-alive pings run on *loop*.
    :meth:`connect`, :meth:`send_record`, :meth:`disconnect` and
    :meth:`reconnect` may be called from any thread.

    After a lost connection (remote close, I/O error, failed attempt or
    failed keep-alive) reconnect *n* is scheduled ``n * reconnect_base_delay``
    seconds later, up to ``max_reconnect_attempts``.  Once those are used
    up, a cold retry every ``cold_retry_period`` seconds resets the
    counter and starts over.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        connector: Connector,
        scheduler: TaskScheduler,
        resync: ResyncProvider | None = None,
        reconnect_base_delay: float = 5.0,
        max_reconnect_attempts: int = 5,
        cold_retry_period: float = 60.0,
        keepalive_period: float = 30.0,
    ) -> None:
        self._loop = loop
        self._connector = connector
        self._scheduler = scheduler
        self._resync = resync
        self._reconnect_base_delay = reconnect_base_delay
        self._max_reconnect_attempts = max_reconnect_attempts
        self._cold_retry_period = cold_retry_period
        self._keepalive_period = keepalive_period

        self._lock = threading.Lock()
        self._listeners: list[SessionListener] = []
        self._endpoint: str | None = None
        self._connection: Connection | None = None
        self._connecting = False
        self._attempts = 0
        self._user_closed = False
        self._closed = False

        self._attempt_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._reconnect_timer: ScheduledTask | None = None
        self._keepalive_timer: ScheduledTask | None = None
        self._cold_retry_timer: ScheduledTask | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._connection is not None

    @property
    def is_connecting(self) -> bool:
        with self._lock:
            return self._connecting

    @property
    def attempts(self) -> int:
        with self._lock:
            return self._attempts

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def register_listener(self, listener: SessionListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unregister_listener(self, listener: SessionListener) -> None:
        with self._lock, contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    def _notify(self, event: str, *args: Any) -> None:
        with self._lock:
            if self._closed:
                return
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                getattr(listener, event)(*args)
            except Exception:
                _logger.debug("Session listener %r failed in %s", listener, event, exc_info=True)

    # ------------------------------------------------------------------
    # Loop helpers
    # ------------------------------------------------------------------

    def _run_in_loop(self, fn: Callable[[], None]) -> None:
        try:
            on_loop = asyncio.get_running_loop() is self._loop
        except RuntimeError:
            on_loop = False
        if on_loop:
            fn()
        else:
            self._loop.call_soon_threadsafe(fn)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = self._loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    @staticmethod
    def _cancel_timer(timer: ScheduledTask | None) -> None:
        if timer is not None:
            timer.cancel()

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    def connect(self, endpoint: str | None = None) -> bool:
        """Open the session to *endpoint* (or the last one used).

        Returns ``True`` when already connected or when an attempt was
        started, ``False`` when an attempt is already in flight.  Passing a
        different endpoint while connected switches to it through
        :meth:`reconnect`.  Never blocks.
        """
        switch = False
        with self._lock:
            if self._closed:
                return False
            if self._connection is not None:
                if not endpoint or endpoint == self._endpoint:
                    return True
                self._endpoint = endpoint
                switch = True
            elif self._connecting:
                if endpoint and endpoint != self._endpoint:
                    _logger.debug("Attempt to %s in flight; ignoring %s", self._endpoint, endpoint)
                return False
            else:
                target = endpoint or self._endpoint
                if not target:
                    raise ValueError("No endpoint to connect to")
                self._endpoint = target
                self._connecting = True
                self._user_closed = False
        if switch:
            _logger.info("Switching endpoint to %s", endpoint)
            return self.reconnect()

        try:
            self._run_in_loop(lambda: self._start_attempt(target))
        except RuntimeError:
            _logger.debug("Event loop unavailable; cannot connect", exc_info=True)
            with self._lock:
                self._connecting = False
            return False

        if self._cold_retry_timer is None:
            self._cold_retry_timer = self._scheduler.call_every(self._cold_retry_period, self._cold_retry)
        return True

    def _start_attempt(self, endpoint: str) -> None:
        self._attempt_task = self._spawn(self._open(endpoint))

    async def _open(self, endpoint: str) -> None:
        _logger.debug("Connecting to %s", endpoint)
        try:
            connection = await self._connector.open(endpoint)
        except StarhuntTransportError as exc:
            _logger.warning("Connection to %s failed: %s", endpoint, exc)
            with self._lock:
                self._connecting = False
            self._handle_lost()
            return
        except asyncio.CancelledError:
            with self._lock:
                self._connecting = False
            raise

        with self._lock:
            self._connecting = False
            stale = self._closed or self._user_closed
            if not stale:
                self._connection = connection
                self._attempts = 0
        if stale:
            await self._close_quietly(connection)
            return

        _logger.info("Connected to %s", endpoint)
        self._keepalive_timer = self._scheduler.call_every(self._keepalive_period, self._keepalive)
        self._reader_task = self._spawn(self._read(connection))
        self._notify("on_connected")
        self._resend_active()

    def _resend_active(self) -> None:
        if self._resync is None:
            return
        try:
            records = list(self._resync())
        except Exception:
            _logger.debug("Resync provider failed", exc_info=True)
            return
        for record in records:
            self.send_record(record)
        if records:
            _logger.debug("Resent %d active local record(s)", len(records))

    def _cold_retry(self) -> None:
        with self._lock:
            due = (
                not self._closed
                and not self._user_closed
                and self._connection is None
                and not self._connecting
                and self._reconnect_timer is None
                and self._attempts >= self._max_reconnect_attempts
                and self._endpoint is not None
            )
            if due:
                self._attempts = 0
        if due:
            _logger.info("Cold retry: connecting to %s", self._endpoint)
            self.connect()

    def _reconnect_due(self) -> None:
        self._reconnect_timer = None
        self.connect()

    # ------------------------------------------------------------------
    # Losing the connection
    # ------------------------------------------------------------------

    def _handle_lost(self) -> None:
        """Notify listeners and schedule the next reconnect if allowed."""
        self._notify("on_disconnected")
        with self._lock:
            if self._closed or self._user_closed:
                return
            if self._attempts >= self._max_reconnect_attempts:
                attempt = 0
            else:
                self._attempts += 1
                attempt = self._attempts
        if not attempt:
            _logger.info("Reconnect attempts exhausted; waiting for cold retry")
            return

        delay = self._reconnect_base_delay * attempt
        _logger.info("Reconnecting in %.0fs (attempt %d/%d)", delay, attempt, self._max_reconnect_attempts)
        self._cancel_timer(self._reconnect_timer)
        self._reconnect_timer = self._scheduler.call_later(delay, self._reconnect_due)

    def _connection_lost(self, connection: Connection) -> None:
        with self._lock:
            if self._connection is not connection:
                return
            self._connection = None
        self._cancel_timer(self._keepalive_timer)
        self._keepalive_timer = None
        _logger.info("Connection to %s lost", self._endpoint)
        self._handle_lost()

    async def _abort(self, connection: Connection) -> None:
        self._connection_lost(connection)
        await self._close_quietly(connection)

    @staticmethod
    async def _close_quietly(connection: Connection) -> None:
        try:
            await connection.close()
        except StarhuntTransportError:
            _logger.debug("Error while closing connection", exc_info=True)

    def _teardown(self, connection: Connection) -> None:
        """Stop the reader and keep-alive for *connection* and close it."""
        self._cancel_timer(self._keepalive_timer)
        self._keepalive_timer = None

        def _in_loop() -> None:
            reader = self._reader_task
            if reader is not None and not reader.done():
                reader.cancel()
            self._spawn(self._close_quietly(connection))

        self._run_in_loop(_in_loop)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def _read(self, connection: Connection) -> None:
        try:
            async for text in connection.messages():
                self._handle_text(text)
        except StarhuntTransportError as exc:
            _logger.warning("Connection error: %s", exc)
        self._connection_lost(connection)

    def _handle_text(self, text: str) -> None:
        try:
            message = decode_message(text)
        except StarhuntProtocolError as exc:
            _logger.warning("Dropping undecodable message: %s", exc)
            return

        if not message.is_star_update or message.record is None:
            _logger.debug("Ignoring %s message", message.type)
            return

        _logger.debug("Received star update %s", redact_for_log(message.payload))
        self._notify("on_record_received", message.record)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send_record(self, record: StarRecord) -> bool:
        """Encode *record* and queue it for sending.

        Returns ``False`` when there is no open connection.
        """
        with self._lock:
            connection = None if self._closed else self._connection
        if connection is None:
            _logger.debug("Not connected; dropping update for %s", record.key)
            return False

        payload = encode_star_update(record)
        try:
            self._run_in_loop(lambda: self._spawn(self._send(connection, payload)))
        except RuntimeError:
            _logger.debug("Event loop unavailable; dropping update for %s", record.key, exc_info=True)
            return False
        return True

    async def _send(self, connection: Connection, payload: str) -> None:
        try:
            await connection.send_str(payload)
        except StarhuntTransportError as exc:
            _logger.warning("Send failed: %s", exc)
            await self._abort(connection)

    def _keepalive(self) -> None:
        with self._lock:
            connection = self._connection
        if connection is not None:
            self._run_in_loop(lambda: self._spawn(self._ping(connection)))

    async def _ping(self, connection: Connection) -> None:
        try:
            await connection.ping()
        except StarhuntTransportError as exc:
            _logger.warning("Keep-alive failed: %s", exc)
            await self._abort(connection)

    # ------------------------------------------------------------------
    # Manual control and shutdown
    # ------------------------------------------------------------------

    def reconnect(self) -> bool:
        """Drop the current connection (if any) and connect again with a fresh counter."""
        with self._lock:
            if self._closed:
                return False
            self._attempts = 0
            self._user_closed = False
            connection = self._connection
            self._connection = None
        self._cancel_timer(self._reconnect_timer)
        self._reconnect_timer = None
        if connection is not None:
            self._teardown(connection)
            self._notify("on_disconnected")
        return self.connect()

    def disconnect(self) -> None:
        """User-requested close; no reconnect is scheduled."""
        with self._lock:
            self._user_closed = True
            connection = self._connection
            self._connection = None
            was_active = connection is not None or self._connecting
        self._cancel_timer(self._reconnect_timer)
        self._reconnect_timer = None

        attempt = self._attempt_task
        if attempt is not None and not attempt.done():
            self._run_in_loop(attempt.cancel)
        if connection is not None:
            self._teardown(connection)
        if was_active:
            _logger.info("Disconnected from %s", self._endpoint)
            self._notify("on_disconnected")

    async def close(self) -> None:
        """Shut down; no listener callback fires after this returns."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            connection = self._connection
            self._connection = None

        for timer in (self._reconnect_timer, self._keepalive_timer, self._cold_retry_timer):
            self._cancel_timer(timer)
        self._reconnect_timer = self._keepalive_timer = self._cold_retry_timer = None

        pending = [task for task in (self._attempt_task, self._reader_task) if task is not None and not task.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if connection is not None:
            await self._close_quietly(connection)
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        _logger.debug("Session manager closed")
