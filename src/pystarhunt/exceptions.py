"""Custom exception hierarchy for pystarhunt."""

from __future__ import annotations


class StarhuntError(Exception):
    """Base exception for all pystarhunt errors."""


class StarhuntConfigError(StarhuntError):
    """Invalid or missing configuration."""


class StarhuntTransportError(StarhuntError):
    """Network-level failure (connect, non-2xx, closed socket, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class StarhuntProtocolError(StarhuntError):
    """A received message could not be decoded.

    Raised by the wire codec for malformed JSON, envelopes without a
    ``type`` and ``STAR_UPDATE`` payloads that fail validation.  The
    session manager drops the offending message and keeps the session open.
    """

    def __init__(self, message: str, *, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)
