"""Broadcast wire codec.

Every message on the duplex session is a JSON envelope::

    {"type": "STAR_UPDATE", "data": {...star record...}}

Only ``STAR_UPDATE`` carries a payload this library understands; any other
type is decoded to a :class:`WireMessage` with ``record=None`` so callers
can ignore it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pystarhunt.exceptions import StarhuntProtocolError
from pystarhunt.models.star import StarRecord


class MessageType(StrEnum):
    STAR_UPDATE = "STAR_UPDATE"
    PLAYER_JOIN = "PLAYER_JOIN"
    PLAYER_LEAVE = "PLAYER_LEAVE"


class _Envelope(BaseModel):
    """Minimal Pydantic envelope for broadcast messages."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: str = Field(..., min_length=1)
    data: Any = None


@dataclass(frozen=True)
class WireMessage:
    """A decoded broadcast message."""

    type: str
    record: StarRecord | None
    payload: Any

    @property
    def is_star_update(self) -> bool:
        return self.type == MessageType.STAR_UPDATE


def _preview(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else f"{text[:limit]}…"


def decode_message(text: str | bytes) -> WireMessage:
    """Decode one envelope.

    Raises
    ------
    StarhuntProtocolError
        If the text is not JSON, is not an envelope, or is a
        ``STAR_UPDATE`` whose payload is not a valid record.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise StarhuntProtocolError("Message is not UTF-8") from exc

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StarhuntProtocolError(f"Message is not JSON: {_preview(text)}", raw=text) from exc

    try:
        envelope = _Envelope.model_validate(parsed)
    except ValidationError as exc:
        raise StarhuntProtocolError(f"Message is not an envelope: {_preview(text)}", raw=text) from exc

    if envelope.type != MessageType.STAR_UPDATE:
        return WireMessage(type=envelope.type, record=None, payload=envelope.data)

    try:
        record = StarRecord.model_validate(envelope.data)
    except ValidationError as exc:
        raise StarhuntProtocolError(f"Invalid {envelope.type} payload: {exc.error_count()} error(s)", raw=text) from exc
    return WireMessage(type=envelope.type, record=record, payload=envelope.data)


def encode_star_update(record: StarRecord) -> str:
    """Encode *record* as a ``STAR_UPDATE`` envelope."""
    return json.dumps(
        {"type": MessageType.STAR_UPDATE.value, "data": record.to_wire()},
        separators=(",", ":"),
    )


def decode_record_list(text: str) -> list[StarRecord]:
    """Decode the legacy API's JSON array of records.

    Entries that fail validation are skipped; a body that is not a JSON
    array raises :class:`StarhuntProtocolError`.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StarhuntProtocolError(f"Response is not JSON: {_preview(text)}", raw=text) from exc
    if not isinstance(parsed, list):
        raise StarhuntProtocolError("Response is not a JSON array", raw=text)

    records: list[StarRecord] = []
    for item in parsed:
        try:
            records.append(StarRecord.model_validate(item))
        except ValidationError:
            continue
    return records


def encode_record_list(records: list[StarRecord]) -> str:
    return json.dumps([record.to_wire() for record in records], separators=(",", ":"))
