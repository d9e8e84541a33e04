"""Base model and enum for star wire payloads.

Every wire model inherits from :class:`StarhuntBaseModel` which provides
``alias_generator=to_camel`` so camelCase wire keys map automatically to
snake_case fields, and accepts either spelling on input.

Catalogue enums inherit from :class:`StarhuntEnum` which adds an
``UNKNOWN`` member at ``-1`` and a ``_missing_`` hook that returns
``UNKNOWN`` for any value without a mapped member.
"""

from __future__ import annotations

import enum
import time
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class StarhuntEnum(enum.IntEnum):
    """Base for catalogue enums.

    Every subclass **must** define ``UNKNOWN = -1``.
    Values without a mapped member resolve to ``UNKNOWN`` instead of
    raising ``ValueError``.
    """

    @classmethod
    def _missing_(cls, value: object) -> StarhuntEnum:
        if hasattr(cls, "UNKNOWN"):
            unknown: StarhuntEnum = cls.UNKNOWN  # type: ignore[attr-defined]
            return unknown
        return next(iter(cls))


class StarhuntBaseModel(BaseModel):
    """Base for wire models (camelCase on the wire, snake_case in Python)."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase wire representation, omitting ``None`` fields."""
        return self.model_dump(by_alias=True, exclude_none=True)
