"""Opaque identifiers used to reference users across the service boundary."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from .errors import InvalidIdentifierError

_CANONICAL = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True)
class UserId:
    """Value object wrapping a 128-bit unique identifier."""

    value: uuid.UUID

    @classmethod
    def new(cls) -> "UserId":
        """Generate a fresh random identifier."""
        return cls(uuid.uuid4())

    @classmethod
    def parse(cls, text: str) -> "UserId":
        """Parse the canonical hyphenated form, rejecting every other spelling."""
        if not isinstance(text, str) or not _CANONICAL.match(text):
            raise InvalidIdentifierError(f"malformed identifier: {text!r}")
        return cls(uuid.UUID(text))

    @property
    def is_empty(self) -> bool:
        return self.value.int == 0

    def __str__(self) -> str:
        return str(self.value)
