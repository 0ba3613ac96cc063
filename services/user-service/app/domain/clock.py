from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class TimeProvider(Protocol):
    """Source of the current UTC time injected into the user workflows."""

    def utc_now(self) -> datetime: ...


class SystemClock:
    """`TimeProvider` backed by the host clock."""

    def utc_now(self) -> datetime:
        return datetime.now(timezone.utc)
