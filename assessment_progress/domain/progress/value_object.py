"""Value objects for the progress bounded context."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class DomainStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"

    @classmethod
    def parse(cls, raw: object) -> "DomainStatus":
        if isinstance(raw, cls):
            return raw
        token = str(raw).strip().lower().replace("-", "_")
        try:
            return cls(token)
        except ValueError as exc:
            raise ValueError(f"Unknown domain status '{raw}'") from exc


@dataclass(frozen=True, slots=True)
class ProgressValue:
    """Immutable percentage value clamped between 0 and 100."""

    value: int

    def __post_init__(self) -> None:
        if not isinstance(self.value, int) or isinstance(self.value, bool):
            raise TypeError("ProgressValue must wrap an int")
        if self.value < 0 or self.value > 100:
            raise ValueError(f"ProgressValue {self.value} is outside [0, 100]")

    @classmethod
    def coerce(cls, raw: object) -> "ProgressValue":
        try:
            numeric = float(raw)
        except (TypeError, ValueError, OverflowError):
            numeric = 0.0
        if math.isnan(numeric):
            numeric = 0.0
        # clamp before int() so infinities never reach the conversion
        return cls(int(min(100.0, max(0.0, numeric))))

    def matches(self, status: DomainStatus) -> bool:
        if status is DomainStatus.NOT_STARTED:
            return self.value == 0
        if status is DomainStatus.COMPLETED:
            return self.value == 100
        return True

    @classmethod
    def for_status(cls, status: DomainStatus, raw: object) -> "ProgressValue":
        if status is DomainStatus.NOT_STARTED:
            return cls(0)
        if status is DomainStatus.COMPLETED:
            return cls(100)
        return cls.coerce(raw)

    def __int__(self) -> int:
        return self.value

    def __repr__(self) -> str:  # pragma: no cover - convenience only
        return f"ProgressValue({self.value})"


def parse_timestamp(raw: object) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp; naive values are assumed to be UTC."""

    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        parsed = raw
    else:
        text = str(raw).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValueError(f"Invalid timestamp '{raw}'") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def resolve_sequence(raw: object, updated_at: Optional[datetime]) -> Optional[int]:
    """Version used for ordering fragments.

    An explicit ``sequence`` wins. Without one the last-updated timestamp, in
    epoch milliseconds, orders the fragments instead. ``None`` means neither
    is present.
    """

    if raw is not None and raw != "":
        if isinstance(raw, bool):
            raise ValueError(f"Invalid sequence {raw!r}")
        try:
            return int(raw)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid sequence {raw!r}") from exc
    if updated_at is not None:
        return int(updated_at.timestamp() * 1000)
    return None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()
