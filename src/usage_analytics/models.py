from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Union

RangeType = Literal["1h", "24h", "7d", "30d"]
BreakdownMode = Literal["hosts", "projects", "sessions"]
SelectionKind = Literal["host", "project", "session"]

MODES: tuple[BreakdownMode, ...] = ("hosts", "projects", "sessions")
RANGES: tuple[RangeType, ...] = ("1h", "24h", "7d", "30d")


def parse_timestamp(value: str | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).strip())


@dataclass(frozen=True)
class UsageBucket:
    label: str
    utilization: float
    resets_at: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> UsageBucket:
        return cls(
            label=str(data["label"]),
            utilization=float(data.get("utilization", 0.0)),
            resets_at=data.get("resets_at"),
        )

    def to_dict(self) -> dict:
        return {"label": self.label, "utilization": self.utilization, "resets_at": self.resets_at}


@dataclass(frozen=True)
class UsageSample:
    timestamp: datetime
    utilization: float

    @classmethod
    def from_dict(cls, data: dict) -> UsageSample:
        return cls(timestamp=parse_timestamp(data["timestamp"]), utilization=float(data["utilization"]))


@dataclass(frozen=True)
class TokenSample:
    timestamp: datetime
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> TokenSample:
        return cls(
            timestamp=parse_timestamp(data["timestamp"]),
            input_tokens=int(data.get("input_tokens", 0)),
            output_tokens=int(data.get("output_tokens", 0)),
            cache_creation_input_tokens=int(data.get("cache_creation_input_tokens", 0)),
            cache_read_input_tokens=int(data.get("cache_read_input_tokens", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
        )


@dataclass(frozen=True)
class MergedPoint:
    timestamp: datetime
    utilization: float | None
    total_tokens: int | None


@dataclass(frozen=True)
class BucketStats:
    label: str
    current: float
    avg: float
    max: float
    min: float
    time_above_80: float
    trend: str
    sample_count: int

    @classmethod
    def from_dict(cls, data: dict) -> BucketStats:
        return cls(
            label=str(data.get("label", "")),
            current=float(data.get("current", 0.0)),
            avg=float(data.get("avg", 0.0)),
            max=float(data.get("max", 0.0)),
            min=float(data.get("min", 0.0)),
            time_above_80=float(data.get("time_above_80", 0.0)),
            trend=str(data.get("trend") or "unknown"),
            sample_count=int(data.get("sample_count", 0)),
        )


@dataclass(frozen=True)
class TokenStats:
    total_input: int = 0
    total_output: int = 0
    total_cache_creation: int = 0
    total_cache_read: int = 0
    total_tokens: int = 0
    turn_count: int = 0
    avg_input_per_turn: float = 0.0
    avg_output_per_turn: float = 0.0

    @classmethod
    def from_dict(cls, data: dict) -> TokenStats:
        return cls(
            total_input=int(data.get("total_input", 0)),
            total_output=int(data.get("total_output", 0)),
            total_cache_creation=int(data.get("total_cache_creation", 0)),
            total_cache_read=int(data.get("total_cache_read", 0)),
            total_tokens=int(data.get("total_tokens", 0)),
            turn_count=int(data.get("turn_count", 0)),
            avg_input_per_turn=float(data.get("avg_input_per_turn", 0.0)),
            avg_output_per_turn=float(data.get("avg_output_per_turn", 0.0)),
        )


# Breakdown rows: one variant per mode, each with its own identifying field.


@dataclass(frozen=True)
class HostRow:
    hostname: str
    total_tokens: int
    turn_count: int
    last_active: datetime

    kind: SelectionKind = field(default="host", init=False)

    @property
    def key(self) -> str:
        return self.hostname

    @property
    def first_seen(self) -> datetime | None:
        return None

    @classmethod
    def from_dict(cls, data: dict) -> HostRow:
        return cls(
            hostname=str(data["hostname"]),
            total_tokens=int(data.get("total_tokens", 0)),
            turn_count=int(data.get("turn_count", 0)),
            last_active=parse_timestamp(data["last_active"]),
        )


@dataclass(frozen=True)
class ProjectRow:
    project: str
    hostname: str
    total_tokens: int
    turn_count: int
    session_count: int
    last_active: datetime

    kind: SelectionKind = field(default="project", init=False)

    @property
    def key(self) -> str:
        return self.project

    @property
    def first_seen(self) -> datetime | None:
        return None

    @classmethod
    def from_dict(cls, data: dict) -> ProjectRow:
        return cls(
            project=str(data["project"]),
            hostname=str(data.get("hostname", "")),
            total_tokens=int(data.get("total_tokens", 0)),
            turn_count=int(data.get("turn_count", 0)),
            session_count=int(data.get("session_count", 0)),
            last_active=parse_timestamp(data["last_active"]),
        )


@dataclass(frozen=True)
class SessionRow:
    session_id: str
    hostname: str
    total_tokens: int
    turn_count: int
    first_seen: datetime | None
    last_active: datetime
    project: str | None = None

    kind: SelectionKind = field(default="session", init=False)

    @property
    def key(self) -> str:
        return self.session_id

    @classmethod
    def from_dict(cls, data: dict) -> SessionRow:
        first_seen = data.get("first_seen")
        return cls(
            session_id=str(data["session_id"]),
            hostname=str(data.get("hostname", "")),
            total_tokens=int(data.get("total_tokens", 0)),
            turn_count=int(data.get("turn_count", 0)),
            first_seen=parse_timestamp(first_seen) if first_seen else None,
            last_active=parse_timestamp(data["last_active"]),
            project=data.get("project"),
        )


BreakdownRow = Union[HostRow, ProjectRow, SessionRow]

ROW_TYPES: dict[BreakdownMode, type] = {
    "hosts": HostRow,
    "projects": ProjectRow,
    "sessions": SessionRow,
}


@dataclass(frozen=True)
class Selection:
    kind: SelectionKind
    key: str
    first_seen: datetime
    last_active: datetime

    @classmethod
    def from_row(cls, row: BreakdownRow) -> Selection:
        return cls(
            kind=row.kind,
            key=row.key,
            first_seen=row.first_seen or row.last_active,
            last_active=row.last_active,
        )

    def matches(self, kind: str, key: str) -> bool:
        return self.kind == kind and self.key == key
